"""
Main CLI interface for Hybrid QA.

Provides commands to execute a strategy file, check backend health and
inspect how step descriptions are parsed.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from . import __version__
from .core.config import Config
from .core.exceptions import HybridQAError, ValidationError
from .core.logging_config import setup_logging
from .core.sessions import generate_session_id
from .execution.coordinator import ExecutionCoordinator
from .models import Strategy, TestConfig, TestStatus
from .orchestrator import QAOrchestrator
from .parsing import parse_steps

STATUS_ICONS = {
    TestStatus.PASSED: "✅",
    TestStatus.FAILED: "❌",
    TestStatus.SKIPPED: "⏭️ ",
    TestStatus.ERROR: "💥",
}


def load_document(path: Path) -> Dict[str, Any]:
    """
    Load a JSON or YAML document.

    Raises:
        ValidationError: If the file is missing or not a mapping
    """
    if not path.exists():
        raise ValidationError(f"File not found: {path}", validation_type="file")

    with open(path, "r", encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValidationError(
            f"Expected a mapping at the top level of {path}", validation_type="file"
        )
    return data


def load_strategy(path: Path) -> Strategy:
    data = load_document(path)
    try:
        return Strategy.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid strategy in {path}",
            validation_type="strategy",
            violations=[err["msg"] for err in e.errors()],
        )


def load_test_config(path: Optional[Path]) -> Optional[TestConfig]:
    if path is None:
        return None
    data = load_document(path)
    try:
        return TestConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid test configuration in {path}",
            validation_type="test_config",
            violations=[err["msg"] for err in e.errors()],
        )


def _load_config() -> Config:
    config = Config.from_env()
    config.validate()
    return config


def cmd_run(args: argparse.Namespace) -> int:
    """Execute a strategy file."""
    try:
        print("🚀 Starting Hybrid QA run...")
        config = _load_config()
        setup_logging(config, generate_session_id("run"))

        strategy = load_strategy(Path(args.strategy))
        test_config = load_test_config(Path(args.config) if args.config else None)
        print(f"📋 Loaded {len(strategy.test_flows)} flows (primary engine: {strategy.primary_engine.value})")

        orchestrator = QAOrchestrator(config)
        outcome = asyncio.run(orchestrator.execute_tests(strategy, test_config))
        suite = outcome["results"]

        for result in suite.results:
            icon = STATUS_ICONS.get(result.status, "•")
            line = f"{icon} {result.test_name} [{result.engine.value}] {result.duration:.0f}ms"
            if result.error:
                line += f" - {result.error}"
            print(line)

        summary = suite.summary
        print()
        print(
            f"📊 {summary.total} flows: {summary.passed} passed, {summary.failed} failed, "
            f"{summary.skipped} skipped, {summary.errors} errors"
        )
        print(f"📁 Artifacts: {len(outcome['artifacts'])}")

        if args.output:
            output_path = Path(args.output)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(
                json.dumps(suite.model_dump(mode="json"), indent=2), encoding="utf-8"
            )
            print(f"💾 Results written to {output_path}")

        if suite.has_failures:
            print("❌ Run finished with failures")
            return 1
        print("✅ All flows passed")
        return 0

    except ValidationError as e:
        print(f"❌ {e.message}")
        for violation in e.violations:
            print(f"   • {violation}")
        return 1
    except HybridQAError as e:
        print(f"❌ Hybrid QA error: {e.message}")
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1
    except Exception as e:
        print(f"❌ Unexpected error: {e}")
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1


def cmd_health(args: argparse.Namespace) -> int:
    """Report availability and health of every backend."""
    try:
        print("🏥 Hybrid QA Health Check")
        print("=" * 40)

        config = _load_config()
        coordinator = ExecutionCoordinator(config)

        async def probe():
            availability = await coordinator.check_engine_availability()
            health = await coordinator.get_engine_health()
            return availability, health

        availability, health = asyncio.run(probe())

        for engine, status in health.items():
            icon = "✅" if status.is_healthy else "❌"
            available = "available" if availability.get(engine) else "unavailable"
            print(f"{icon} {engine.value}: {status.status} ({available})")
            if args.verbose and status.details is not None:
                print(f"   {json.dumps(status.details, default=str)}")

        if any(status.is_healthy for status in health.values()):
            print("✅ At least one backend is ready")
            return 0
        print("❌ No backend is ready")
        return 1

    except ValidationError as e:
        print(f"❌ {e.message}")
        return 1
    except Exception as e:
        print(f"❌ Health check failed: {e}")
        return 1


def cmd_parse(args: argparse.Namespace) -> int:
    """Print the actions parsed from step descriptions."""
    actions = parse_steps(args.steps)
    if args.json:
        print(json.dumps([action.model_dump(mode="json") for action in actions], indent=2))
        return 0

    for index, (step, action) in enumerate(zip(args.steps, actions), start=1):
        print(f"{index}. {step}")
        print(f"   → {action.describe()}" + (f" (value: {action.value})" if action.value else ""))
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    print(f"Hybrid QA {__version__}")
    return 0


def create_main_parser() -> argparse.ArgumentParser:
    """Create main CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="hybrid-qa",
        description="Hybrid QA - cross-backend UI test flow execution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  hybrid-qa run strategy.json --config test-config.json --output results.json
  hybrid-qa health --verbose
  hybrid-qa parse 'Tap "Login"' 'Wait 2 seconds'
        """,
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Execute a strategy file")
    run_parser.add_argument("strategy", help="Strategy file (JSON or YAML)")
    run_parser.add_argument("--config", help="Test configuration file (JSON or YAML)")
    run_parser.add_argument("--output", "-o", help="Write the suite result as JSON")
    run_parser.set_defaults(func=cmd_run)

    health_parser = subparsers.add_parser("health", help="Check backend health")
    health_parser.set_defaults(func=cmd_health)

    parse_parser = subparsers.add_parser("parse", help="Show parsed actions for steps")
    parse_parser.add_argument("steps", nargs="+", help="Step descriptions")
    parse_parser.add_argument("--json", action="store_true", help="Print actions as JSON")
    parse_parser.set_defaults(func=cmd_parse)

    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_main_parser()

    if args is None:
        args = sys.argv[1:]

    parsed_args = parser.parse_args(args)

    if not hasattr(parsed_args, "func"):
        parser.print_help()
        return 1

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
