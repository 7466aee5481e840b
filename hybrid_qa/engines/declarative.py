"""
Declarative flow backend.

Compiles parsed actions into a YAML flow document and hands it to an external
runner executable (Maestro). Element lookup is left to the runner; targets are
written into the document verbatim.
"""

import asyncio
import json
import os
import re
import signal
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from ..core.config import Config
from ..core.exceptions import (
    CleanupError,
    HybridQAError,
    InitializationError,
    RunnerProcessError,
)
from ..core.logging_config import get_logger, log_backend_call
from ..execution.artifacts import ArtifactManager, epoch_ms, sanitize_name
from ..models import (
    Action,
    ActionKind,
    Engine,
    Flow,
    HealthStatus,
    PerformanceMetrics,
    TestConfig,
    TestResult,
    TestStatus,
)
from ..parsing import parse_steps, wait_duration_ms
from .base import AdapterState, FlowRun, error_message, host_performance, swipe_direction

SCREENSHOT_SAVED_PATTERN = re.compile(r"Screenshot saved to: (.+)")

FLOW_PATTERNS = ("login", "navigation", "form", "search")

# (comment, step) pairs; comment is written above the step.
FlowStep = Tuple[Optional[str], Any]


def compile_action(action: Action) -> List[FlowStep]:
    """Translate one action into flow document steps."""
    kind = action.kind

    if kind == ActionKind.LAUNCH:
        if action.target:
            return [(None, {"launchApp": {"appId": action.target}})]
        return [(None, "launchApp")]
    if kind == ActionKind.TAP:
        return [(None, {"tapOn": {"text": action.target}})]
    if kind == ActionKind.INPUT:
        if action.target and action.value:
            return [
                (None, {"tapOn": {"text": action.target}}),
                (None, {"inputText": action.value}),
            ]
        return []
    if kind == ActionKind.VERIFY:
        return [(None, {"assertVisible": {"text": action.target}})]
    if kind == ActionKind.WAIT:
        return [(None, {"waitForAnimationToEnd": {"timeout": wait_duration_ms(action)}})]
    if kind == ActionKind.SCROLL:
        return [(None, "scroll")]
    if kind == ActionKind.SWIPE:
        return [(None, {"swipe": {"direction": swipe_direction(action.target) or "up"}})]
    return [(f"Custom action: {action.target}", {"tapOn": action.target})]


def render_flow_document(
    name: str,
    steps: Sequence[FlowStep],
    description: str = "",
) -> str:
    """Render steps as a flow document with a comment header."""
    lines = [f"# Generated flow for: {name}"]
    if description:
        lines.append(f"# Description: {description}")
    lines.append("")

    lines.append("flows:")
    # JSON strings are valid double-quoted YAML scalars.
    lines.append(f"  - name: {json.dumps(name, ensure_ascii=False)}")
    lines.append("    steps:")

    for comment, step in steps:
        if comment:
            lines.append(f"      # {comment}")
        dumped = yaml.safe_dump(
            [step], default_flow_style=False, sort_keys=False, allow_unicode=True, width=1000
        )
        lines.extend(f"      {line}" for line in dumped.splitlines())

    return "\n".join(lines) + "\n"


def compile_flow(flow: Flow, actions: Optional[Sequence[Action]] = None) -> str:
    """Compile a flow into a runner flow document."""
    actions = parse_steps(flow.steps) if actions is None else actions
    steps: List[FlowStep] = []
    for action in actions:
        steps.extend(compile_action(action))
    return render_flow_document(flow.name, steps, flow.description)


def _login_steps(params: Dict[str, Any]) -> List[FlowStep]:
    return [
        (None, "launchApp"),
        (None, {"tapOn": "Login"}),
        (None, {"tapOn": "Username"}),
        (None, {"inputText": params.get("username", "")}),
        (None, {"tapOn": "Password"}),
        (None, {"inputText": params.get("password", "")}),
        (None, {"tapOn": "Sign In"}),
        (None, {"assertVisible": "Welcome"}),
    ]


def _navigation_steps(params: Dict[str, Any]) -> List[FlowStep]:
    steps: List[FlowStep] = [(None, "launchApp")]
    for screen in params.get("screens", []):
        steps.append((None, {"tapOn": screen}))
        steps.append((None, {"assertVisible": screen}))
        steps.append((None, "waitForAnimationToEnd"))
    return steps


def _form_steps(params: Dict[str, Any]) -> List[FlowStep]:
    steps: List[FlowStep] = [(None, "launchApp")]
    for field in params.get("fields", []):
        steps.append((None, {"tapOn": field["name"]}))
        steps.append((None, {"inputText": field["value"]}))
    steps.append((None, {"tapOn": "Submit"}))
    steps.append((None, {"assertVisible": "Success"}))
    return steps


def _search_steps(params: Dict[str, Any]) -> List[FlowStep]:
    steps: List[FlowStep] = [
        (None, "launchApp"),
        (None, {"tapOn": "Search"}),
        (None, {"inputText": params.get("query", "")}),
        (None, {"pressKey": "Enter"}),
        (None, "waitForAnimationToEnd"),
    ]
    for expected in params.get("expected_results", []):
        steps.append((None, {"assertVisible": expected}))
    return steps


_PATTERN_BUILDERS = {
    "login": ("Login Flow", _login_steps),
    "navigation": ("Navigation Flow", _navigation_steps),
    "form": ("Form Flow", _form_steps),
    "search": ("Search Flow", _search_steps),
}


def generate_specialized_flow(pattern: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Build a flow document for a common interaction pattern.

    Args:
        pattern: One of login, navigation, form or search
        params: Pattern parameters (username/password, screens, fields,
            query/expected_results)

    Raises:
        ValueError: If the pattern is unknown
    """
    if pattern not in _PATTERN_BUILDERS:
        raise ValueError(f"Unknown flow pattern: {pattern}. Must be one of {FLOW_PATTERNS}")

    name, builder = _PATTERN_BUILDERS[pattern]
    return render_flow_document(name, builder(params or {}))


READ_CHUNK_SIZE = 64 * 1024


async def read_bounded(stream: Optional[asyncio.StreamReader], limit: int) -> bytes:
    """Drain a stream to EOF, keeping only the first `limit` bytes."""
    if stream is None:
        return b""
    kept = bytearray()
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            return bytes(kept)
        if len(kept) < limit:
            kept.extend(chunk[: limit - len(kept)])


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


class DeclarativeFlowAdapter:
    """
    Backend adapter that delegates flows to an external runner process.

    Each flow becomes one document on disk and one runner invocation.
    Documents written by this adapter are removed at cleanup.
    """

    engine = Engine.DECLARATIVE

    def __init__(
        self,
        config: Config,
        artifacts: Optional[ArtifactManager] = None,
        runner_home: Optional[Path] = None,
    ):
        self.config = config
        self.artifacts = artifacts or ArtifactManager(config)
        self.logger = get_logger(__name__, engine=self.engine.value)
        self.runner = config.runner_cli_path
        self.flows_dir = config.flows_dir
        self.runner_home = runner_home or Path.home() / ".maestro" / "tests"
        self.state = AdapterState.UNINITIALIZED
        self.test_config: Optional[TestConfig] = None
        self.flow_files: List[Path] = []

    async def _run_runner(self, *args: str, timeout_ms: int) -> Tuple[int, str, str]:
        """
        Run the runner executable and collect its bounded output.

        The runner gets its own process group so a timeout kills it together
        with everything it spawned.

        Raises:
            RunnerProcessError: If the executable cannot be started
        """
        command = [self.runner, *args]
        self.logger.debug(f"Executing runner command: {' '.join(command)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise RunnerProcessError(
                f"Failed to start flow runner: {e}",
                command=command,
            )

        limit = self.config.runner_output_limit
        try:
            stdout, stderr, _ = await asyncio.wait_for(
                asyncio.gather(
                    read_bounded(process.stdout, limit),
                    read_bounded(process.stderr, limit),
                    process.wait(),
                ),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            self._kill_runner(process)
            await process.wait()
            return -1, "", f"Flow runner timed out after {timeout_ms}ms"

        return process.returncode, _decode(stdout), _decode(stderr)

    def _kill_runner(self, process: asyncio.subprocess.Process) -> None:
        try:
            if hasattr(os, "killpg"):
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            self.logger.debug(f"Flow runner already exited: pid {process.pid}")

    async def initialize(self, config: Optional[TestConfig] = None) -> None:
        """Check the runner is installed and prepare the flow directory."""
        if self.state != AdapterState.UNINITIALIZED:
            return

        self.logger.info("Initializing declarative flow backend")
        try:
            exit_code, _, stderr = await self._run_runner("--version", timeout_ms=self.config.default_timeout)
        except RunnerProcessError as e:
            raise InitializationError(
                f"Declarative backend initialization failed: {e.message}",
                engine=self.engine.value,
            )
        if exit_code != 0:
            raise InitializationError(
                f"Declarative backend initialization failed: {stderr.strip() or exit_code}",
                engine=self.engine.value,
            )

        self.flows_dir.mkdir(parents=True, exist_ok=True)
        self.test_config = config
        self.state = AdapterState.INITIALIZED
        self.logger.info("Declarative flow backend initialized")

    def write_flow_file(self, flow_name: str, document: str) -> Path:
        self.flows_dir.mkdir(parents=True, exist_ok=True)
        path = self.flows_dir / f"{sanitize_name(flow_name, lowercase=True)}_{epoch_ms()}.yaml"
        path.write_text(document, encoding="utf-8")
        self.flow_files.append(path)
        return path

    async def execute_test_flow(
        self, flow: Flow, config: Optional[TestConfig] = None
    ) -> TestResult:
        run = FlowRun(flow=flow, engine=self.engine)
        test_config = config or self.test_config
        self.logger.info(f"Executing declarative flow: {flow.name}")

        try:
            if self.state == AdapterState.UNINITIALIZED:
                raise HybridQAError("Declarative backend not initialized")

            self.state = AdapterState.EXECUTING
            actions = parse_steps(flow.steps)
            for index, action in enumerate(actions, start=1):
                run.logs.append(f"Step {index}: {action.describe()}")

            document = compile_flow(flow, actions)
            flow_file = self.write_flow_file(flow.name, document)
            run.logs.append(f"Generated flow: {flow_file}")
            run.logs.append(f"Flow content:\n{document}")

            timeout_ms = test_config.timeout if test_config else self.config.default_timeout
            started = asyncio.get_event_loop().time()
            exit_code, stdout, stderr = await self._run_runner(
                "test", str(flow_file), timeout_ms=timeout_ms
            )
            elapsed = asyncio.get_event_loop().time() - started
            log_backend_call(
                self.logger, self.engine.value, "test", elapsed, exit_code == 0,
                flow_name=flow.name, exit_code=exit_code,
            )

            if exit_code != 0:
                run.status = TestStatus.FAILED
                run.error = stderr.strip() or "Flow runner execution failed"
            run.metadata["exit_code"] = exit_code
            run.logs.extend(line for line in stdout.splitlines() if line.strip())
            run.logs.extend(line for line in stderr.splitlines() if line.strip())

            for path in self._collect_screenshots(flow.name, stdout, run.status, test_config):
                run.add_screenshot(path)

            result = run.finish(performance=self._collect_performance(elapsed))
            self.logger.info(
                f"Declarative flow completed: {flow.name}",
                extra={"metadata": result.to_summary()},
            )
            return result
        except Exception as e:
            self.logger.error(f"Declarative flow error: {flow.name}: {e}")
            return run.finish(status=TestStatus.ERROR, error=error_message(e))
        finally:
            if self.state == AdapterState.EXECUTING:
                self.state = AdapterState.INITIALIZED

    def _collect_screenshots(
        self,
        test_name: str,
        output: str,
        status: TestStatus,
        test_config: Optional[TestConfig],
    ) -> List[str]:
        screenshots = []
        for index, match in enumerate(SCREENSHOT_SAVED_PATTERN.finditer(output)):
            source = match.group(1).strip()
            try:
                screenshots.append(
                    self.artifacts.import_screenshot(source, test_name, "step", index)
                )
            except HybridQAError as e:
                self.logger.warning(f"Failed to copy screenshot: {source}: {e.message}")

        screenshot_policy = (
            test_config.screenshot_on_failure if test_config else self.config.screenshot_on_failure
        )
        if not screenshots and screenshot_policy:
            try:
                latest = self.find_latest_runner_screenshot()
            except OSError as e:
                self.logger.warning(f"Failed to look up runner screenshots in {self.runner_home}: {e}")
                latest = None
            if latest is not None:
                tag = "failure" if status != TestStatus.PASSED else "step"
                try:
                    screenshots.append(self.artifacts.import_screenshot(latest, test_name, tag, 0))
                except HybridQAError as e:
                    self.logger.warning(f"Failed to copy screenshot: {latest}: {e.message}")

        return screenshots

    def find_latest_runner_screenshot(self) -> Optional[Path]:
        """First PNG in the runner's most recent test output directory."""
        if not self.runner_home.is_dir():
            return None
        # Runner directories are named by timestamp.
        test_dirs = sorted(
            (entry for entry in self.runner_home.iterdir() if entry.is_dir()),
            key=lambda entry: entry.name,
            reverse=True,
        )
        if not test_dirs:
            return None
        pngs = sorted(test_dirs[0].glob("*.png"))
        return pngs[0] if pngs else None

    def _collect_performance(self, elapsed: float) -> Optional[PerformanceMetrics]:
        try:
            return host_performance(load_time=elapsed * 1000)
        except Exception as e:
            self.logger.debug(f"Performance data collection failed: {e}")
            return None

    async def is_available(self) -> bool:
        try:
            exit_code, _, _ = await self._run_runner("--version", timeout_ms=self.config.default_timeout)
            return exit_code == 0
        except RunnerProcessError as e:
            self.logger.debug(f"Flow runner not available: {e.message}")
            return False

    async def get_health_status(self) -> HealthStatus:
        try:
            exit_code, stdout, stderr = await self._run_runner(
                "--version", timeout_ms=self.config.default_timeout
            )
        except RunnerProcessError as e:
            return HealthStatus(status="error", details=e.message)

        if exit_code != 0:
            return HealthStatus(status="error", details=stderr.strip() or f"exit code {exit_code}")
        return HealthStatus(
            status="healthy",
            details={"version": stdout.strip(), "cli_path": self.runner},
        )

    async def cleanup(self) -> None:
        """Delete flow documents written by this adapter."""
        self.state = AdapterState.CLEANED
        failed = []
        for path in self.flow_files:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                failed.append(f"{path}: {e}")

        self.flow_files = []
        self.test_config = None
        self.state = AdapterState.UNINITIALIZED

        if failed:
            raise CleanupError(
                f"Failed to remove flow files: {'; '.join(failed)}",
                engine=self.engine.value,
            )
        self.logger.info("Declarative flow backend cleanup completed")
