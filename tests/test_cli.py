"""
Unit tests for main CLI interface.

Tests strategy execution, step parsing diagnostics and argument handling.
"""

import json
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import make_result
from hybrid_qa import __version__
from hybrid_qa.cli import create_main_parser, load_strategy, main
from hybrid_qa.core.exceptions import ValidationError
from hybrid_qa.execution.aggregator import ResultAggregator
from hybrid_qa.models import Engine, TestStatus


STRATEGY = {
    "primaryEngine": "playwright",
    "testFlows": [
        {"name": "Login", "engine": "playwright", "steps": ['Open https://example.com', 'Tap "Login"']},
    ],
    "rationale": "smoke",
}


def make_suite(status=TestStatus.PASSED):
    now = datetime.now()
    return ResultAggregator().aggregate([make_result("Login", status, Engine.BROWSER)], now, now)


@pytest.fixture
def strategy_file(tmp_path):
    path = tmp_path / "strategy.json"
    path.write_text(json.dumps(STRATEGY))
    return path


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def patched_orchestrator(suite):
    orchestrator = MagicMock()
    orchestrator.execute_tests = AsyncMock(return_value={"results": suite, "artifacts": ["report.json"]})
    return MagicMock(return_value=orchestrator)


class TestRunCommand:
    """Test cases for the run command."""

    @patch("hybrid_qa.cli.setup_logging")
    def test_run_success_writes_output(self, mock_logging, workdir, strategy_file, capsys):
        """Test a passing run returns 0 and writes the suite result."""
        output = workdir / "out" / "results.json"

        with patch("hybrid_qa.cli.QAOrchestrator", patched_orchestrator(make_suite())) as factory:
            code = main(["run", str(strategy_file), "--output", str(output)])

        assert code == 0
        strategy = factory.return_value.execute_tests.call_args[0][0]
        assert strategy.test_flows[0].engine == Engine.BROWSER
        assert json.loads(output.read_text())["summary"]["passed"] == 1
        assert "All flows passed" in capsys.readouterr().out

    @patch("hybrid_qa.cli.setup_logging")
    def test_run_with_failures(self, mock_logging, workdir, strategy_file, capsys):
        """Test a failing flow makes the run exit non-zero."""
        with patch("hybrid_qa.cli.QAOrchestrator", patched_orchestrator(make_suite(TestStatus.FAILED))):
            code = main(["run", str(strategy_file)])

        out = capsys.readouterr().out
        assert code == 1
        assert "❌ Login [browser]" in out
        assert "finished with failures" in out

    @patch("hybrid_qa.cli.setup_logging")
    def test_run_with_test_config(self, mock_logging, workdir, strategy_file):
        """Test a YAML test configuration is passed to the orchestrator."""
        config_file = workdir / "config.yaml"
        config_file.write_text("testTypes:\n  - visual\ntimeout: 5000\n")

        with patch("hybrid_qa.cli.QAOrchestrator", patched_orchestrator(make_suite())) as factory:
            main(["run", str(strategy_file), "--config", str(config_file)])

        test_config = factory.return_value.execute_tests.call_args[0][1]
        assert test_config.timeout == 5000

    @patch("hybrid_qa.cli.setup_logging")
    def test_run_missing_file(self, mock_logging, workdir, capsys):
        code = main(["run", str(workdir / "missing.json")])

        assert code == 1
        assert "File not found" in capsys.readouterr().out

    @patch("hybrid_qa.cli.setup_logging")
    def test_run_invalid_strategy(self, mock_logging, workdir, capsys):
        """Test strategy validation errors are listed."""
        path = workdir / "bad.json"
        path.write_text(json.dumps({"primaryEngine": "selenium"}))

        code = main(["run", str(path)])

        assert code == 1
        assert "Invalid strategy" in capsys.readouterr().out


class TestLoading:
    """Test cases for strategy file loading."""

    def test_yaml_strategy(self, tmp_path):
        path = tmp_path / "strategy.yaml"
        path.write_text(
            "primaryEngine: maestro\n"
            "testFlows:\n"
            "  - name: Checkout\n"
            "    engine: maestro\n"
            "    steps: ['Tap \"Buy\"']\n"
        )

        strategy = load_strategy(path)

        assert strategy.primary_engine == Engine.DECLARATIVE
        assert strategy.test_flows[0].steps == ['Tap "Buy"']

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "strategy.json"
        path.write_text("[1, 2]")

        with pytest.raises(ValidationError):
            load_strategy(path)


class TestUtilityCommands:
    """Test cases for parse, version and argument handling."""

    def test_parse_json(self, capsys):
        """Test parsed actions are printed as JSON."""
        code = main(["parse", 'Tap "Login"', "Wait 2 seconds", "--json"])

        actions = json.loads(capsys.readouterr().out)
        assert code == 0
        assert actions[0]["kind"] == "tap"
        assert actions[0]["target"] == "Login"
        assert actions[1]["kind"] == "wait"
        assert actions[1]["value"] == "2000"

    def test_parse_text(self, capsys):
        code = main(["parse", 'Enter "bob" into "Username"'])

        out = capsys.readouterr().out
        assert code == 0
        assert "1. Enter" in out
        assert "(value: bob)" in out

    def test_version(self, capsys):
        assert main(["version"]) == 0
        assert __version__ in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_parser_verbose_flag(self):
        args = create_main_parser().parse_args(["--verbose", "health"])

        assert args.verbose is True
        assert args.command == "health"
