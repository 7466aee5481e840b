"""
Unit tests for Config class.

Tests configuration defaults, environment variable handling and validation
for the backends and the coordinator.
"""

import os
from unittest.mock import patch

import pytest

from hybrid_qa.core.config import Config
from hybrid_qa.core.exceptions import ValidationError


class TestConfig:
    """Test cases for Config class."""

    def test_default_config_creation(self, tmp_path):
        """Test creating config with default values."""
        config = Config(artifacts_dir=tmp_path / "a", logs_dir=tmp_path / "l")

        assert config.ci_mode is False
        assert config.headless_mode is None
        assert config.log_level == "INFO"
        assert config.log_format == "text"
        assert config.appium_url == "http://localhost:4723/wd/hub"
        assert config.runner_cli_path == "maestro"
        assert config.browsers == ["chromium"]
        assert config.default_timeout == 30000
        assert config.screenshot_on_failure is True
        assert config.video_recording is False
        assert config.is_headless is False

    @patch.dict(os.environ, {"CI": "true"})
    def test_ci_mode_detection(self, temp_config):
        """Test CI mode switches to JSON logs and headless browsers."""
        config = Config(artifacts_dir=temp_config.artifacts_dir, logs_dir=temp_config.logs_dir)

        assert config.ci_mode is True
        assert config.log_format == "json"
        assert config.is_headless is True

    @patch.dict(os.environ, {"HYBRID_QA_HEADLESS": "false", "CI": "true"})
    def test_headless_override(self, temp_config):
        """Test explicit headless setting wins over CI mode."""
        config = Config(artifacts_dir=temp_config.artifacts_dir, logs_dir=temp_config.logs_dir)

        assert config.is_headless is False

    @patch.dict(
        os.environ,
        {
            "HYBRID_QA_LOG_LEVEL": "debug",
            "APPIUM_HOST": "grid.local",
            "APPIUM_PORT": "4444",
            "APPIUM_BASE_PATH": "/",
            "MAESTRO_CLI_PATH": "/opt/maestro/bin/maestro",
            "PLAYWRIGHT_BROWSERS": "chromium, firefox",
            "DEFAULT_TEST_TIMEOUT": "60000",
            "SCREENSHOT_ON_FAILURE": "false",
            "VIDEO_RECORDING": "true",
            "IOS_SIMULATOR_UDID": "SIM-1",
            "ANDROID_DEVICE_NAME": "Pixel 7",
        },
    )
    def test_environment_variable_override(self, temp_config):
        """Test all environment variable overrides."""
        config = Config(artifacts_dir=temp_config.artifacts_dir, logs_dir=temp_config.logs_dir)

        assert config.log_level == "DEBUG"
        assert config.debug_enabled is True
        assert config.appium_url == "http://grid.local:4444"
        assert config.runner_cli_path == "/opt/maestro/bin/maestro"
        assert config.browsers == ["chromium", "firefox"]
        assert config.default_timeout == 60000
        assert config.screenshot_on_failure is False
        assert config.video_recording is True
        assert config.ios_simulator_udid == "SIM-1"
        assert config.android_device_name == "Pixel 7"

    @patch.dict(os.environ, {"APPIUM_PORT": "not-a-port", "DEFAULT_TEST_TIMEOUT": "soon"})
    def test_invalid_numbers_ignored(self, temp_config):
        """Test malformed numeric overrides keep the defaults."""
        config = Config(artifacts_dir=temp_config.artifacts_dir, logs_dir=temp_config.logs_dir)

        assert config.appium_port == 4723
        assert config.default_timeout == 30000

    def test_log_level_normalization(self, temp_config):
        """Test WARN is mapped and unknown levels fall back to INFO."""
        assert Config(log_level="warn", artifacts_dir=temp_config.artifacts_dir,
                      logs_dir=temp_config.logs_dir).log_level == "WARNING"
        assert Config(log_level="verbose", artifacts_dir=temp_config.artifacts_dir,
                      logs_dir=temp_config.logs_dir).log_level == "INFO"

    def test_from_env_class_method(self, monkeypatch, tmp_path):
        """Test creating config from environment using class method."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("CI", "true")
        monkeypatch.setenv("HYBRID_QA_LOG_LEVEL", "ERROR")

        config = Config.from_env()

        assert config.ci_mode is True
        assert config.log_level == "ERROR"
        assert config.log_format == "json"

    def test_directories_created(self, temp_config):
        """Test artifact and log directories exist after construction."""
        assert temp_config.artifacts_dir.is_dir()
        assert temp_config.logs_dir.is_dir()
        assert temp_config.screenshots_dir == temp_config.artifacts_dir / "screenshots"
        assert temp_config.flows_dir == temp_config.temp_dir / "declarative-flows"

    def test_validate_valid_config(self, temp_config):
        """Test validation of a valid configuration."""
        temp_config.validate()

    def test_validate_invalid_config(self, temp_config):
        """Test every violation is reported."""
        temp_config.appium_port = 70000
        temp_config.browsers = ["chromium", "netscape"]
        temp_config.default_timeout = 10
        temp_config.visual_tolerance = 150

        with pytest.raises(ValidationError) as exc_info:
            temp_config.validate()

        violations = exc_info.value.violations
        assert len(violations) == 4
        assert any("Appium port" in v for v in violations)
        assert any("netscape" in v for v in violations)
        assert exc_info.value.validation_type == "config"

    def test_to_dict(self, temp_config):
        """Test configuration serializes for logging."""
        data = temp_config.to_dict()

        assert data["appium_url"] == "http://localhost:4723/wd/hub"
        assert data["browsers"] == ["chromium"]
        assert data["artifacts_dir"] == str(temp_config.artifacts_dir)
