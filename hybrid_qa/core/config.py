"""
Configuration management for Hybrid QA.

Handles environment variables, defaults, and configuration validation
for the backend adapters and the execution coordinator.
"""

import os
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from pathlib import Path


def _env_flag(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value.lower() == "true"


@dataclass
class Config:
    """Configuration class for Hybrid QA with environment variable support."""

    # Environment detection
    ci_mode: bool = field(default=False)

    # Execution settings
    headless_mode: Optional[bool] = field(default=None)

    # Logging configuration
    log_level: str = field(default="INFO")
    log_format: str = field(default="text")

    # Session backend (Appium server)
    appium_host: str = field(default="localhost")
    appium_port: int = field(default=4723)
    appium_base_path: str = field(default="/wd/hub")
    ios_simulator_udid: Optional[str] = field(default=None)
    android_device_name: Optional[str] = field(default=None)

    # Declarative backend (flow runner executable)
    runner_cli_path: str = field(default="maestro")
    runner_output_limit: int = field(default=1024 * 1024)

    # Browser backend
    browsers: List[str] = field(default_factory=lambda: ["chromium"])

    # Testing behaviour
    default_timeout: int = field(default=30000)
    screenshot_on_failure: bool = field(default=True)
    video_recording: bool = field(default=False)
    action_delay_ms: int = field(default=500)
    flow_delay_ms: int = field(default=1000)
    selector_timeout_ms: int = field(default=2000)
    visual_tolerance: float = field(default=5.0)

    # Session registry
    session_max_age_hours: float = field(default=24.0)

    # Directory paths
    project_root: Path = field(default_factory=lambda: Path.cwd())
    artifacts_dir: Path = field(default_factory=lambda: Path.cwd() / "artifacts")
    logs_dir: Path = field(default_factory=lambda: Path.cwd() / "logs")
    temp_dir: Path = field(default_factory=lambda: Path.cwd() / "temp")

    def __post_init__(self):
        """Post-initialization validation and setup."""
        # CI mode
        ci_env = os.getenv("CI", "").lower() == "true"
        if ci_env and self.ci_mode is False:
            self.ci_mode = True

        # Headless override via env
        headless_env = _env_flag("HYBRID_QA_HEADLESS")
        if headless_env is not None:
            self.headless_mode = headless_env

        log_env = os.getenv("HYBRID_QA_LOG_LEVEL")
        if log_env:
            self.log_level = log_env

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if self.log_level.upper() == "WARN":
            self.log_level = "WARNING"
        if self.log_level.upper() not in valid_log_levels:
            self.log_level = "INFO"
        else:
            self.log_level = self.log_level.upper()

        # Determine log format based on CI mode unless explicitly set otherwise
        if self.ci_mode and self.log_format == "text":
            self.log_format = "json"

        # Backend endpoints
        self.appium_host = os.getenv("APPIUM_HOST", self.appium_host)
        port_env = os.getenv("APPIUM_PORT")
        if port_env:
            try:
                self.appium_port = int(port_env)
            except ValueError:
                pass
        self.appium_base_path = os.getenv("APPIUM_BASE_PATH", self.appium_base_path)
        self.ios_simulator_udid = os.getenv(
            "IOS_SIMULATOR_UDID", self.ios_simulator_udid
        )
        self.android_device_name = os.getenv(
            "ANDROID_DEVICE_NAME", self.android_device_name
        )
        self.runner_cli_path = os.getenv("MAESTRO_CLI_PATH", self.runner_cli_path)

        browsers_env = os.getenv("PLAYWRIGHT_BROWSERS")
        if browsers_env:
            self.browsers = [b.strip() for b in browsers_env.split(",") if b.strip()]

        timeout_env = os.getenv("DEFAULT_TEST_TIMEOUT")
        if timeout_env:
            try:
                self.default_timeout = int(timeout_env)
            except ValueError:
                pass

        screenshot_env = _env_flag("SCREENSHOT_ON_FAILURE")
        if screenshot_env is not None:
            self.screenshot_on_failure = screenshot_env

        video_env = _env_flag("VIDEO_RECORDING")
        if video_env is not None:
            self.video_recording = video_env

        # Ensure directories exist
        self.artifacts_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    @property
    def is_headless(self) -> bool:
        """Get effective headless mode setting."""
        if self.headless_mode is not None:
            return self.headless_mode
        return self.ci_mode

    @property
    def is_ci_mode(self) -> bool:
        """Check if running in CI environment."""
        return self.ci_mode

    @property
    def debug_enabled(self) -> bool:
        """Check if debug logging is enabled."""
        return self.log_level == "DEBUG"

    @property
    def appium_url(self) -> str:
        """Base URL of the Appium server."""
        base_path = self.appium_base_path.rstrip("/")
        return f"http://{self.appium_host}:{self.appium_port}{base_path}"

    @property
    def screenshots_dir(self) -> Path:
        return self.artifacts_dir / "screenshots"

    @property
    def videos_dir(self) -> Path:
        return self.artifacts_dir / "videos"

    @property
    def flows_dir(self) -> Path:
        return self.temp_dir / "declarative-flows"

    def get_log_file_path(self) -> Path:
        """Get the main log file path."""
        return self.logs_dir / "hybrid-qa.log"

    def get_debug_log_dir(self) -> Path:
        """Get the debug log directory path."""
        debug_dir = self.logs_dir / "debug"
        debug_dir.mkdir(exist_ok=True)
        return debug_dir

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for logging."""
        return {
            "ci_mode": self.ci_mode,
            "headless_mode": self.headless_mode,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "appium_url": self.appium_url,
            "runner_cli_path": self.runner_cli_path,
            "browsers": list(self.browsers),
            "default_timeout": self.default_timeout,
            "screenshot_on_failure": self.screenshot_on_failure,
            "video_recording": self.video_recording,
            "artifacts_dir": str(self.artifacts_dir),
            "logs_dir": str(self.logs_dir),
            "temp_dir": str(self.temp_dir),
        }

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        ci = os.getenv("CI", "").lower() == "true"
        return cls(
            ci_mode=ci,
            log_level=os.getenv("HYBRID_QA_LOG_LEVEL", "INFO").upper(),
            log_format="json" if ci else "text",
        )

    def validate(self) -> None:
        """Validate configuration and raise ValidationError if invalid."""
        from .exceptions import ValidationError

        errors = []

        if not 0 < self.appium_port < 65536:
            errors.append(f"Invalid Appium port: {self.appium_port}")

        if not self.runner_cli_path:
            errors.append("Flow runner CLI path cannot be empty")

        supported = {"chromium", "chrome", "firefox", "webkit", "safari"}
        unknown = [b for b in self.browsers if b.lower() not in supported]
        if unknown:
            errors.append(f"Unsupported browsers: {unknown}. Must be in {sorted(supported)}")

        if self.default_timeout < 1000:
            errors.append(f"Default timeout too small: {self.default_timeout}ms")

        if self.selector_timeout_ms <= 0:
            errors.append("Selector timeout must be positive")

        if not 0 <= self.visual_tolerance <= 100:
            errors.append(f"Visual tolerance must be a percentage: {self.visual_tolerance}")

        if errors:
            message = "Configuration validation failed: " + "; ".join(errors)
            raise ValidationError(
                message,
                validation_type="config",
                violations=errors,
            )
