"""
Artifact storage for screenshots, videos and reports.

Provides the naming contract shared by every backend and organized storage
under the artifacts/ directory.
"""

import json
import re
import shutil
import time
from pathlib import Path
from typing import Optional, Union

from ..core.config import Config
from ..core.exceptions import ArtifactCollectionError
from ..core.logging_config import get_logger

SCREENSHOT_TAGS = ("step", "failure", "visual")

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


def sanitize_name(name: str, lowercase: bool = False) -> str:
    """Replace every non-alphanumeric character with an underscore."""
    sanitized = _UNSAFE_CHARS.sub("_", name)
    return sanitized.lower() if lowercase else sanitized


def epoch_ms() -> int:
    return int(time.time() * 1000)


def _unique(path: Path) -> Path:
    """Suffix a counter when a name collides within the same millisecond."""
    if not path.exists():
        return path
    counter = 1
    while True:
        candidate = path.with_name(f"{path.stem}_{counter}{path.suffix}")
        if not candidate.exists():
            return candidate
        counter += 1


class ArtifactManager:
    """
    Manages artifact locations and file naming for test flows.

    Screenshots are named ``<test>_<tag>_<step-index>_<epoch-ms>.png`` and
    videos ``<test>_<epoch-ms>.<ext>``.
    """

    def __init__(self, config: Config, run_id: Optional[str] = None):
        """
        Initialize the artifact manager.

        Args:
            config: Hybrid QA configuration
            run_id: Optional run identifier used for log correlation
        """
        self.config = config
        self.run_id = run_id
        self.logger = (
            get_logger(__name__, run_id=run_id) if run_id else get_logger(__name__)
        )

        self.artifacts_root = config.artifacts_dir
        self.screenshots_dir = config.screenshots_dir
        self.videos_dir = config.videos_dir
        self.reports_dir = config.artifacts_dir / "reports"

    def ensure_directories(self) -> None:
        for directory in (self.screenshots_dir, self.videos_dir, self.reports_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def screenshot_path(self, test_name: str, tag: str, step_index: int) -> Path:
        """Path for a new screenshot of a test step."""
        if tag not in SCREENSHOT_TAGS:
            raise ValueError(f"Screenshot tag must be one of: {SCREENSHOT_TAGS}")

        self.screenshots_dir.mkdir(parents=True, exist_ok=True)
        filename = f"{sanitize_name(test_name)}_{tag}_{step_index}_{epoch_ms()}.png"
        return _unique(self.screenshots_dir / filename)

    def video_path(self, test_name: str, extension: str = "webm") -> Path:
        self.videos_dir.mkdir(parents=True, exist_ok=True)
        filename = f"{sanitize_name(test_name)}_{epoch_ms()}.{extension}"
        return _unique(self.videos_dir / filename)

    def import_screenshot(
        self,
        source: Union[str, Path],
        test_name: str,
        tag: str = "step",
        step_index: int = 0,
    ) -> str:
        """
        Copy an externally produced screenshot into the screenshots directory.

        Raises:
            ArtifactCollectionError: If the source cannot be copied
        """
        destination = self.screenshot_path(test_name, tag, step_index)
        try:
            shutil.copyfile(str(source), str(destination))
        except OSError as e:
            raise ArtifactCollectionError(
                f"Failed to copy screenshot {source}: {e}",
                file_path=str(source),
                artifact_type="screenshot",
            )

        self.logger.debug(f"Screenshot copied: {source} -> {destination}")
        return str(destination)

    def rename_video(self, source: Union[str, Path], test_name: str) -> str:
        """
        Rename a recorded video so its name carries the test name.

        Raises:
            ArtifactCollectionError: If the video cannot be moved
        """
        source = Path(source)
        destination = self.video_path(test_name, source.suffix.lstrip(".") or "webm")
        try:
            shutil.move(str(source), str(destination))
        except OSError as e:
            raise ArtifactCollectionError(
                f"Failed to rename video {source}: {e}",
                file_path=str(source),
                artifact_type="video",
            )

        self.logger.debug(f"Video saved: {destination}")
        return str(destination)

    def write_report(self, name: str, payload: dict) -> str:
        """Write a JSON report into the reports directory."""
        path = self.reports_dir / f"{sanitize_name(name)}_{epoch_ms()}.json"
        try:
            self.reports_dir.mkdir(parents=True, exist_ok=True)
            path = _unique(path)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False, default=str)
        except OSError as e:
            raise ArtifactCollectionError(
                f"Failed to write report {path}: {e}",
                file_path=str(path),
                artifact_type="report",
            )

        self.logger.info(f"Report written: {path}")
        return str(path)
