"""
Unit tests for artifact naming and storage.
"""

import json
import re
from pathlib import Path

import pytest

from hybrid_qa.core.exceptions import ArtifactCollectionError
from hybrid_qa.execution.artifacts import ArtifactManager, sanitize_name


@pytest.fixture
def sample_file(tmp_path):
    path = tmp_path / "sample.png"
    path.write_bytes(b"png")
    return path


class TestSanitizeName:
    """Test cases for sanitize_name."""

    def test_replaces_unsafe_characters(self):
        assert sanitize_name("Login Flow: iOS/v2") == "Login_Flow__iOS_v2"

    def test_lowercase(self):
        assert sanitize_name("Login Flow", lowercase=True) == "login_flow"


class TestArtifactManager:
    """Test cases for ArtifactManager."""

    def test_initialization(self, artifact_manager, temp_config):
        """Test artifact directories follow the configuration."""
        assert artifact_manager.run_id == "test_run_123"
        assert artifact_manager.screenshots_dir == temp_config.artifacts_dir / "screenshots"
        assert artifact_manager.videos_dir == temp_config.artifacts_dir / "videos"
        assert artifact_manager.reports_dir == temp_config.artifacts_dir / "reports"

    def test_ensure_directories(self, artifact_manager):
        """Test all artifact directories are created."""
        artifact_manager.ensure_directories()

        assert artifact_manager.screenshots_dir.is_dir()
        assert artifact_manager.videos_dir.is_dir()
        assert artifact_manager.reports_dir.is_dir()

    def test_screenshot_naming(self, artifact_manager):
        """Test screenshot names carry test, tag, step and timestamp."""
        path = artifact_manager.screenshot_path("Login Flow", "failure", 1)

        assert path.parent == artifact_manager.screenshots_dir
        assert re.fullmatch(r"Login_Flow_failure_1_\d+\.png", path.name)

    def test_screenshot_invalid_tag(self, artifact_manager):
        """Test unknown tags are rejected."""
        with pytest.raises(ValueError):
            artifact_manager.screenshot_path("Login", "debug", 0)

    def test_screenshot_names_unique(self, artifact_manager):
        """Test names colliding in the same millisecond get a counter."""
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr("hybrid_qa.execution.artifacts.epoch_ms", lambda: 1700000000000)
            first = artifact_manager.screenshot_path("Login", "step", 0)
            first.write_bytes(b"x")
            second = artifact_manager.screenshot_path("Login", "step", 0)

        assert first != second
        assert second.name == "Login_step_0_1700000000000_1.png"

    def test_import_screenshot(self, artifact_manager, sample_file):
        """Test external screenshots are copied under the naming scheme."""
        copied = Path(artifact_manager.import_screenshot(sample_file, "Flow", "step", 2))

        assert copied.name.startswith("Flow_step_2_")
        assert copied.read_bytes() == b"png"
        assert sample_file.exists()

    def test_import_missing_screenshot(self, artifact_manager, tmp_path):
        """Test a missing source raises ArtifactCollectionError."""
        with pytest.raises(ArtifactCollectionError) as exc_info:
            artifact_manager.import_screenshot(tmp_path / "missing.png", "Flow")

        assert exc_info.value.artifact_type == "screenshot"

    def test_rename_video(self, artifact_manager, tmp_path):
        """Test videos are moved and named after the test."""
        source = tmp_path / "random-id.webm"
        source.write_bytes(b"video")

        destination = Path(artifact_manager.rename_video(source, "Checkout Flow"))

        assert re.fullmatch(r"Checkout_Flow_\d+\.webm", destination.name)
        assert destination.exists()
        assert not source.exists()

    def test_write_report(self, artifact_manager):
        """Test reports are written as JSON."""
        path = Path(artifact_manager.write_report("exec_1", {"total": 2}))

        assert path.parent == artifact_manager.reports_dir
        assert json.loads(path.read_text()) == {"total": 2}

    def test_write_report_failure(self, artifact_manager):
        """Test an unwritable reports directory raises ArtifactCollectionError."""
        reports_dir = artifact_manager.reports_dir
        reports_dir.mkdir(parents=True, exist_ok=True)
        reports_dir.rmdir()
        reports_dir.write_text("not a directory")

        with pytest.raises(ArtifactCollectionError) as exc_info:
            artifact_manager.write_report("exec_1", {"total": 2})

        assert exc_info.value.error_code == "ARTIFACT_COLLECTION_FAILED"

    def test_default_run_id(self, temp_config):
        """Test the manager works without a run id."""
        assert ArtifactManager(temp_config).run_id is None
