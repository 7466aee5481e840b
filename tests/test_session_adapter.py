"""
Unit tests for the session (Appium) backend adapter.

The WebDriver client is replaced by an in-memory fake so no device server is
required.
"""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from conftest import FakeWebDriverClient, make_flow
from hybrid_qa.core.exceptions import CleanupError, InitializationError
from hybrid_qa.engines.base import AdapterState, BackendAdapter
from hybrid_qa.engines.session import SessionAdapter, swipe_actions, swipe_vector
from hybrid_qa.models import Engine, TestConfig, TestStatus


@pytest.fixture
def client():
    return FakeWebDriverClient(
        elements={
            ("xpath", '//*[@text="Login"]'): "el-login",
            ("accessibility id", "Username"): "el-user",
            ("accessibility id", "Banner"): "el-banner",
        },
        hidden={"el-banner"},
    )


@pytest.fixture
def adapter(temp_config, artifact_manager, client):
    return SessionAdapter(temp_config, artifact_manager, client=client)


def session_flow(steps):
    return make_flow("Session Flow", Engine.SESSION, steps)


class TestCapabilities:
    """Test cases for capability derivation."""

    def test_default_ios(self, adapter):
        """Test iOS simulator defaults when no device is configured."""
        caps = adapter.build_capabilities()

        assert caps["platformName"] == "iOS"
        assert caps["appium:automationName"] == "XCUITest"
        assert caps["appium:deviceName"] == "iPhone Simulator"
        assert caps["appium:noReset"] is True
        assert "appium:udid" not in caps

    def test_ios_udid_from_config(self, temp_config, client):
        """Test the simulator UDID comes from configuration."""
        temp_config.ios_simulator_udid = "SIM-123"
        adapter = SessionAdapter(temp_config, client=client)

        assert adapter.build_capabilities()["appium:udid"] == "SIM-123"

    def test_android_device(self, adapter):
        """Test the first configured device selects Android capabilities."""
        test_config = TestConfig.model_validate(
            {
                "devices": [
                    {"platform": "android", "deviceName": "Pixel 7", "platformVersion": "14"},
                    {"platform": "ios", "deviceName": "iPhone 15"},
                ]
            }
        )

        caps = adapter.build_capabilities(test_config)

        assert caps["platformName"] == "Android"
        assert caps["appium:automationName"] == "UiAutomator2"
        assert caps["appium:deviceName"] == "Pixel 7"
        assert caps["appium:platformVersion"] == "14"


class TestSwipeGeometry:
    """Test cases for swipe coordinates."""

    @pytest.mark.parametrize(
        "direction,expected",
        [
            ("up", (200, 640, 200, 160)),
            ("down", (200, 160, 200, 640)),
            ("left", (320, 400, 80, 400)),
            ("right", (80, 400, 320, 400)),
        ],
    )
    def test_swipe_vector(self, direction, expected):
        """Test swipes span 80% to 20% of the screen."""
        assert swipe_vector(direction, 400, 800) == pytest.approx(expected)

    def test_unknown_direction(self):
        """Test unknown directions are rejected."""
        with pytest.raises(ValueError):
            swipe_vector("diagonal", 400, 800)

    def test_pointer_sequence(self):
        """Test the W3C pointer sequence uses one touch finger."""
        actions = swipe_actions(200, 640, 200, 160)

        assert actions[0]["id"] == "finger1"
        assert actions[0]["parameters"] == {"pointerType": "touch"}
        assert [a["type"] for a in actions[0]["actions"]] == [
            "pointerMove",
            "pointerDown",
            "pointerMove",
            "pointerUp",
        ]


class TestSessionAdapter:
    """Test cases for SessionAdapter lifecycle and flow execution."""

    def test_satisfies_contract(self, adapter):
        """Test the adapter implements the backend contract."""
        assert isinstance(adapter, BackendAdapter)
        assert adapter.engine == Engine.SESSION
        assert adapter.state == AdapterState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_initialize(self, adapter, client):
        """Test initialization creates a session with derived capabilities."""
        await adapter.initialize()

        assert adapter.state == AdapterState.INITIALIZED
        assert client.session_id == "session-1"
        assert client.capabilities["platformName"] == "iOS"

    @pytest.mark.asyncio
    async def test_initialize_failure(self, adapter, client):
        """Test an unreachable server raises InitializationError."""
        client.create_error = ConnectionError("connection refused")

        with pytest.raises(InitializationError) as exc_info:
            await adapter.initialize()

        assert exc_info.value.engine == "session"
        assert "connection refused" in exc_info.value.message
        assert adapter.state == AdapterState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_flow_passes(self, adapter, client):
        """Test a flow of tap, input and swipe against the fake session."""
        await adapter.initialize()
        flow = session_flow(
            ["Launch the app", 'Tap "Login"', 'Type "bob" into "Username"', "Swipe up"]
        )

        result = await adapter.execute_test_flow(flow)

        assert result.status == TestStatus.PASSED
        assert result.error is None
        assert result.engine == Engine.SESSION
        assert client.clicked == ["el-login"]
        assert client.typed == [("el-user", "bob")]
        first_move = client.pointer_actions[0][0]["actions"][0]
        assert (first_move["x"], first_move["y"]) == (200, 640)
        assert 'Resolved "Login" via xpath-text' in result.logs
        assert 'Resolved "Username" via accessibility-id' in result.logs
        # Step screenshots after the tap and the input.
        assert len(result.screenshots) == 2
        assert all(Path(p).exists() for p in result.screenshots)
        assert result.performance is not None
        assert adapter.state == AdapterState.INITIALIZED

    @pytest.mark.asyncio
    async def test_step_screenshots_disabled(self, adapter):
        """Test the per-run option turns step screenshots off."""
        await adapter.initialize()
        test_config = TestConfig(screenshot_on_failure=False)

        result = await adapter.execute_test_flow(session_flow(['Tap "Login"']), test_config)

        assert result.status == TestStatus.PASSED
        assert result.screenshots == []

    @pytest.mark.asyncio
    async def test_hidden_element_fails_verify(self, adapter):
        """Test a hidden element does not satisfy a verify step."""
        await adapter.initialize()

        result = await adapter.execute_test_flow(session_flow(['Verify "Banner"']))

        assert result.status == TestStatus.FAILED
        assert result.error.startswith("Step 1 failed:")
        assert "Banner" in result.error
        assert result.metadata["failed_step"] == 1
        assert len(result.screenshots) == 1
        assert "_failure_0_" in Path(result.screenshots[0]).name

    @pytest.mark.asyncio
    async def test_unknown_swipe_direction_fails(self, adapter, client):
        """Test a swipe with no direction fails the step."""
        await adapter.initialize()

        result = await adapter.execute_test_flow(session_flow(["Swipe somewhere", 'Tap "Login"']))

        assert result.status == TestStatus.FAILED
        assert result.error.startswith("Step 1 failed: Unknown swipe direction")
        assert client.pointer_actions == []
        assert client.clicked == []

    @pytest.mark.asyncio
    async def test_scroll_uses_mobile_script(self, adapter, client):
        """Test scroll targets the resolved element."""
        await adapter.initialize()

        result = await adapter.execute_test_flow(session_flow(['Scroll to "Login"']))

        assert result.status == TestStatus.PASSED
        assert client.scripts == [("mobile: scroll", [{"elementId": "el-login", "toVisible": True}])]

    @pytest.mark.asyncio
    async def test_not_initialized(self, adapter):
        """Test executing without a session yields an error result."""
        result = await adapter.execute_test_flow(session_flow(['Tap "Login"']))

        assert result.status == TestStatus.ERROR
        assert result.error == "Session backend not initialized"

    @pytest.mark.asyncio
    async def test_health_ready(self, adapter, client):
        """Test a ready server reports healthy."""
        client.status_value = {"ready": True, "message": "Appium is ready", "build": {"version": "2.5"}}

        health = await adapter.get_health_status()

        assert health.status == "healthy"
        assert health.details["message"] == "Appium is ready"
        assert await adapter.is_available() is True

    @pytest.mark.asyncio
    async def test_health_not_ready(self, adapter, client):
        """Test a server that is not ready reports unhealthy with raw details."""
        client.status_value = {"ready": False, "message": "starting"}

        health = await adapter.get_health_status()

        assert health.status == "unhealthy"
        assert health.details == {"ready": False, "message": "starting"}

    @pytest.mark.asyncio
    async def test_health_unreachable(self, adapter, client):
        """Test an unreachable server reports error."""
        client.status_value = ConnectionError("refused")

        health = await adapter.get_health_status()

        assert health.status == "error"
        assert "refused" in health.details
        assert await adapter.is_available() is False

    @pytest.mark.asyncio
    async def test_cleanup(self, adapter, client):
        """Test cleanup deletes the session and closes the client."""
        await adapter.initialize()

        await adapter.cleanup()

        assert client.deleted is True
        assert client.closed is True
        assert adapter.state == AdapterState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_cleanup_failure(self, adapter, client):
        """Test a failed session delete raises CleanupError but still closes."""
        await adapter.initialize()
        client.delete_session = AsyncMock(side_effect=RuntimeError("session gone"))

        with pytest.raises(CleanupError):
            await adapter.cleanup()

        assert client.closed is True
        assert adapter.state == AdapterState.UNINITIALIZED
