"""
Session-driver backend for native mobile apps.

Drives one persistent WebDriver session on an Appium server for the
adapter's lifetime.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from ..core.config import Config
from ..core.exceptions import CleanupError, HybridQAError, InitializationError
from ..core.logging_config import get_logger
from ..execution.artifacts import ArtifactManager
from ..models import (
    Action,
    ActionKind,
    Engine,
    Flow,
    HealthStatus,
    PerformanceMetrics,
    Platform,
    TestConfig,
    TestResult,
    TestStatus,
)
from ..parsing import parse_steps, wait_duration_ms
from .base import (
    AdapterState,
    FlowRun,
    capture_step_screenshots,
    error_message,
    host_performance,
    run_actions,
    safe_capture,
    swipe_direction,
)
from .selectors import SelectorResolver, SelectorStrategy
from .webdriver_client import WebDriverClient, WebDriverError

# (strategy name, locator strategy, value template)
SESSION_SELECTORS: Tuple[Tuple[str, str, str], ...] = (
    ("accessibility-id", "accessibility id", "{target}"),
    ("name", "xpath", '//*[@name="{target}"]'),
    ("ios-class-chain", "-ios class chain", '**/XCUIElementTypeButton[`label == "{target}"`]'),
    ("android-uiautomator", "-android uiautomator", 'new UiSelector().text("{target}")'),
    ("xpath-text", "xpath", '//*[@text="{target}"]'),
    ("xpath-label-contains", "xpath", '//*[contains(@label,"{target}")]'),
)


def swipe_vector(direction: str, width: int, height: int) -> Tuple[float, float, float, float]:
    """Start and end points of a swipe across 80%/20% of the screen."""
    if direction == "up":
        return width / 2, height * 0.8, width / 2, height * 0.2
    if direction == "down":
        return width / 2, height * 0.2, width / 2, height * 0.8
    if direction == "left":
        return width * 0.8, height / 2, width * 0.2, height / 2
    if direction == "right":
        return width * 0.2, height / 2, width * 0.8, height / 2
    raise ValueError(f"Unknown swipe direction: {direction}")


def swipe_actions(start_x: float, start_y: float, end_x: float, end_y: float) -> List[Dict[str, Any]]:
    """W3C pointer action sequence for a single-finger drag."""
    return [
        {
            "type": "pointer",
            "id": "finger1",
            "parameters": {"pointerType": "touch"},
            "actions": [
                {"type": "pointerMove", "duration": 0, "x": int(start_x), "y": int(start_y)},
                {"type": "pointerDown", "button": 0},
                {"type": "pointerMove", "duration": 300, "x": int(end_x), "y": int(end_y)},
                {"type": "pointerUp", "button": 0},
            ],
        }
    ]


class SessionAdapter:
    """
    Backend adapter driving a native app through an Appium session.

    The session is created at initialize and kept until cleanup; every flow
    runs against the same app instance.
    """

    engine = Engine.SESSION

    def __init__(
        self,
        config: Config,
        artifacts: Optional[ArtifactManager] = None,
        client: Optional[WebDriverClient] = None,
    ):
        self.config = config
        self.artifacts = artifacts or ArtifactManager(config)
        self.logger = get_logger(__name__, engine=self.engine.value)
        self.client = client or WebDriverClient(
            config.appium_url,
            timeout=config.default_timeout / 1000,
            logger=self.logger,
        )
        self.state = AdapterState.UNINITIALIZED
        self.capabilities: Dict[str, Any] = {}
        self.test_config: Optional[TestConfig] = None
        self.resolver = SelectorResolver(
            [self._strategy(name, using, template) for name, using, template in SESSION_SELECTORS],
            is_visible=self.client.is_displayed,
            timeout_ms=config.selector_timeout_ms,
            logger=self.logger,
        )

    def _strategy(self, name: str, using: str, template: str) -> SelectorStrategy:
        async def locate(target: str, timeout_ms: int) -> Optional[str]:
            try:
                return await self.client.find_element(using, template.format(target=target))
            except WebDriverError as e:
                if e.is_no_such_element:
                    return None
                raise

        return SelectorStrategy(name=name, locate=locate)

    def build_capabilities(self, test_config: Optional[TestConfig] = None) -> Dict[str, Any]:
        """Derive W3C capabilities from the first configured device."""
        platform = Platform.IOS
        device_name = "iPhone Simulator"
        platform_version = None
        udid = None

        if test_config and test_config.devices:
            device = test_config.devices[0]
            platform = device.platform
            device_name = device.device_name
            platform_version = device.platform_version
            udid = device.udid

        if platform == Platform.IOS:
            capabilities = {"platformName": "iOS", "appium:automationName": "XCUITest"}
            udid = udid or self.config.ios_simulator_udid
        else:
            capabilities = {"platformName": "Android", "appium:automationName": "UiAutomator2"}
            if not (test_config and test_config.devices) and self.config.android_device_name:
                device_name = self.config.android_device_name

        capabilities["appium:deviceName"] = device_name
        capabilities["appium:noReset"] = True
        if platform_version:
            capabilities["appium:platformVersion"] = platform_version
        if udid:
            capabilities["appium:udid"] = udid
        return capabilities

    async def initialize(self, config: Optional[TestConfig] = None) -> None:
        """Create the device session; a second call is a no-op."""
        if self.state != AdapterState.UNINITIALIZED:
            return

        self.logger.info("Initializing session backend")
        self.capabilities = self.build_capabilities(config)
        try:
            session_id = await self.client.create_session(self.capabilities)
        except Exception as e:
            self.logger.error(f"Session backend initialization failed: {e}")
            raise InitializationError(
                f"Session backend initialization failed: {error_message(e)}",
                engine=self.engine.value,
            )

        self.test_config = config
        self.state = AdapterState.INITIALIZED
        self.logger.info(
            "Session backend initialized",
            extra={
                "metadata": {
                    "session_id": session_id,
                    "platform": self.capabilities.get("platformName"),
                    "device": self.capabilities.get("appium:deviceName"),
                }
            },
        )

    async def execute_test_flow(
        self, flow: Flow, config: Optional[TestConfig] = None
    ) -> TestResult:
        run = FlowRun(flow=flow, engine=self.engine)
        self.logger.info(f"Executing session flow: {flow.name}")

        try:
            if self.state == AdapterState.UNINITIALIZED or not self.client.session_id:
                raise HybridQAError("Session backend not initialized")

            self.state = AdapterState.EXECUTING
            actions = parse_steps(flow.steps)

            async def execute(action: Action) -> None:
                await self._execute_action(action, run)

            async def screenshot(index: int, tag: str) -> Optional[str]:
                return await self._take_screenshot(flow.name, index, tag)

            await run_actions(
                run,
                actions,
                execute,
                screenshot,
                step_screenshots=capture_step_screenshots(self.config, config or self.test_config),
                action_delay_ms=self.config.action_delay_ms,
                logger=self.logger,
            )

            result = run.finish(performance=await self._collect_performance())
            self.logger.info(
                f"Session flow completed: {flow.name}",
                extra={"metadata": result.to_summary()},
            )
            return result
        except Exception as e:
            self.logger.error(f"Session flow error: {flow.name}: {e}")
            return run.finish(status=TestStatus.ERROR, error=error_message(e))
        finally:
            if self.state == AdapterState.EXECUTING:
                self.state = AdapterState.INITIALIZED

    async def _execute_action(self, action: Action, run: FlowRun) -> None:
        kind = action.kind

        if kind == ActionKind.LAUNCH:
            # App is launched with the session; reading the tree proves it responds.
            await self.client.page_source()
        elif kind == ActionKind.TAP:
            element = await self._resolve(action.target, run, require_visible=True)
            await self.client.click(element)
        elif kind == ActionKind.INPUT:
            element = await self._resolve(action.target, run, require_visible=True)
            await self.client.clear(element)
            await self.client.send_keys(element, action.value or "")
        elif kind == ActionKind.VERIFY:
            await self._resolve(action.target, run, require_visible=True)
        elif kind == ActionKind.WAIT:
            await asyncio.sleep(wait_duration_ms(action) / 1000)
        elif kind == ActionKind.SCROLL:
            element = await self._resolve(action.target, run)
            await self.client.execute_script(
                "mobile: scroll", [{"elementId": element, "toVisible": True}]
            )
        elif kind == ActionKind.SWIPE:
            direction = swipe_direction(action.target)
            if direction is None:
                raise ValueError(f"Unknown swipe direction: {action.target}")
            await self._swipe(direction)
        else:
            self.logger.warning(f"Custom action not implemented: {action.target}")
            run.logs.append(f"Skipped custom action: {action.target}")

    async def _resolve(self, target: Optional[str], run: FlowRun, require_visible: bool = False) -> str:
        resolved = await self.resolver.resolve(target or "", require_visible=require_visible)
        run.logs.append(f'Resolved "{target}" via {resolved.strategy}')
        return resolved.element

    async def _swipe(self, direction: str) -> None:
        size = await self.client.window_size()
        start_x, start_y, end_x, end_y = swipe_vector(direction, size["width"], size["height"])
        await self.client.perform_actions(swipe_actions(start_x, start_y, end_x, end_y))
        self.logger.debug(f"Performed swipe: {direction}")

    async def _take_screenshot(self, test_name: str, step_index: int, tag: str) -> Optional[str]:
        async def capture() -> str:
            path = self.artifacts.screenshot_path(test_name, tag, step_index)
            path.write_bytes(await self.client.screenshot())
            self.logger.debug(f"Screenshot saved: {path}")
            return str(path)

        return await safe_capture(capture, self.logger)

    async def _collect_performance(self) -> Optional[PerformanceMetrics]:
        try:
            return host_performance(platform=self.capabilities.get("platformName"))
        except Exception as e:
            self.logger.debug(f"Performance data collection failed: {e}")
            return None

    async def is_available(self) -> bool:
        try:
            await self.client.status()
            return True
        except Exception as e:
            self.logger.debug(f"Appium server not available: {e}")
            return False

    async def get_health_status(self) -> HealthStatus:
        try:
            value = await self.client.status()
        except Exception as e:
            return HealthStatus(status="error", details=error_message(e))

        if isinstance(value, dict) and value.get("ready"):
            return HealthStatus(
                status="healthy",
                details={
                    "ready": True,
                    "message": value.get("message", "Unknown"),
                    "build": value.get("build", {}),
                },
            )
        return HealthStatus(status="unhealthy", details=value)

    async def cleanup(self) -> None:
        """Delete the session and release the HTTP client."""
        self.state = AdapterState.CLEANED
        try:
            await self.client.delete_session()
        except Exception as e:
            raise CleanupError(
                f"Session backend cleanup failed: {error_message(e)}",
                engine=self.engine.value,
            )
        finally:
            await self.client.close()
            self.test_config = None
            self.state = AdapterState.UNINITIALIZED
        self.logger.info("Session backend cleanup completed")
