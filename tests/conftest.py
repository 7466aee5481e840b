"""
Pytest configuration and shared fixtures for Hybrid QA tests.

Provides a temporary configuration plus fake backends, WebDriver clients and
Playwright objects so no device, browser or runner binary is needed.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from hybrid_qa.core.config import Config
from hybrid_qa.engines.base import AdapterState
from hybrid_qa.engines.webdriver_client import WebDriverError
from hybrid_qa.execution.artifacts import ArtifactManager
from hybrid_qa.models import (
    Engine,
    Flow,
    HealthStatus,
    Strategy,
    TestResult,
    TestStatus,
)

ENV_OVERRIDES = [
    "CI",
    "HYBRID_QA_HEADLESS",
    "HYBRID_QA_LOG_LEVEL",
    "APPIUM_HOST",
    "APPIUM_PORT",
    "APPIUM_BASE_PATH",
    "MAESTRO_CLI_PATH",
    "PLAYWRIGHT_BROWSERS",
    "DEFAULT_TEST_TIMEOUT",
    "SCREENSHOT_ON_FAILURE",
    "VIDEO_RECORDING",
    "IOS_SIMULATOR_UDID",
    "ANDROID_DEVICE_NAME",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Isolate tests from configuration in the calling environment."""
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_config(tmp_path):
    """Configuration rooted in a temporary directory with no delays."""
    return Config(
        project_root=tmp_path,
        artifacts_dir=tmp_path / "artifacts",
        logs_dir=tmp_path / "logs",
        temp_dir=tmp_path / "temp",
        action_delay_ms=0,
        flow_delay_ms=0,
        selector_timeout_ms=200,
    )


@pytest.fixture
def artifact_manager(temp_config):
    return ArtifactManager(temp_config, "test_run_123")


def make_flow(name: str = "Login Flow", engine: Engine = Engine.BROWSER, steps=None) -> Flow:
    return Flow(
        name=name,
        description=f"{name} description",
        engine=engine,
        steps=steps if steps is not None else ["Launch the app", 'Tap "Login"'],
    )


def make_result(
    name: str = "Login Flow",
    status: TestStatus = TestStatus.PASSED,
    engine: Engine = Engine.BROWSER,
    **kwargs,
) -> TestResult:
    now = datetime.now()
    return TestResult.build(
        test_name=name,
        engine=engine,
        status=status,
        start_time=now,
        end_time=now,
        **kwargs,
    )


@pytest.fixture
def sample_strategy():
    return Strategy(
        primary_engine=Engine.BROWSER,
        test_flows=[
            make_flow("Core login flow", Engine.BROWSER),
            make_flow("Visual home check", Engine.SESSION),
            make_flow("Checkout flow", Engine.DECLARATIVE),
        ],
        rationale="Cover the main journeys",
    )


class FakeAdapter:
    """Scriptable backend adapter recording every call."""

    def __init__(
        self,
        engine: Engine,
        status: TestStatus = TestStatus.PASSED,
        execute_error: Optional[Exception] = None,
        init_error: Optional[Exception] = None,
        cleanup_error: Optional[Exception] = None,
        available: Any = True,
        health: Any = None,
    ):
        self.engine = engine
        self.state = AdapterState.UNINITIALIZED
        self.status = status
        self.execute_error = execute_error
        self.init_error = init_error
        self.cleanup_error = cleanup_error
        self.available = available
        self.health = health or HealthStatus(status="healthy")
        self.initialize_calls = 0
        self.cleanup_calls = 0
        self.executed: List[str] = []

    async def initialize(self, config=None):
        self.initialize_calls += 1
        if self.init_error:
            raise self.init_error
        self.state = AdapterState.INITIALIZED

    async def execute_test_flow(self, flow, config=None):
        self.executed.append(flow.name)
        if self.execute_error:
            raise self.execute_error
        error = "Step 1 failed: boom" if self.status == TestStatus.FAILED else None
        return make_result(flow.name, self.status, self.engine, error=error)

    async def is_available(self):
        if isinstance(self.available, Exception):
            raise self.available
        return self.available

    async def get_health_status(self):
        if isinstance(self.health, Exception):
            raise self.health
        return self.health

    async def cleanup(self):
        self.cleanup_calls += 1
        self.state = AdapterState.UNINITIALIZED
        if self.cleanup_error:
            raise self.cleanup_error


@pytest.fixture
def fake_adapters():
    return {
        Engine.SESSION: FakeAdapter(Engine.SESSION),
        Engine.DECLARATIVE: FakeAdapter(Engine.DECLARATIVE),
        Engine.BROWSER: FakeAdapter(Engine.BROWSER),
    }


class FakeWebDriverClient:
    """In-memory stand-in for the WebDriver HTTP client."""

    def __init__(self, elements: Optional[Dict[tuple, str]] = None, hidden=(), status_value=None):
        self.elements = elements or {}
        self.hidden = set(hidden)
        self.status_value = status_value if status_value is not None else {"ready": True}
        self.session_id: Optional[str] = None
        self.capabilities: Optional[Dict[str, Any]] = None
        self.clicked: List[str] = []
        self.typed: List[tuple] = []
        self.scripts: List[tuple] = []
        self.pointer_actions: List[Any] = []
        self.lookups: List[tuple] = []
        self.deleted = False
        self.closed = False
        self.create_error: Optional[Exception] = None

    async def status(self):
        if isinstance(self.status_value, Exception):
            raise self.status_value
        return self.status_value

    async def create_session(self, capabilities):
        if self.create_error:
            raise self.create_error
        self.capabilities = capabilities
        self.session_id = "session-1"
        return self.session_id

    async def delete_session(self):
        self.deleted = True
        self.session_id = None

    async def close(self):
        self.closed = True

    async def find_element(self, using, value):
        self.lookups.append((using, value))
        element = self.elements.get((using, value))
        if element is None:
            raise WebDriverError("not found", error="no such element", status=404)
        return element

    async def is_displayed(self, element_id):
        return element_id not in self.hidden

    async def click(self, element_id):
        self.clicked.append(element_id)

    async def clear(self, element_id):
        pass

    async def send_keys(self, element_id, text):
        self.typed.append((element_id, text))

    async def page_source(self):
        return "<hierarchy/>"

    async def window_size(self):
        return {"width": 400, "height": 800}

    async def perform_actions(self, actions):
        self.pointer_actions.append(actions)

    async def execute_script(self, script, args=None):
        self.scripts.append((script, args))

    async def screenshot(self):
        return b"\x89PNG fake"


class FakeLocator:
    """Locator over the fake page's selector table."""

    def __init__(self, page: "FakePage", selector: str):
        self.page = page
        self.selector = selector

    @property
    def first(self):
        return self

    async def wait_for(self, timeout=None):
        if self.selector not in self.page.elements:
            raise Exception(f"Timeout {timeout}ms exceeded waiting for {self.selector}")

    async def is_visible(self):
        return self.page.elements.get(self.selector, False)

    async def click(self):
        self.page.actions.append(("click", self.selector))

    async def fill(self, value):
        self.page.actions.append(("fill", self.selector, value))

    async def scroll_into_view_if_needed(self):
        self.page.actions.append(("scroll", self.selector))


class FakeKeyboard:
    def __init__(self, page):
        self.page = page

    async def press(self, key):
        self.page.actions.append(("press", key))


class FakeMouse:
    def __init__(self, page):
        self.page = page

    async def wheel(self, delta_x, delta_y):
        self.page.actions.append(("wheel", delta_x, delta_y))


class FakeVideo:
    def __init__(self, path: Path):
        self._path = path

    async def path(self):
        return str(self._path)


class FakePage:
    """Page exposing only the Playwright calls the browser backend makes."""

    def __init__(self, elements: Optional[Dict[str, bool]] = None, metrics=None):
        # selector -> visible
        self.elements = elements or {}
        self.metrics = metrics or {
            "loadTime": 120.0,
            "domContentLoaded": 80.0,
            "firstPaint": 40.0,
            "firstContentfulPaint": 45.0,
            "memoryUsage": None,
        }
        self.actions: List[tuple] = []
        self.locator_calls: List[str] = []
        self.handlers: Dict[str, Any] = {}
        self.keyboard = FakeKeyboard(self)
        self.mouse = FakeMouse(self)
        self.video = None

    def locator(self, selector):
        self.locator_calls.append(selector)
        return FakeLocator(self, selector)

    def on(self, event, handler):
        self.handlers[event] = handler

    async def goto(self, url, wait_until=None):
        self.actions.append(("goto", url))

    async def reload(self, wait_until=None):
        self.actions.append(("reload",))

    async def go_back(self):
        self.actions.append(("back",))

    async def go_forward(self):
        self.actions.append(("forward",))

    async def screenshot(self, path=None, full_page=False):
        Path(path).write_bytes(b"\x89PNG fake")

    async def evaluate(self, script):
        return self.metrics


class FakeContext:
    def __init__(self, page: FakePage):
        self.page = page
        self.closed = False

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, page: Optional[FakePage] = None):
        self.page = page or FakePage()
        self.contexts: List[FakeContext] = []
        self.context_options: List[Dict[str, Any]] = []
        self.closed = False

    async def new_context(self, **options):
        self.context_options.append(options)
        context = FakeContext(self.page)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


class FakeBrowserType:
    def __init__(self, browser: FakeBrowser, fail: bool = False):
        self.browser = browser
        self.fail = fail
        self.launch_options: List[Dict[str, Any]] = []

    async def launch(self, **options):
        self.launch_options.append(options)
        if self.fail:
            raise Exception("Executable doesn't exist")
        return self.browser


class FakePlaywright:
    def __init__(self, page: Optional[FakePage] = None, failing=()):
        self.browser = FakeBrowser(page)
        self.chromium = FakeBrowserType(self.browser, "chromium" in failing)
        self.firefox = FakeBrowserType(self.browser, "firefox" in failing)
        self.webkit = FakeBrowserType(self.browser, "webkit" in failing)
        self.stopped = False

    async def stop(self):
        self.stopped = True
