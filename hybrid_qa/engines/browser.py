"""
Browser backend built on Playwright.

Browsers are launched once at initialize; every flow gets a fresh context
and page so flows never share cookies or storage.
"""

import asyncio
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from playwright.async_api import async_playwright

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
    TestConfig,
    TestResult,
    TestStatus,
    TestType,
    VisualComparison,
)
from ..parsing import parse_steps, wait_duration_ms
from .base import (
    AdapterState,
    FlowRun,
    capture_step_screenshots,
    error_message,
    record_video,
    run_actions,
    safe_capture,
    swipe_direction,
)
from .selectors import SelectorResolver, SelectorStrategy
from .visual import mismatch_percentage, within_tolerance

VIEWPORT = {"width": 1280, "height": 720}
WHEEL_DISTANCE = 500
URL_PATTERN = re.compile(r"https?://\S+")

# Browser name -> Playwright browser type attribute.
BROWSER_TYPES = {
    "chromium": "chromium",
    "chrome": "chromium",
    "firefox": "firefox",
    "webkit": "webkit",
    "safari": "webkit",
}
CHROMIUM_ARGS = ["--no-sandbox", "--disable-dev-shm-usage"]

# (strategy name, selector template)
CLICK_SELECTORS: Tuple[Tuple[str, str], ...] = (
    ("test-id", '[data-testid="{target}"]'),
    ("text", 'text="{target}"'),
    ("aria-label", '[aria-label="{target}"]'),
    ("title", '[title="{target}"]'),
    ("button-text", 'button:has-text("{target}")'),
    ("link-text", 'a:has-text("{target}")'),
    ("raw", "{target}"),
)

INPUT_SELECTORS: Tuple[Tuple[str, str], ...] = (
    ("test-id", '[data-testid="{target}"]'),
    ("placeholder", '[placeholder="{target}"]'),
    ("name", '[name="{target}"]'),
    ("aria-label", '[aria-label="{target}"]'),
    ("input-near-label", 'input:near(:text("{target}"))'),
    ("raw", "{target}"),
)

VERIFY_SELECTORS: Tuple[Tuple[str, str], ...] = (
    ("test-id", '[data-testid="{target}"]'),
    ("text", 'text="{target}"'),
    ("aria-label", '[aria-label="{target}"]'),
    ("raw", "{target}"),
)

SWIPE_KEYS = {
    "up": "PageUp",
    "down": "PageDown",
    "left": "ArrowLeft",
    "right": "ArrowRight",
}

PERFORMANCE_SCRIPT = """() => {
    const navigation = performance.getEntriesByType('navigation')[0];
    const paint = performance.getEntriesByType('paint');
    const find = (name) => {
        const entry = paint.find((p) => p.name === name);
        return entry ? entry.startTime : 0;
    };
    return {
        loadTime: navigation ? navigation.loadEventEnd - navigation.startTime : 0,
        domContentLoaded: navigation
            ? navigation.domContentLoadedEventEnd - navigation.startTime
            : 0,
        firstPaint: find('first-paint'),
        firstContentfulPaint: find('first-contentful-paint'),
        memoryUsage: performance.memory ? performance.memory.usedJSHeapSize : null,
    };
}"""

PlaywrightFactory = Callable[[], Awaitable[Any]]


async def _start_playwright() -> Any:
    return await async_playwright().start()


def looks_like_url(target: Optional[str]) -> bool:
    if not target:
        return False
    parsed = urlparse(target.strip())
    if parsed.scheme in ("http", "https"):
        return bool(parsed.netloc)
    return parsed.scheme in ("about", "file", "data")


def launch_url(target: Optional[str]) -> Optional[str]:
    """URL to open for a launch target: the target itself or the first http(s) URL in it."""
    if looks_like_url(target):
        return target.strip()
    match = URL_PATTERN.search(target or "")
    return match.group(0) if match else None


def page_selector_strategies(page: Any, catalog: Tuple[Tuple[str, str], ...]) -> List[SelectorStrategy]:
    """Bind a selector catalog to a page."""

    def make(name: str, template: str) -> SelectorStrategy:
        async def locate(target: str, timeout_ms: int) -> Any:
            locator = page.locator(template.format(target=target)).first
            await locator.wait_for(timeout=timeout_ms)
            return locator

        return SelectorStrategy(name=name, locate=locate)

    return [make(name, template) for name, template in catalog]


async def _locator_visible(locator: Any) -> bool:
    return await locator.is_visible()


class BrowserAdapter:
    """
    Backend adapter driving web pages through Playwright.

    Owns the Playwright driver, the launched browsers and any contexts still
    open; cleanup closes all of them.
    """

    engine = Engine.BROWSER

    def __init__(
        self,
        config: Config,
        artifacts: Optional[ArtifactManager] = None,
        playwright_factory: Optional[PlaywrightFactory] = None,
    ):
        self.config = config
        self.artifacts = artifacts or ArtifactManager(config)
        self.logger = get_logger(__name__, engine=self.engine.value)
        self.playwright_factory = playwright_factory or _start_playwright
        self.playwright: Any = None
        self.browsers: Dict[str, Any] = {}
        self.contexts: List[Any] = []
        self.state = AdapterState.UNINITIALIZED
        self.test_config: Optional[TestConfig] = None

    def _resolver(self, page: Any, catalog: Tuple[Tuple[str, str], ...]) -> SelectorResolver:
        return SelectorResolver(
            page_selector_strategies(page, catalog),
            is_visible=_locator_visible,
            timeout_ms=self.config.selector_timeout_ms,
            logger=self.logger,
        )

    async def _launch_browser(self, name: str, headless: bool) -> Any:
        browser_type_name = BROWSER_TYPES.get(name.lower())
        if browser_type_name is None:
            raise ValueError(f"Unsupported browser: {name}")

        browser_type = getattr(self.playwright, browser_type_name)
        options: Dict[str, Any] = {"headless": headless}
        if browser_type_name == "chromium":
            options["args"] = CHROMIUM_ARGS
        return await browser_type.launch(**options)

    async def initialize(self, config: Optional[TestConfig] = None) -> None:
        """Start Playwright and launch every configured browser."""
        if self.state != AdapterState.UNINITIALIZED:
            return

        browser_names = (config.browsers if config and config.browsers else None) or self.config.browsers
        self.logger.info(f"Initializing browser backend: {', '.join(browser_names)}")

        try:
            self.artifacts.ensure_directories()
            if self.playwright is None:
                self.playwright = await self.playwright_factory()
            for name in browser_names:
                self.browsers[name] = await self._launch_browser(name, self.config.is_headless)
                self.logger.debug(f"Launched browser: {name}")
        except Exception as e:
            self.logger.error(f"Browser backend initialization failed: {e}")
            await self._close_all()
            raise InitializationError(
                f"Browser backend initialization failed: {error_message(e)}",
                engine=self.engine.value,
            )

        self.test_config = config
        self.state = AdapterState.INITIALIZED
        self.logger.info(
            "Browser backend initialized",
            extra={"metadata": {"browsers": list(self.browsers)}},
        )

    async def execute_test_flow(
        self, flow: Flow, config: Optional[TestConfig] = None
    ) -> TestResult:
        run = FlowRun(flow=flow, engine=self.engine)
        test_config = config or self.test_config
        video_path: Optional[str] = None
        self.logger.info(f"Executing browser flow: {flow.name}")

        try:
            if self.state == AdapterState.UNINITIALIZED:
                raise HybridQAError("Browser backend not initialized")
            if not self.browsers:
                raise HybridQAError("No browsers available")

            self.state = AdapterState.EXECUTING
            browser_name, browser = next(iter(self.browsers.items()))
            run.metadata["browser"] = browser_name

            recording = record_video(self.config, test_config)
            context_options: Dict[str, Any] = {
                "viewport": dict(VIEWPORT),
                "ignore_https_errors": True,
            }
            if recording:
                self.config.videos_dir.mkdir(parents=True, exist_ok=True)
                context_options["record_video_dir"] = str(self.config.videos_dir)
                context_options["record_video_size"] = dict(VIEWPORT)

            context = await browser.new_context(**context_options)
            self.contexts.append(context)
            performance = None
            video = None
            try:
                page = await context.new_page()
                self._attach_listeners(page, run)
                video = page.video if recording else None

                actions = parse_steps(flow.steps)

                async def execute(action: Action) -> None:
                    await self._execute_action(page, action, run)

                async def screenshot(index: int, tag: str) -> Optional[str]:
                    return await self._take_screenshot(page, flow.name, index, tag)

                await run_actions(
                    run,
                    actions,
                    execute,
                    screenshot,
                    step_screenshots=capture_step_screenshots(self.config, test_config),
                    action_delay_ms=self.config.action_delay_ms,
                    logger=self.logger,
                )

                if run.status == TestStatus.PASSED:
                    await self._check_visual_baseline(page, flow.name, run, test_config)

                performance = await self._collect_performance(page)
            finally:
                await context.close()
                if context in self.contexts:
                    self.contexts.remove(context)

            if video is not None:
                video_path = await self._collect_video(video, flow.name)

            result = run.finish(video=video_path, performance=performance)
            self.logger.info(
                f"Browser flow completed: {flow.name}",
                extra={"metadata": result.to_summary()},
            )
            return result
        except Exception as e:
            self.logger.error(f"Browser flow error: {flow.name}: {e}")
            return run.finish(status=TestStatus.ERROR, error=error_message(e), video=video_path)
        finally:
            if self.state == AdapterState.EXECUTING:
                self.state = AdapterState.INITIALIZED

    def _attach_listeners(self, page: Any, run: FlowRun) -> None:
        page.on("console", lambda msg: run.logs.append(f"Console: {msg.text}"))
        page.on("pageerror", lambda err: run.logs.append(f"Error: {error_message(err)}"))
        page.on("requestfailed", lambda req: run.logs.append(f"Request failed: {req.url}"))

    async def _resolve(
        self,
        page: Any,
        catalog: Tuple[Tuple[str, str], ...],
        target: Optional[str],
        run: FlowRun,
        require_visible: bool = False,
    ) -> Any:
        resolved = await self._resolver(page, catalog).resolve(
            target or "", require_visible=require_visible
        )
        run.logs.append(f'Resolved "{target}" via {resolved.strategy}')
        return resolved.element

    async def _execute_action(self, page: Any, action: Action, run: FlowRun) -> None:
        kind = action.kind

        if kind == ActionKind.LAUNCH:
            url = launch_url(action.target)
            if url:
                await page.goto(url, wait_until="networkidle")
            else:
                run.logs.append(f"No URL to open in launch step: {action.target}")
        elif kind == ActionKind.TAP:
            element = await self._resolve(page, CLICK_SELECTORS, action.target, run)
            await element.click()
        elif kind == ActionKind.INPUT:
            element = await self._resolve(page, INPUT_SELECTORS, action.target, run)
            await element.fill(action.value or "")
        elif kind == ActionKind.VERIFY:
            await self._resolve(page, VERIFY_SELECTORS, action.target, run, require_visible=True)
        elif kind == ActionKind.WAIT:
            await asyncio.sleep(wait_duration_ms(action) / 1000)
        elif kind == ActionKind.SCROLL:
            element = await self._resolve(page, CLICK_SELECTORS, action.target, run)
            await element.scroll_into_view_if_needed()
        elif kind == ActionKind.SWIPE:
            await self._swipe(page, action.target)
        else:
            await self._execute_custom(page, action.target or "", run)

    async def _swipe(self, page: Any, target: Optional[str]) -> None:
        direction = swipe_direction(target)
        if direction is not None:
            await page.keyboard.press(SWIPE_KEYS[direction])
        else:
            await page.mouse.wheel(0, WHEEL_DISTANCE)
        self.logger.debug(f"Performed swipe: {direction or 'wheel'}")

    async def _execute_custom(self, page: Any, step: str, run: FlowRun) -> None:
        lowered = step.lower()
        if "navigate" in lowered:
            url = step.split()[-1] if step.split() else ""
            if url.startswith("http"):
                await page.goto(url, wait_until="networkidle")
        elif "refresh" in lowered:
            await page.reload(wait_until="networkidle")
        elif "back" in lowered:
            await page.go_back()
        elif "forward" in lowered:
            await page.go_forward()
        else:
            self.logger.warning(f"Unknown custom action: {step}")
            run.logs.append(f"Skipped custom action: {step}")

    async def _take_screenshot(
        self, page: Any, test_name: str, step_index: int, tag: str
    ) -> Optional[str]:
        async def capture() -> str:
            path = self.artifacts.screenshot_path(test_name, tag, step_index)
            await page.screenshot(path=str(path), full_page=True)
            self.logger.debug(f"Screenshot saved: {path}")
            return str(path)

        return await safe_capture(capture, self.logger)

    async def _collect_video(self, video: Any, test_name: str) -> Optional[str]:
        try:
            source = await video.path()
            return self.artifacts.rename_video(source, test_name)
        except Exception as e:
            self.logger.error(f"Video collection failed: {error_message(e)}")
            return None

    async def _collect_performance(self, page: Any) -> Optional[PerformanceMetrics]:
        try:
            metrics = await page.evaluate(PERFORMANCE_SCRIPT)
            return PerformanceMetrics(
                load_time=metrics.get("loadTime"),
                memory_usage=metrics.get("memoryUsage"),
                cpu_usage=None,
                additional_metrics={
                    "dom_content_loaded": metrics.get("domContentLoaded"),
                    "first_paint": metrics.get("firstPaint"),
                    "first_contentful_paint": metrics.get("firstContentfulPaint"),
                },
            )
        except Exception as e:
            self.logger.debug(f"Performance data collection failed: {e}")
            return None

    async def _check_visual_baseline(
        self,
        page: Any,
        test_name: str,
        run: FlowRun,
        test_config: Optional[TestConfig],
    ) -> None:
        if not test_config or not test_config.visual_baseline:
            return
        if TestType.VISUAL not in test_config.test_types:
            return

        try:
            comparison = await self.perform_visual_testing(page, test_name, test_config.visual_baseline)
        except HybridQAError as e:
            run.status = TestStatus.FAILED
            run.error = e.message
            return

        run.add_screenshot(comparison.screenshot_path)
        run.metadata["visual"] = comparison.model_dump()
        if comparison.error:
            run.status = TestStatus.FAILED
            run.error = comparison.error
        elif not comparison.passed:
            run.status = TestStatus.FAILED
            run.error = (
                f"Visual difference {comparison.difference:.2f}% exceeds "
                f"tolerance {self.config.visual_tolerance}%"
            )

    async def perform_visual_testing(
        self,
        page: Any,
        test_name: str,
        baseline: Optional[str] = None,
    ) -> VisualComparison:
        """
        Take a full-page screenshot and compare it against a baseline.

        Without a baseline the comparison passes and only the screenshot is
        recorded. An unreadable baseline yields a failed comparison that still
        carries the screenshot.

        Raises:
            HybridQAError: If the screenshot cannot be taken
        """
        path = self.artifacts.screenshot_path(test_name, "visual", 0)
        try:
            await page.screenshot(path=str(path), full_page=True)
        except Exception as e:
            raise HybridQAError(f"Visual testing failed: {error_message(e)}")

        if not baseline:
            return VisualComparison(passed=True, screenshot_path=str(path))

        loop = asyncio.get_event_loop()
        try:
            difference = await loop.run_in_executor(None, mismatch_percentage, baseline, path)
        except (OSError, ValueError) as e:
            self.logger.warning(f"Visual comparison against {baseline} failed: {e}")
            return VisualComparison(
                passed=False,
                screenshot_path=str(path),
                error=f"Visual comparison against {baseline} failed: {error_message(e)}",
            )
        return VisualComparison(
            passed=within_tolerance(difference, self.config.visual_tolerance),
            difference=difference,
            screenshot_path=str(path),
        )

    async def is_available(self) -> bool:
        try:
            playwright = self.playwright or await self.playwright_factory()
            try:
                browser = await playwright.chromium.launch(headless=True)
                await browser.close()
            finally:
                if playwright is not self.playwright:
                    await playwright.stop()
            return True
        except Exception as e:
            self.logger.debug(f"Playwright not available: {e}")
            return False

    async def get_health_status(self) -> HealthStatus:
        try:
            playwright = self.playwright or await self.playwright_factory()
        except Exception as e:
            return HealthStatus(status="error", details=error_message(e))

        available = []
        try:
            for name in ("chromium", "firefox", "webkit"):
                try:
                    browser = await getattr(playwright, name).launch(headless=True)
                    await browser.close()
                    available.append(name)
                except Exception as e:
                    self.logger.debug(f"Browser {name} not available: {e}")
        finally:
            if playwright is not self.playwright:
                await playwright.stop()

        return HealthStatus(
            status="healthy" if available else "unhealthy",
            details={
                "available_browsers": available,
                "active_browsers": list(self.browsers),
                "is_initialized": self.state != AdapterState.UNINITIALIZED,
            },
        )

    async def _close_all(self) -> List[str]:
        errors = []
        for context in list(self.contexts):
            try:
                await context.close()
            except Exception as e:
                errors.append(f"context: {e}")
        self.contexts = []

        for name, browser in list(self.browsers.items()):
            try:
                await browser.close()
            except Exception as e:
                errors.append(f"{name}: {e}")
        self.browsers = {}

        if self.playwright is not None:
            try:
                await self.playwright.stop()
            except Exception as e:
                errors.append(f"playwright: {e}")
            self.playwright = None
        return errors

    async def cleanup(self) -> None:
        """Close open contexts and browsers and stop Playwright."""
        self.state = AdapterState.CLEANED
        errors = await self._close_all()
        self.test_config = None
        self.state = AdapterState.UNINITIALIZED

        if errors:
            raise CleanupError(
                f"Browser backend cleanup failed: {'; '.join(errors)}",
                engine=self.engine.value,
            )
        self.logger.info("Browser backend cleanup completed")
