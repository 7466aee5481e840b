"""
Backend adapter contract and the shared flow-execution loop.

Adapters are independent implementations of BackendAdapter; the coordinator
picks one per flow from a registry keyed by the flow's engine tag. Helpers in
this module give every in-process adapter the same execution shape without a
common base class.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, runtime_checkable

import psutil

from ..core.config import Config
from ..core.exceptions import ActionExecutionError, ArtifactCollectionError
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

# Actions followed by a step screenshot when they succeed.
SCREENSHOT_ACTIONS = frozenset({ActionKind.TAP, ActionKind.INPUT, ActionKind.VERIFY})


class AdapterState(Enum):
    """Lifecycle of a backend adapter."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    EXECUTING = "executing"
    CLEANED = "cleaned"


@runtime_checkable
class BackendAdapter(Protocol):
    """Capability contract every automation backend implements."""

    engine: Engine
    state: AdapterState

    async def initialize(self, config: Optional[TestConfig] = None) -> None:
        ...

    async def execute_test_flow(
        self, flow: Flow, config: Optional[TestConfig] = None
    ) -> TestResult:
        ...

    async def is_available(self) -> bool:
        ...

    async def get_health_status(self) -> HealthStatus:
        ...

    async def cleanup(self) -> None:
        ...


def capture_step_screenshots(config: Config, test_config: Optional[TestConfig]) -> bool:
    """Screenshot policy: per-run option wins over the process configuration."""
    if test_config is not None:
        return test_config.screenshot_on_failure
    return config.screenshot_on_failure


def record_video(config: Config, test_config: Optional[TestConfig]) -> bool:
    if test_config is not None:
        return test_config.video_recording or config.video_recording
    return config.video_recording


def error_message(error: BaseException) -> str:
    message = getattr(error, "message", None) or str(error)
    return message or error.__class__.__name__


@dataclass
class FlowRun:
    """Mutable accumulator for one flow execution."""

    flow: Flow
    engine: Engine
    start_time: datetime = field(default_factory=datetime.now)
    status: TestStatus = TestStatus.PASSED
    error: Optional[str] = None
    logs: List[str] = field(default_factory=list)
    screenshots: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_screenshot(self, path: Optional[str]) -> None:
        if path:
            self.screenshots.append(path)

    def fail(self, error: ActionExecutionError) -> None:
        self.status = TestStatus.FAILED
        self.error = error.message
        self.metadata["failed_step"] = error.step_index

    def finish(
        self,
        status: Optional[TestStatus] = None,
        error: Optional[str] = None,
        video: Optional[str] = None,
        performance: Optional[PerformanceMetrics] = None,
    ) -> TestResult:
        return TestResult.build(
            test_name=self.flow.name,
            engine=self.engine,
            status=status or self.status,
            start_time=self.start_time,
            end_time=datetime.now(),
            error=error if error is not None else self.error,
            screenshots=self.screenshots,
            video=video,
            logs=self.logs,
            performance=performance,
            metadata=self.metadata,
        )


ExecuteFn = Callable[[Action], Awaitable[None]]
ScreenshotFn = Callable[[int, str], Awaitable[Optional[str]]]


async def run_actions(
    run: FlowRun,
    actions: Sequence[Action],
    execute: ExecuteFn,
    screenshot: ScreenshotFn,
    step_screenshots: bool = True,
    action_delay_ms: int = 500,
    logger: Optional[logging.Logger] = None,
) -> FlowRun:
    """
    Execute actions in order, stopping at the first failure.

    A failing action marks the run failed with a 1-based step message and
    captures a failure screenshot. Nothing is retried.
    """
    logger = logger or logging.getLogger(__name__)

    for index, action in enumerate(actions):
        step_number = index + 1
        run.logs.append(f"Step {step_number}: {action.describe()}")

        try:
            await execute(action)
        except Exception as e:
            failure = ActionExecutionError(
                f"Step {step_number} failed: {error_message(e)}",
                step_index=step_number,
                action=action.kind.value,
            )
            logger.error(
                f"Action failed: {action.kind.value}",
                extra={
                    "metadata": {
                        "flow_name": run.flow.name,
                        "step_index": step_number,
                        "error": error_message(e),
                    }
                },
            )
            run.fail(failure)
            run.logs.append(failure.message)
            run.add_screenshot(await screenshot(index, "failure"))
            break

        if action.kind in SCREENSHOT_ACTIONS and step_screenshots:
            run.add_screenshot(await screenshot(index, "step"))

        if action_delay_ms:
            await asyncio.sleep(action_delay_ms / 1000)

    return run


async def safe_capture(
    capture: Callable[[], Awaitable[str]],
    logger: logging.Logger,
) -> Optional[str]:
    """Run a capture coroutine; artifact failures are logged and omitted."""
    try:
        return await capture()
    except ArtifactCollectionError as e:
        logger.error(f"Screenshot capture failed: {e.message}", extra={"metadata": e.to_dict()})
    except Exception as e:
        logger.error(f"Screenshot capture failed: {e}")
    return None


def host_performance(load_time: Optional[float] = None, **additional: Any) -> PerformanceMetrics:
    """Snapshot of this process's memory (MB) and host CPU usage."""
    process = psutil.Process()
    return PerformanceMetrics(
        memory_usage=process.memory_info().rss / 1024 / 1024,
        cpu_usage=psutil.cpu_percent(interval=None),
        load_time=load_time,
        additional_metrics=dict(additional),
    )


_DIRECTION_PATTERN = re.compile(r"\b(up|down|left|right)\b", re.IGNORECASE)


def swipe_direction(target: Optional[str]) -> Optional[str]:
    """Direction word (up/down/left/right) named by a swipe target."""
    match = _DIRECTION_PATTERN.search(target or "")
    return match.group(1).lower() if match else None
