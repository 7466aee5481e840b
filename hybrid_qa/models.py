"""
Data models for cross-backend test execution.

Defines Pydantic models for test strategies, flows, parsed actions,
per-flow results and the aggregated suite report.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, Field, validator, ConfigDict


class Engine(Enum):
    """Automation backend a flow is executed on."""

    SESSION = "session"
    DECLARATIVE = "declarative"
    BROWSER = "browser"


# Engine names used by strategy producers that speak in tool names.
ENGINE_ALIASES = {
    "appium": Engine.SESSION,
    "maestro": Engine.DECLARATIVE,
    "playwright": Engine.BROWSER,
}


def coerce_engine(value: Any) -> Any:
    """Map tool names onto engine tags, leaving anything else to validation."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ENGINE_ALIASES:
            return ENGINE_ALIASES[lowered]
        return lowered
    return value


class Priority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ActionKind(Enum):
    """Kinds of actions a step description can be parsed into."""

    LAUNCH = "launch"
    TAP = "tap"
    INPUT = "input"
    VERIFY = "verify"
    WAIT = "wait"
    SCROLL = "scroll"
    SWIPE = "swipe"
    CUSTOM = "custom"


class TestStatus(Enum):
    """Outcome of one flow execution."""

    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ERROR = "error"


class TestType(Enum):
    __test__ = False

    FUNCTIONAL = "functional"
    VISUAL = "visual"
    PERFORMANCE = "performance"
    ACCESSIBILITY = "accessibility"


class Platform(Enum):
    IOS = "ios"
    ANDROID = "android"


class Flow(BaseModel):
    """An ordered set of step descriptions plus engine metadata."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    name: str = Field(..., description="Flow name, also used for artifact names")
    description: str = Field("", description="Human readable description")
    priority: Priority = Field(Priority.MEDIUM, description="Flow priority")
    estimated_duration: float = Field(
        0, ge=0, alias="estimatedDuration", description="Estimated duration"
    )
    engine: Engine = Field(..., description="Backend that executes the flow")
    steps: List[str] = Field(default_factory=list, description="Step descriptions")

    @validator("engine", pre=True)
    def validate_engine(cls, v):
        return coerce_engine(v)

    @validator("name")
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Flow name cannot be empty")
        return v.strip()


class Action(BaseModel):
    """A structured instruction parsed from one step description."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: ActionKind = Field(..., description="Action kind")
    target: Optional[str] = Field(None, description="Element or resource targeted")
    value: Optional[str] = Field(None, description="Input text or wait duration")

    def describe(self) -> str:
        """Short description used in flow logs."""
        return f"{self.kind.value} - {self.target or self.value or ''}"


class DeviceConfig(BaseModel):
    """A device requested for the session backend."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    platform: Platform = Field(..., description="Device platform")
    device_name: str = Field(..., alias="deviceName", description="Device name")
    platform_version: Optional[str] = Field(None, alias="platformVersion")
    udid: Optional[str] = Field(None, description="Device UDID")


class TestConfig(BaseModel):
    """Per-run execution options supplied alongside a strategy."""

    __test__ = False

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    browsers: Optional[List[str]] = Field(None, description="Browsers to launch")
    devices: Optional[List[DeviceConfig]] = Field(None, description="Devices to use")
    test_types: List[TestType] = Field(
        default_factory=lambda: [TestType.FUNCTIONAL], alias="testTypes"
    )
    timeout: int = Field(30000, ge=1000, description="Timeout in milliseconds")
    screenshot_on_failure: bool = Field(True, alias="screenshotOnFailure")
    video_recording: bool = Field(False, alias="videoRecording")
    visual_baseline: Optional[str] = Field(
        None, alias="visualBaseline", description="Baseline image for visual diff"
    )


class Strategy(BaseModel):
    """A test strategy as produced by the strategy generator."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    primary_engine: Engine = Field(..., alias="primaryEngine")
    fallback_engine: Optional[Engine] = Field(None, alias="fallbackEngine")
    test_flows: List[Flow] = Field(default_factory=list, alias="testFlows")
    rationale: str = Field("", description="Why this strategy was chosen")

    @validator("primary_engine", "fallback_engine", pre=True)
    def validate_engines(cls, v):
        return coerce_engine(v)

    @property
    def estimated_duration(self) -> float:
        return sum(flow.estimated_duration for flow in self.test_flows)


class PerformanceMetrics(BaseModel):
    """Basic performance metrics collected once per flow."""

    model_config = ConfigDict(extra="forbid")

    memory_usage: Optional[float] = Field(None, description="Memory usage")
    cpu_usage: Optional[float] = Field(None, description="CPU usage percent")
    load_time: Optional[float] = Field(None, description="Load time in ms")
    additional_metrics: Dict[str, Any] = Field(default_factory=dict)


class TestResult(BaseModel):
    """Result of executing one flow on one backend."""

    __test__ = False

    model_config = ConfigDict(extra="forbid", frozen=True)

    test_name: str = Field(..., description="Name of the executed flow")
    engine: Engine = Field(..., description="Backend that executed the flow")
    status: TestStatus = Field(..., description="Flow outcome")
    duration: float = Field(..., ge=0, description="Duration in milliseconds")
    start_time: datetime = Field(..., description="Flow start time")
    end_time: datetime = Field(..., description="Flow end time")
    error: Optional[str] = Field(None, description="Error message if not passed")
    screenshots: List[str] = Field(default_factory=list)
    video: Optional[str] = Field(None, description="Video path when recorded")
    logs: List[str] = Field(default_factory=list)
    performance: Optional[PerformanceMetrics] = Field(None)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def build(
        cls,
        test_name: str,
        engine: Engine,
        status: TestStatus,
        start_time: datetime,
        end_time: datetime,
        error: Optional[str] = None,
        screenshots: Optional[List[str]] = None,
        video: Optional[str] = None,
        logs: Optional[List[str]] = None,
        performance: Optional[PerformanceMetrics] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "TestResult":
        """Create a result, deriving the duration from the timestamps."""
        duration = max((end_time - start_time).total_seconds() * 1000, 0.0)
        return cls(
            test_name=test_name,
            engine=engine,
            status=status,
            duration=duration,
            start_time=start_time,
            end_time=end_time,
            error=error,
            screenshots=list(screenshots or []),
            video=video,
            logs=list(logs or []),
            performance=performance,
            metadata=dict(metadata or {}),
        )

    @property
    def is_success(self) -> bool:
        return self.status == TestStatus.PASSED

    def to_summary(self) -> Dict[str, Any]:
        """Create a summary dictionary for logging."""
        return {
            "test_name": self.test_name,
            "engine": self.engine.value,
            "status": self.status.value,
            "duration": self.duration,
            "screenshots": len(self.screenshots),
            "has_error": bool(self.error),
        }


class SuiteSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    total: int = Field(0, ge=0)
    passed: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)
    skipped: int = Field(0, ge=0)
    errors: int = Field(0, ge=0)
    duration: float = Field(0, ge=0, description="Wall-clock duration in ms")
    start_time: datetime
    end_time: datetime


class CoverageEstimate(BaseModel):
    """
    Heuristic per-category pass-rate estimate.

    This is an approximation derived from test names and outcomes. It is not
    measured code or path coverage.
    """

    model_config = ConfigDict(extra="forbid")

    functional: float = Field(0, ge=0, le=100)
    visual: float = Field(0, ge=0, le=100)
    performance: float = Field(0, ge=0, le=100)
    accessibility: float = Field(0, ge=0, le=100)

    @validator("functional", "visual", "performance", "accessibility", pre=True)
    def clamp_percentage(cls, v):
        return min(max(float(v), 0.0), 100.0)


class SuiteArtifacts(BaseModel):
    model_config = ConfigDict(extra="forbid")

    screenshots: List[str] = Field(default_factory=list)
    videos: List[str] = Field(default_factory=list)
    reports: List[str] = Field(default_factory=list)

    def all_paths(self) -> List[str]:
        return [*self.screenshots, *self.videos, *self.reports]


class TestSuiteResult(BaseModel):
    """Aggregated report for one strategy execution."""

    __test__ = False

    model_config = ConfigDict(extra="forbid")

    summary: SuiteSummary
    results: List[TestResult] = Field(default_factory=list)
    coverage: CoverageEstimate
    artifacts: SuiteArtifacts = Field(default_factory=SuiteArtifacts)

    @property
    def has_failures(self) -> bool:
        return self.summary.failed > 0 or self.summary.errors > 0


class HealthStatus(BaseModel):
    """Health/readiness report of a backend."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(..., description="healthy, unhealthy or error")
    details: Optional[Any] = Field(None, description="Raw details")

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"


class VisualComparison(BaseModel):
    """Outcome of a visual regression comparison."""

    model_config = ConfigDict(extra="forbid")

    passed: bool
    difference: Optional[float] = Field(None, description="Mismatch percentage")
    screenshot_path: str
    error: Optional[str] = Field(None, description="Why the comparison could not be made")
