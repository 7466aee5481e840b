"""
Result aggregation and heuristic coverage estimation.

Coverage here is an approximation: results are bucketed into categories by
keywords in their test names and the category score is the pass rate among
them. It does not measure code or path coverage.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ..models import (
    CoverageEstimate,
    SuiteArtifacts,
    SuiteSummary,
    TestResult,
    TestStatus,
    TestSuiteResult,
)

CATEGORIES = ("functional", "visual", "performance", "accessibility")


@dataclass(frozen=True)
class CoverageRule:
    """Keywords selecting a category's results and the no-match penalty."""

    keywords: Tuple[str, ...]
    penalty: float
    include_with_metrics: bool = False

    def matches(self, result: TestResult) -> bool:
        name = result.test_name.lower()
        if any(keyword in name for keyword in self.keywords):
            return True
        return self.include_with_metrics and result.performance is not None


def _default_rules() -> Dict[str, CoverageRule]:
    return {
        "functional": CoverageRule(("function", "core", "flow"), 0),
        "visual": CoverageRule(("visual", "ui", "interface"), 20),
        "performance": CoverageRule(("performance", "load"), 30, include_with_metrics=True),
        "accessibility": CoverageRule(("accessibility", "a11y"), 40),
    }


@dataclass
class CoveragePolicy:
    """Configurable keyword table and fallback penalties per category."""

    rules: Dict[str, CoverageRule] = field(default_factory=_default_rules)

    def rule(self, category: str) -> CoverageRule:
        return self.rules[category]


def _pass_rate(results: Sequence[TestResult]) -> float:
    if not results:
        return 0.0
    passed = sum(1 for r in results if r.status == TestStatus.PASSED)
    return passed / len(results) * 100


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 100.0)


class ResultAggregator:
    """Reduces per-flow results into one suite report."""

    def __init__(self, policy: Optional[CoveragePolicy] = None):
        self.policy = policy or CoveragePolicy()

    def summarize(
        self,
        results: Sequence[TestResult],
        start_time: datetime,
        end_time: datetime,
    ) -> SuiteSummary:
        counts = {status: 0 for status in TestStatus}
        for result in results:
            counts[result.status] += 1

        return SuiteSummary(
            total=len(results),
            passed=counts[TestStatus.PASSED],
            failed=counts[TestStatus.FAILED],
            skipped=counts[TestStatus.SKIPPED],
            errors=counts[TestStatus.ERROR],
            duration=max((end_time - start_time).total_seconds() * 1000, 0.0),
            start_time=start_time,
            end_time=end_time,
        )

    def estimate_coverage(self, results: Sequence[TestResult]) -> CoverageEstimate:
        """
        Estimate per-category coverage.

        A category with matching results scores their pass rate; otherwise it
        scores the overall pass rate minus the category penalty.
        """
        overall = _pass_rate(results)
        scores = {}
        for category in CATEGORIES:
            rule = self.policy.rule(category)
            matching = [r for r in results if rule.matches(r)]
            if matching:
                scores[category] = _clamp(_pass_rate(matching))
            else:
                scores[category] = _clamp(overall - rule.penalty)
        return CoverageEstimate(**scores)

    def collect_artifacts(self, results: Sequence[TestResult]) -> SuiteArtifacts:
        screenshots: List[str] = []
        videos: List[str] = []
        for result in results:
            screenshots.extend(result.screenshots)
            if result.video:
                videos.append(result.video)
        return SuiteArtifacts(screenshots=screenshots, videos=videos)

    def aggregate(
        self,
        results: Sequence[TestResult],
        start_time: datetime,
        end_time: Optional[datetime] = None,
        artifacts: Optional[SuiteArtifacts] = None,
    ) -> TestSuiteResult:
        """Build the suite report for one run."""
        end_time = end_time or datetime.now()
        return TestSuiteResult(
            summary=self.summarize(results, start_time, end_time),
            results=list(results),
            coverage=self.estimate_coverage(results),
            artifacts=artifacts or self.collect_artifacts(results),
        )
