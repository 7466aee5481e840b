"""
Orchestration layer tying strategy generation, execution and analysis.

Strategy generation and result analysis are external collaborators; only
their interfaces are defined here.
"""

import time
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .core.config import Config
from .core.exceptions import ArtifactCollectionError, HybridQAError
from .core.logging_config import get_logger, log_performance
from .core.sessions import SessionRegistry, SessionStatus
from .execution.coordinator import ExecutionCoordinator
from .models import Strategy, TestConfig, TestSuiteResult


@runtime_checkable
class StrategyGenerator(Protocol):
    """Produces a test strategy for an application context."""

    async def generate_test_strategy(
        self, context: Dict[str, Any], constraints: Optional[Dict[str, Any]] = None
    ) -> Strategy:
        ...


@runtime_checkable
class ResultAnalyzer(Protocol):
    """Analyzes a suite report for an application context."""

    async def analyze_test_results(
        self, results: TestSuiteResult, context: Dict[str, Any]
    ) -> Dict[str, Any]:
        ...


class QAOrchestrator:
    """
    Entry point for running strategies and tracking their sessions.

    Every execution is tracked in a process-scoped session registry; finished
    sessions are evicted by cleanup() once they exceed the configured age.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        coordinator: Optional[ExecutionCoordinator] = None,
        strategy_generator: Optional[StrategyGenerator] = None,
        result_analyzer: Optional[ResultAnalyzer] = None,
    ):
        self.config = config or Config.from_env()
        self.coordinator = coordinator or ExecutionCoordinator(self.config)
        self.strategy_generator = strategy_generator
        self.result_analyzer = result_analyzer
        self.sessions = SessionRegistry(self.config.session_max_age_hours)
        self.logger = get_logger(__name__)

    async def generate_test_strategy(
        self,
        context: Dict[str, Any],
        constraints: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Generate a strategy and register it as a queued session.

        Raises:
            HybridQAError: If no strategy generator is configured
        """
        if self.strategy_generator is None:
            raise HybridQAError("No strategy generator configured", "GENERATOR_MISSING")

        strategy = await self.strategy_generator.generate_test_strategy(context, constraints)
        record = self.sessions.create(
            SessionStatus.STRATEGY_GENERATED,
            prefix="session",
            context=context,
            constraints=constraints,
            strategy=strategy,
        )
        return {
            "session_id": record.session_id,
            "strategy": strategy,
            "estimated_duration": strategy.estimated_duration,
        }

    async def execute_tests(
        self, strategy: Strategy, config: Optional[TestConfig] = None
    ) -> Dict[str, Any]:
        """
        Execute a strategy and write its JSON report.

        Returns:
            Session ID, suite report and the list of artifact paths
        """
        record = self.sessions.create(SessionStatus.EXECUTING, strategy=strategy, config=config)
        self.logger.info(
            f"Executing tests for session {record.session_id}",
            extra={
                "metadata": {
                    "primary_engine": strategy.primary_engine.value,
                    "flow_count": len(strategy.test_flows),
                }
            },
        )
        started = time.time()

        try:
            results = await self.coordinator.execute_strategy(strategy, config)
        except Exception as e:
            self.sessions.update(record.session_id, SessionStatus.FAILED, error=str(e))
            self.logger.error(f"Test execution failed: {e}")
            raise

        try:
            report_path = self.coordinator.artifact_manager.write_report(
                record.session_id, results.model_dump(mode="json")
            )
        except ArtifactCollectionError as e:
            self.logger.warning(f"Report not written for session {record.session_id}: {e.message}")
        else:
            artifacts = results.artifacts.model_copy(
                update={"reports": [*results.artifacts.reports, report_path]}
            )
            results = results.model_copy(update={"artifacts": artifacts})
        artifact_paths = results.artifacts.all_paths()

        self.sessions.update(
            record.session_id,
            SessionStatus.COMPLETED,
            results=results,
            artifacts=artifact_paths,
        )
        log_performance(
            self.logger,
            "execute_tests",
            time.time() - started,
            session_id=record.session_id,
            artifacts=len(artifact_paths),
        )
        return {
            "session_id": record.session_id,
            "results": results,
            "artifacts": artifact_paths,
        }

    async def analyze_results(
        self, results: TestSuiteResult, context: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Analyze results and extract high-priority follow-ups.

        Raises:
            HybridQAError: If no result analyzer is configured
        """
        if self.result_analyzer is None:
            raise HybridQAError("No result analyzer configured", "ANALYZER_MISSING")

        analysis = await self.result_analyzer.analyze_test_results(results, context)
        action_items: List[str] = [
            item.get("description", "")
            for item in analysis.get("improvements", [])
            if item.get("priority") == "high"
        ]
        next_steps: List[str] = [
            issue.get("recommendation", "")
            for issue in analysis.get("issues", [])
            if issue.get("severity") in ("critical", "high")
        ]
        return {"analysis": analysis, "action_items": action_items, "next_steps": next_steps}

    def get_test_status(self, session_id: Optional[str] = None) -> Dict[str, Any]:
        counts = self.sessions.counts()
        record = self.sessions.get(session_id) if session_id else None
        return {
            "session": record.to_dict() if record else None,
            "active_tests": counts["active"],
            "queued_tests": counts["queued"],
            "completed_tests": counts["completed"],
            "failed_tests": counts["failed"],
        }

    def cleanup(self) -> List[str]:
        """Evict finished sessions older than the configured maximum age."""
        return self.sessions.evict_expired()
