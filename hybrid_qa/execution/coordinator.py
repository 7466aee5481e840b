"""
Execution coordinator.

Runs a strategy's flows across the registered backends: initializes every
adapter concurrently, dispatches flows one at a time by engine tag, and
guarantees cleanup on every exit path.
"""

import asyncio
import time
from datetime import datetime
from typing import Dict, List, Optional

from ..core.config import Config
from ..core.exceptions import (
    AdapterEscapedError,
    CleanupError,
    HybridQAError,
    InitializationError,
)
from ..core.logging_config import get_logger, log_performance
from ..engines.base import BackendAdapter
from ..models import (
    Engine,
    Flow,
    HealthStatus,
    Strategy,
    TestConfig,
    TestResult,
    TestStatus,
    TestSuiteResult,
)
from .aggregator import ResultAggregator
from .artifacts import ArtifactManager


class ExecutionCoordinator:
    """
    Drives one strategy execution across backend adapters.

    Adapters come from a registry keyed by engine tag. The coordinator never
    inspects an adapter's concrete type.
    """

    def __init__(
        self,
        config: Config,
        adapters: Optional[Dict[Engine, BackendAdapter]] = None,
        aggregator: Optional[ResultAggregator] = None,
        artifact_manager: Optional[ArtifactManager] = None,
        run_id: Optional[str] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            config: Hybrid QA configuration
            adapters: Engine registry; defaults to the standard three backends
            aggregator: Result aggregator used to build the suite report
            artifact_manager: Shared artifact manager
            run_id: Identifier used for log correlation
        """
        self.config = config
        self.run_id = run_id or f"exec_{int(time.time())}"
        self.logger = get_logger(__name__, run_id=self.run_id)
        self.artifact_manager = artifact_manager or ArtifactManager(config, self.run_id)

        if adapters is None:
            from ..engines.registry import create_default_adapters

            adapters = create_default_adapters(config, self.artifact_manager)
        self.adapters = dict(adapters)
        self.aggregator = aggregator or ResultAggregator()

    def adapter_for(self, engine: Engine) -> BackendAdapter:
        """
        Look up the adapter registered for an engine tag.

        Raises:
            HybridQAError: If no adapter is registered for the tag
        """
        adapter = self.adapters.get(engine)
        if adapter is None:
            raise HybridQAError(
                f"No adapter registered for engine: {engine.value}",
                "UNKNOWN_ENGINE",
                {"engine": engine.value, "registered": [e.value for e in self.adapters]},
            )
        return adapter

    async def execute_strategy(
        self, strategy: Strategy, config: Optional[TestConfig] = None
    ) -> TestSuiteResult:
        """
        Execute every flow of a strategy and aggregate the results.

        Args:
            strategy: Strategy whose flows are executed in order
            config: Per-run execution options

        Returns:
            Suite report with exactly one result per flow

        Raises:
            InitializationError: If any adapter fails to initialize
        """
        start_time = datetime.now()
        started = time.time()
        results: List[TestResult] = []

        self.logger.info(
            f"Executing strategy with {len(strategy.test_flows)} flows",
            extra={
                "metadata": {
                    "primary_engine": strategy.primary_engine.value,
                    "flow_count": len(strategy.test_flows),
                }
            },
        )

        try:
            await self._initialize_adapters(config)

            for index, flow in enumerate(strategy.test_flows):
                results.append(await self._execute_flow(flow, config))
                if index < len(strategy.test_flows) - 1 and self.config.flow_delay_ms:
                    await asyncio.sleep(self.config.flow_delay_ms / 1000)
        finally:
            await self._cleanup_adapters()

        suite = self.aggregator.aggregate(results, start_time, datetime.now())
        log_performance(
            self.logger,
            "execute_strategy",
            time.time() - started,
            total=suite.summary.total,
            passed=suite.summary.passed,
            failed=suite.summary.failed,
            errors=suite.summary.errors,
        )
        return suite

    async def _initialize_adapters(self, config: Optional[TestConfig]) -> None:
        engines = list(self.adapters)
        outcomes = await asyncio.gather(
            *(self.adapters[engine].initialize(config) for engine in engines),
            return_exceptions=True,
        )

        for engine, outcome in zip(engines, outcomes):
            if isinstance(outcome, BaseException):
                self.logger.error(
                    f"Adapter initialization failed: {engine.value}",
                    extra={"metadata": {"engine": engine.value, "error": str(outcome)}},
                )
                if isinstance(outcome, InitializationError):
                    raise outcome
                raise InitializationError(
                    f"Failed to initialize {engine.value} backend: {outcome}",
                    engine=engine.value,
                ) from outcome

    async def _execute_flow(self, flow: Flow, config: Optional[TestConfig]) -> TestResult:
        start_time = datetime.now()
        try:
            adapter = self.adapter_for(flow.engine)
            result = await adapter.execute_test_flow(flow, config)
        except Exception as e:
            escaped = AdapterEscapedError(
                f"Flow '{flow.name}' failed outside adapter handling: {e}",
                engine=flow.engine.value,
                flow_name=flow.name,
            )
            self.logger.error(escaped.message, extra={"metadata": escaped.to_dict()})
            return TestResult.build(
                test_name=flow.name,
                engine=flow.engine,
                status=TestStatus.ERROR,
                start_time=start_time,
                end_time=datetime.now(),
                error=str(e) or e.__class__.__name__,
                metadata={"error_code": escaped.error_code},
            )

        self.logger.info(
            f"Flow finished: {flow.name}",
            extra={"metadata": result.to_summary()},
        )
        return result

    async def _cleanup_adapters(self) -> None:
        engines = list(self.adapters)
        outcomes = await asyncio.gather(
            *(self.adapters[engine].cleanup() for engine in engines),
            return_exceptions=True,
        )

        for engine, outcome in zip(engines, outcomes):
            if isinstance(outcome, BaseException):
                error = (
                    outcome
                    if isinstance(outcome, CleanupError)
                    else CleanupError(str(outcome), engine=engine.value)
                )
                self.logger.error(
                    f"Adapter cleanup failed: {engine.value}",
                    extra={"metadata": error.to_dict()},
                )

    async def check_engine_availability(self) -> Dict[Engine, bool]:
        """Probe every registered backend for availability."""
        engines = list(self.adapters)
        outcomes = await asyncio.gather(
            *(self.adapters[engine].is_available() for engine in engines),
            return_exceptions=True,
        )
        return {
            engine: outcome is True
            for engine, outcome in zip(engines, outcomes)
        }

    async def get_engine_health(self) -> Dict[Engine, HealthStatus]:
        """Collect the health status of every registered backend."""
        engines = list(self.adapters)
        outcomes = await asyncio.gather(
            *(self.adapters[engine].get_health_status() for engine in engines),
            return_exceptions=True,
        )

        health = {}
        for engine, outcome in zip(engines, outcomes):
            if isinstance(outcome, BaseException):
                health[engine] = HealthStatus(status="error", details=str(outcome))
            else:
                health[engine] = outcome
        return health
