"""
Multi-strategy element selector resolution.

Each backend declares an ordered catalog of lookup strategies. The resolver
tries them in order, each within a short bounded wait, and the first strategy
that finds an element (and, when asked, reports it visible) wins.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from ..core.exceptions import ElementNotFoundError

DEFAULT_STRATEGY_TIMEOUT_MS = 2000

LocateFn = Callable[[str, int], Awaitable[Any]]
VisibilityFn = Callable[[Any], Awaitable[bool]]


@dataclass(frozen=True)
class SelectorStrategy:
    """One named way of locating an element for a target string."""

    name: str
    locate: LocateFn


@dataclass(frozen=True)
class ResolvedElement:
    """An element together with the strategy that found it."""

    strategy: str
    element: Any


class SelectorResolver:
    """Ordered fallback chain of selector strategies."""

    def __init__(
        self,
        strategies: Sequence[SelectorStrategy],
        is_visible: Optional[VisibilityFn] = None,
        timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS,
        logger: Optional[logging.Logger] = None,
    ):
        if not strategies:
            raise ValueError("At least one selector strategy is required")
        self.strategies = list(strategies)
        self.is_visible = is_visible
        self.timeout_ms = timeout_ms
        self.logger = logger or logging.getLogger(__name__)

    @property
    def strategy_names(self) -> List[str]:
        return [strategy.name for strategy in self.strategies]

    async def resolve(self, target: str, require_visible: bool = False) -> ResolvedElement:
        """
        Resolve a target to an element.

        Args:
            target: Target string taken from the parsed action
            require_visible: Only accept elements reporting visible

        Returns:
            The first matching element and the strategy name

        Raises:
            ElementNotFoundError: If every strategy was exhausted
        """
        if require_visible and self.is_visible is None:
            raise ValueError("Visibility check requested but not configured")

        timeout = self.timeout_ms / 1000
        for strategy in self.strategies:
            try:
                element = await asyncio.wait_for(
                    strategy.locate(target, self.timeout_ms), timeout=timeout
                )
            except asyncio.TimeoutError:
                self.logger.debug(f"Selector strategy '{strategy.name}' timed out for: {target}")
                continue
            except Exception as e:
                self.logger.debug(f"Selector strategy '{strategy.name}' failed for {target}: {e}")
                continue

            if element is None:
                continue

            if require_visible:
                try:
                    visible = await self.is_visible(element)
                except Exception as e:
                    self.logger.debug(f"Visibility check failed via '{strategy.name}': {e}")
                    visible = False
                if not visible:
                    continue

            self.logger.debug(f"Resolved '{target}' via {strategy.name}")
            return ResolvedElement(strategy=strategy.name, element=element)

        qualifier = "visible element" if require_visible else "element"
        raise ElementNotFoundError(
            f"No {qualifier} found for '{target}' (tried: {', '.join(self.strategy_names)})",
            target=target,
            strategies=self.strategy_names,
        )
