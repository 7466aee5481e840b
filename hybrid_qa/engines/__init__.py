"""Automation backends and the engine registry."""

from .base import AdapterState, BackendAdapter, FlowRun, run_actions
from .browser import BrowserAdapter
from .declarative import DeclarativeFlowAdapter, compile_flow, generate_specialized_flow
from .registry import AdapterRegistry, create_default_adapters
from .selectors import ResolvedElement, SelectorResolver, SelectorStrategy
from .session import SessionAdapter

__all__ = [
    "AdapterRegistry",
    "AdapterState",
    "BackendAdapter",
    "BrowserAdapter",
    "DeclarativeFlowAdapter",
    "FlowRun",
    "ResolvedElement",
    "SelectorResolver",
    "SelectorStrategy",
    "SessionAdapter",
    "compile_flow",
    "create_default_adapters",
    "generate_specialized_flow",
    "run_actions",
]
