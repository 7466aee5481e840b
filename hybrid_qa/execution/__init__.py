"""
Flow execution components for Hybrid QA.

This module provides the execution coordinator, result aggregation and
artifact management shared by every backend.
"""

from .artifacts import ArtifactManager, sanitize_name
from .aggregator import CoveragePolicy, CoverageRule, ResultAggregator
from .coordinator import ExecutionCoordinator

__all__ = [
    "ArtifactManager",
    "CoveragePolicy",
    "CoverageRule",
    "ExecutionCoordinator",
    "ResultAggregator",
    "sanitize_name",
]
