"""Engine registry: one adapter instance per engine tag."""

from typing import Dict, Optional

from ..core.config import Config
from ..execution.artifacts import ArtifactManager
from ..models import Engine
from .base import BackendAdapter
from .browser import BrowserAdapter
from .declarative import DeclarativeFlowAdapter
from .session import SessionAdapter

AdapterRegistry = Dict[Engine, BackendAdapter]


def create_default_adapters(
    config: Config, artifacts: Optional[ArtifactManager] = None
) -> AdapterRegistry:
    """Build the standard registry of session, declarative and browser adapters."""
    artifacts = artifacts or ArtifactManager(config)
    return {
        Engine.SESSION: SessionAdapter(config, artifacts),
        Engine.DECLARATIVE: DeclarativeFlowAdapter(config, artifacts),
        Engine.BROWSER: BrowserAdapter(config, artifacts),
    }
