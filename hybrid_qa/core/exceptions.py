"""
Base exception classes for Hybrid QA.

Provides a hierarchy of exceptions for the failures that can occur while
driving test flows across the session, declarative and browser backends.
"""

from typing import Optional, Dict, Any, List


class HybridQAError(Exception):
    """Base exception class for all Hybrid QA errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class InitializationError(HybridQAError):
    """Raised when a backend is unreachable or misconfigured."""

    def __init__(self, message: str, engine: Optional[str] = None):
        super().__init__(message, "INITIALIZATION_FAILED")
        self.engine = engine
        self.context.update({"engine": engine})


class ElementNotFoundError(HybridQAError):
    """Raised when every selector strategy failed to locate a target."""

    def __init__(
        self,
        message: str,
        target: Optional[str] = None,
        strategies: Optional[List[str]] = None,
    ):
        super().__init__(message, "ELEMENT_NOT_FOUND")
        self.target = target
        self.strategies = strategies or []
        self.context.update(
            {
                "target": target,
                "strategies": self.strategies,
            }
        )


class ActionExecutionError(HybridQAError):
    """Raised when a single parsed action fails inside a flow."""

    def __init__(
        self,
        message: str,
        step_index: Optional[int] = None,
        action: Optional[str] = None,
    ):
        super().__init__(message, "ACTION_FAILED")
        self.step_index = step_index
        self.action = action
        self.context.update(
            {
                "step_index": step_index,
                "action": action,
            }
        )


class AdapterEscapedError(HybridQAError):
    """Raised when an adapter call fails outside its own per-action handling."""

    def __init__(
        self,
        message: str,
        engine: Optional[str] = None,
        flow_name: Optional[str] = None,
    ):
        super().__init__(message, "ADAPTER_ESCAPED")
        self.engine = engine
        self.flow_name = flow_name
        self.context.update(
            {
                "engine": engine,
                "flow_name": flow_name,
            }
        )


class ArtifactCollectionError(HybridQAError):
    """Raised when a screenshot or video cannot be captured or copied."""

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        artifact_type: Optional[str] = None,
    ):
        super().__init__(message, "ARTIFACT_COLLECTION_FAILED")
        self.file_path = file_path
        self.artifact_type = artifact_type
        self.context.update(
            {
                "file_path": file_path,
                "artifact_type": artifact_type,
            }
        )


class CleanupError(HybridQAError):
    """Raised when releasing backend resources fails."""

    def __init__(self, message: str, engine: Optional[str] = None):
        super().__init__(message, "CLEANUP_FAILED")
        self.engine = engine
        self.context.update({"engine": engine})


class RunnerProcessError(HybridQAError):
    """Raised when the external flow runner cannot be started."""

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        exit_code: Optional[int] = None,
    ):
        super().__init__(message, "RUNNER_FAILED")
        self.command = command or []
        self.exit_code = exit_code
        self.context.update(
            {
                "command": self.command,
                "exit_code": exit_code,
            }
        )


class ValidationError(HybridQAError):
    """Raised when validation fails."""

    def __init__(
        self,
        message: str,
        validation_type: Optional[str] = None,
        violations: Optional[list] = None,
    ):
        super().__init__(message, "VALIDATION_FAILED")
        self.validation_type = validation_type
        self.violations = violations or []
        self.context.update(
            {
                "validation_type": validation_type,
                "violations": violations,
            }
        )
