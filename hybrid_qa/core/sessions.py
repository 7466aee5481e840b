"""
Session registry for Hybrid QA.

Handles session ID generation, status tracking and age-based eviction of
finished execution sessions.
"""

import uuid
import time
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field

from .logging_config import get_logger


class SessionStatus(Enum):
    """Lifecycle of an execution session."""

    STRATEGY_GENERATED = "strategy_generated"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SessionRecord:
    """Context information for one strategy execution session."""

    session_id: str
    status: SessionStatus
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def age(self) -> float:
        """Seconds since the session was created."""
        return time.time() - self.created_at

    @property
    def is_finished(self) -> bool:
        return self.status in (SessionStatus.COMPLETED, SessionStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "created_at": datetime.fromtimestamp(self.created_at).isoformat(),
            "finished_at": (
                datetime.fromtimestamp(self.finished_at).isoformat()
                if self.finished_at
                else None
            ),
            "data": self.data,
        }


def generate_session_id(prefix: str = "exec") -> str:
    """
    Generate a unique session ID.

    The date prefix keeps IDs chronologically sortable.
    """
    suffix = uuid.uuid4().hex[:12]
    timestamp = datetime.utcnow().strftime("%Y%m%d%H%M%S")
    return f"{prefix}_{timestamp}_{suffix}"


class SessionRegistry:
    """Process-scoped store of execution sessions with explicit eviction."""

    def __init__(self, max_age_hours: float = 24.0):
        self.max_age_seconds = max_age_hours * 3600
        self.logger = get_logger("hybrid_qa.sessions")
        self._sessions: Dict[str, SessionRecord] = {}

    def create(
        self,
        status: SessionStatus = SessionStatus.EXECUTING,
        prefix: str = "exec",
        **data,
    ) -> SessionRecord:
        """Register a new session and return its record."""
        record = SessionRecord(
            session_id=generate_session_id(prefix), status=status, data=dict(data)
        )
        self._sessions[record.session_id] = record

        self.logger.debug(
            f"Session created: {record.session_id}",
            extra={"metadata": {"status": status.value}},
        )
        return record

    def get(self, session_id: str) -> Optional[SessionRecord]:
        return self._sessions.get(session_id)

    def update(
        self,
        session_id: str,
        status: Optional[SessionStatus] = None,
        **data,
    ) -> SessionRecord:
        """Update status and data of an existing session."""
        record = self._sessions.get(session_id)
        if record is None:
            raise KeyError(f"Unknown session: {session_id}")

        if status is not None:
            record.status = status
            if record.is_finished and record.finished_at is None:
                record.finished_at = time.time()
        record.data.update(data)
        return record

    def evict_expired(self, now: Optional[float] = None) -> List[str]:
        """
        Drop finished sessions older than the maximum age.

        Sessions still executing or waiting are never evicted.

        Returns:
            IDs of the evicted sessions
        """
        now = now if now is not None else time.time()
        expired = [
            session_id
            for session_id, record in self._sessions.items()
            if record.is_finished and now - record.created_at > self.max_age_seconds
        ]

        for session_id in expired:
            del self._sessions[session_id]
            self.logger.info(f"Cleaned up old session: {session_id}")

        return expired

    def counts(self) -> Dict[str, int]:
        """Number of sessions per externally visible state."""
        records = list(self._sessions.values())
        return {
            "active": sum(1 for r in records if r.status == SessionStatus.EXECUTING),
            "queued": sum(
                1 for r in records if r.status == SessionStatus.STRATEGY_GENERATED
            ),
            "completed": sum(1 for r in records if r.status == SessionStatus.COMPLETED),
            "failed": sum(1 for r in records if r.status == SessionStatus.FAILED),
        }

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
