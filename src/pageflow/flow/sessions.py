"""Per-session run state and the session-keyed store holding it.

Each session owns one ``SessionState``. Its ``lock`` serializes every
read-modify-write of the run state, so status and cancel requests can
act on a session while one of its stages is executing.
"""

from __future__ import annotations

import asyncio
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pageflow.flow.exceptions import FlowAlreadyRunningError, SessionContextError
from pageflow.flow.models import StageContext


if TYPE_CHECKING:
    from pathlib import Path

    from pageflow.flow.models import ImageType, Stage


__all__ = [
    "SessionRunState",
    "SessionState",
    "SessionStore",
]


# -------------------------------------------------------------------
# Data models
# -------------------------------------------------------------------


@dataclass(slots=True)
class SessionRunState:
    """Mutable run state of one session.

    Attributes:
        current_stage: Stage currently executing, or None when idle.
        cancel_requested: Set by a cancel request, reset when a run starts.
    """

    current_stage: Stage | None = None
    cancel_requested: bool = False

    @property
    def is_active(self) -> bool:
        """Return True while a run holds the session."""
        return self.current_stage is not None


@dataclass(slots=True)
class SessionState:
    """Everything the process flow knows about one session.

    Attributes:
        session_id: Opaque session identifier.
        project_dir: Project root, set once the user opens a project.
        image_type: Image type chosen for the project.
        run: The session's run state.
        lock: Guards ``run`` and the project context.
        last_seen: Last time the session was accessed.
    """

    session_id: str
    project_dir: Path | None = None
    image_type: ImageType | None = None
    run: SessionRunState = field(default_factory=SessionRunState)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_seen: datetime = field(default_factory=lambda: datetime.now(UTC))

    def context(self) -> StageContext:
        """Build the stage context for this session.

        Raises:
            SessionContextError: If no project directory or image type is set.
        """
        if self.project_dir is None or self.image_type is None:
            raise SessionContextError
        return StageContext(
            session_id=self.session_id,
            project_dir=self.project_dir,
            image_type=self.image_type,
        )

    async def set_project(self, project_dir: Path, image_type: ImageType) -> None:
        """Point the session at a project.

        Raises:
            FlowAlreadyRunningError: If a run currently holds the session.
        """
        async with self.lock:
            if self.run.current_stage is not None:
                raise FlowAlreadyRunningError(self.run.current_stage)
            self.project_dir = project_dir
            self.image_type = image_type

    def touch(self) -> None:
        """Record an access to the session."""
        self.last_seen = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        """Convert the session to a dictionary for API responses."""
        return {
            "session_id": self.session_id,
            "project_dir": str(self.project_dir) if self.project_dir else None,
            "image_type": self.image_type.value if self.image_type else None,
            "current_stage": (
                self.run.current_stage.value if self.run.current_stage else ""
            ),
            "cancel_requested": self.run.cancel_requested,
        }


# -------------------------------------------------------------------
# Store
# -------------------------------------------------------------------


class SessionStore:
    """In-memory store of session states with idle expiration.

    The store's own lock only guards the session map; run state is
    guarded per session by ``SessionState.lock``.

    Attributes:
        DEFAULT_IDLE_TTL_SECONDS: Idle time after which a session may be
            dropped, unless the store is given its own.
    """

    DEFAULT_IDLE_TTL_SECONDS: int = 28800

    def __init__(self, *, idle_ttl_seconds: int | None = None) -> None:
        self._sessions: dict[str, SessionState] = {}
        self._lock = asyncio.Lock()
        self._idle_ttl_seconds = (
            self.DEFAULT_IDLE_TTL_SECONDS
            if idle_ttl_seconds is None
            else idle_ttl_seconds
        )

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def idle_ttl_seconds(self) -> int:
        """Idle time after which a session may be dropped."""
        return self._idle_ttl_seconds

    async def get_or_create(self, session_id: str) -> SessionState:
        """Return the session for ``session_id``, creating it if needed.

        Args:
            session_id: The session identifier.

        Returns:
            The existing or newly created session state.
        """
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = SessionState(session_id=session_id)
                self._sessions[session_id] = session
            session.touch()
            return session

    async def get(self, session_id: str) -> SessionState | None:
        """Return the session for ``session_id``, or None if unknown."""
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.touch()
            return session

    async def cleanup_expired(self) -> int:
        """Drop idle sessions that have no active run.

        Returns:
            Number of sessions removed.
        """
        now = datetime.now(UTC)
        async with self._lock:
            expired = [
                sid
                for sid, session in self._sessions.items()
                if not session.run.is_active
                and (now - session.last_seen).total_seconds() > self._idle_ttl_seconds
            ]
            for sid in expired:
                del self._sessions[sid]
        return len(expired)

    @staticmethod
    def generate_id() -> str:
        """Generate a new opaque session identifier."""
        return secrets.token_urlsafe(24)
