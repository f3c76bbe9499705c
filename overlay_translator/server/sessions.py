"""In-memory session registry with cancellation and TTL cleanup.

WHY: The HTTP API runs processing sessions in the background and lets
clients query the timeline while it grows. Every session owns a
TimelineStore, a CancellationFlag and its lifecycle state; the registry
keeps them addressable by ID for as long as clients need them.

HOW: Three components work together:
  SessionStatus — enum of valid session states
  Session       — dataclass holding the store, the cancel flag, counters
  SessionStore  — thread-safe dict-based registry with create/get/list/
                  update/cancel/delete and TTL cleanup

RULES:
- All registry mutations are protected by threading.Lock
- create_session() raises ValueError when max_sessions is reached
- Cancelling sets the session's flag; the background runner notices it
- Only terminal sessions (completed, cancelled, failed) expire
- TTL is measured from completed_at; default 1 hour
- Session IDs are UUID4 hex strings
"""

from __future__ import annotations

import enum
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from overlay_translator.core.cancellation import CancellationFlag
from overlay_translator.core.timeline import TimelineStore

logger = logging.getLogger(__name__)

# Default time-to-live for finished sessions (seconds)
DEFAULT_TTL_SECONDS = 3600

TERMINAL_STATUSES = frozenset({"completed", "cancelled", "failed"})


class SessionStatus(str, enum.Enum):
    """Valid states for a processing session.

    RULES:
    - pending: created, background task not started yet
    - running: chunks are being segmented, stored and translated
    - completed: every chunk processed (translations may be partial)
    - cancelled: stopped by the client; the store keeps what it had
    - failed: recognition error or unexpected exception
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self.value in TERMINAL_STATUSES


@dataclass
class Session:
    """State of one processing session.

    RULES:
    - store: the live TimelineStore; queries read it while the run appends
    - cancel_flag: shared with the pipeline and the dispatcher
    - config: request parameters (mode, target_language, ...)
    - progress: fraction of chunks processed, 0.0 to 1.0
    """

    id: str
    status: SessionStatus
    store: TimelineStore
    cancel_flag: CancellationFlag
    created_at: float
    updated_at: float
    completed_at: Optional[float] = None
    error: Optional[str] = None
    progress: float = 0.0
    chunks_processed: int = 0
    translation_failures: int = 0
    config: Dict[str, Any] = field(default_factory=dict)


class SessionStore:
    """Thread-safe in-memory registry of processing sessions.

    WHY: API handlers (one thread each under uvicorn's threadpool) and the
    background runners touch session state concurrently.

    HOW: Sessions live in a dict keyed by ID. All mutations acquire a
    threading.Lock. The per-session TimelineStore has its own lock, so
    timeline queries never contend with the registry.

    RULES:
    - get_session() returns None for unknown IDs (no exceptions)
    - update_session() applies only non-None arguments and bumps updated_at
    - completed_at is set when the status becomes terminal
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_sessions: int = 100,
    ) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions

    def create_session(self, config: Optional[Dict[str, Any]] = None) -> Session:
        """Create a new session in PENDING state with an empty store."""
        with self._lock:
            if len(self._sessions) >= self.max_sessions:
                raise ValueError(
                    "Maximum number of sessions ({}) reached".format(self.max_sessions)
                )

            session_id = uuid.uuid4().hex
            now = time.time()
            session = Session(
                id=session_id,
                status=SessionStatus.PENDING,
                store=TimelineStore(),
                cancel_flag=CancellationFlag(),
                created_at=now,
                updated_at=now,
                config=config or {},
            )
            self._sessions[session_id] = session

        logger.info("Created session %s", session_id)
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def list_sessions(self) -> List[Session]:
        """Return all sessions, oldest first."""
        with self._lock:
            return sorted(self._sessions.values(), key=lambda s: s.created_at)

    def update_session(
        self,
        session_id: str,
        status: Optional[SessionStatus] = None,
        error: Optional[str] = None,
        progress: Optional[float] = None,
        chunks_processed: Optional[int] = None,
        translation_failures: Optional[int] = None,
    ) -> Optional[Session]:
        """Update a session's mutable fields.

        Returns:
            The updated Session, or None if session_id is unknown.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None

            now = time.time()

            if status is not None:
                session.status = status
            if error is not None:
                session.error = error
            if progress is not None:
                session.progress = progress
            if chunks_processed is not None:
                session.chunks_processed = chunks_processed
            if translation_failures is not None:
                session.translation_failures = translation_failures

            session.updated_at = now

            if session.status.is_terminal and session.completed_at is None:
                session.completed_at = now

            return session

    def cancel_session(self, session_id: str) -> bool:
        """Set the session's cancel flag.

        Returns:
            True if the session exists, False otherwise. Cancelling a
            finished session is a no-op that still returns True.
        """
        session = self.get_session(session_id)
        if session is None:
            return False
        session.cancel_flag.cancel()
        logger.info("Cancellation requested for session %s", session_id)
        return True

    def delete_session(self, session_id: str) -> bool:
        """Cancel and remove a session.

        Returns:
            True if the session was found and deleted, False otherwise.
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)

        if session is None:
            return False

        session.cancel_flag.cancel()
        logger.info("Deleted session %s", session_id)
        return True

    def cleanup_expired(self) -> int:
        """Remove terminal sessions older than the TTL.

        Returns:
            The number of sessions removed.
        """
        now = time.time()
        expired: List[Session] = []

        with self._lock:
            for session_id, session in list(self._sessions.items()):
                if not session.status.is_terminal or session.completed_at is None:
                    continue
                if now - session.completed_at > self._ttl_seconds:
                    expired.append(self._sessions.pop(session_id))

        for session in expired:
            logger.info(
                "Expired session %s (finished %.0fs ago)",
                session.id, now - (session.completed_at or now),
            )

        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
