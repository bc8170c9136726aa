from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from threading import RLock
from typing import Callable, Dict, Optional

from scribe.asr.chunk_buffer import ChunkAccumulator
from scribe.asr.transcript_log import TranscriptLog

from .contracts import AuditEvent, SessionState
from .errors import SessionNotFound

logger = logging.getLogger(__name__)


@dataclass
class Session:
    session_id: str
    created_at: float
    updated_at: float
    expires_at: float
    state: SessionState = "open"
    chunks: ChunkAccumulator = field(default_factory=ChunkAccumulator)
    transcript: TranscriptLog = field(default_factory=TranscriptLog)
    flush_tail: Optional[asyncio.Future] = None
    flushes_in_flight: int = 0
    chunks_received: int = 0
    bytes_received: int = 0
    flush_count: int = 0
    audit_events: list[AuditEvent] = field(default_factory=list)


class InMemorySessionStore:
    def __init__(
        self,
        ttl_seconds: int,
        *,
        max_buffer_bytes: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._ttl_seconds = ttl_seconds
        self._max_buffer_bytes = max_buffer_bytes
        self._clock = clock
        self._lock = RLock()
        self._sessions: Dict[str, Session] = {}

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create_session(self) -> str:
        now = self._clock()
        with self._lock:
            session_id = uuid.uuid4().hex
            while session_id in self._sessions:
                session_id = uuid.uuid4().hex
            self._sessions[session_id] = Session(
                session_id=session_id,
                created_at=now,
                updated_at=now,
                expires_at=now + self._ttl_seconds,
                chunks=ChunkAccumulator(max_bytes=self._max_buffer_bytes),
            )
        return session_id

    def _touch(self, session: Session) -> None:
        now = self._clock()
        session.updated_at = now
        session.expires_at = now + self._ttl_seconds

    def touch(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            self._touch(session)

    def get_session(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            return session

    def has_session(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def destroy_session(self, session_id: str, reason: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False

        # Anything still holding the object sees a terminal, empty session.
        session.state = "closed"
        session.chunks.clear()
        logger.info("session destroyed session_id=%s reason=%s", session_id, reason)
        return True

    def cleanup_expired_sessions(self) -> int:
        now = self._clock()
        expired = []
        with self._lock:
            for session_id, session in self._sessions.items():
                # Work still in flight is not idleness.
                if session.flushes_in_flight or session.state == "finalizing":
                    continue
                if session.expires_at <= now:
                    expired.append(session_id)
        removed = 0
        for session_id in expired:
            if self.destroy_session(session_id, reason="ttl_expired"):
                removed += 1
        return removed
