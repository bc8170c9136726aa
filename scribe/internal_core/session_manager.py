from __future__ import annotations

"""
Streaming session state machine.

Design intent:
- One explicit state per session, checked against a transition table before any mutation.
- Flush units are cut on chunkEnd arrival and take a place in a per-session FIFO at the
  same moment; transcription runs strictly one unit at a time, in that order.
- Finalize queues behind every earlier flush, summarizes once, and deletes the session.

States: open -> accumulating <-> flushing -> finalizing -> closed.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Awaitable, Callable, Optional

from scribe.note.summary import summarize_transcript

from . import audit
from .contracts import FinalizeResult, SessionEvent, SummaryFallback, TranscriptSegment
from .errors import BufferLimitExceeded, InvalidStateTransition, ProviderError, SessionNotFound
from .gateway import ProviderGateway
from .llm import ModelParams
from .session_store import InMemorySessionStore, Session

logger = logging.getLogger(__name__)

_CLOSED_TOMBSTONES_MAX = 4096

SegmentCallback = Callable[[TranscriptSegment], Awaitable[None]]

_ALLOWED_FROM: dict[SessionEvent, frozenset[str]] = {
    "audioChunk": frozenset({"open", "accumulating", "flushing"}),
    "chunkEnd": frozenset({"open", "accumulating", "flushing"}),
    "end": frozenset({"open", "accumulating", "flushing"}),
}


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _enqueue(session: Session) -> tuple[Optional[asyncio.Future], asyncio.Future]:
    previous = session.flush_tail
    done = asyncio.get_running_loop().create_future()
    session.flush_tail = done
    return previous, done


def _release(session: Session, done: asyncio.Future) -> None:
    if not done.done():
        done.set_result(None)
    if session.flush_tail is done:
        session.flush_tail = None


async def _wait_turn(previous: Optional[asyncio.Future]) -> None:
    if previous is not None:
        # Shielded so a cancelled waiter never cancels the unit ahead of it.
        await asyncio.shield(previous)


class StreamingSessionManager:
    def __init__(
        self,
        store: InMemorySessionStore,
        gateway: ProviderGateway,
        *,
        mime_type: str = "audio/wav",
        flush_on_end: bool = True,
        params: Optional[ModelParams] = None,
    ):
        self.store = store
        self.gateway = gateway
        self._mime_type = mime_type
        self._flush_on_end = flush_on_end
        self._params = params
        self._closed: OrderedDict[str, str] = OrderedDict()

    def open_session(self) -> str:
        removed = self.store.cleanup_expired_sessions()
        if removed:
            logger.info("swept %d idle sessions", removed)
        session_id = self.store.create_session()
        session = self.store.get_session(session_id)
        audit.log_event(session, "SESSION_CREATED", "OK", "streaming session opened")
        logger.info("session opened session_id=%s", session_id)
        return session_id

    def get_session(self, session_id: str) -> Session:
        return self.store.get_session(session_id)

    def _remember_closed(self, session_id: str, reason: str) -> None:
        self._closed[session_id] = reason
        while len(self._closed) > _CLOSED_TOMBSTONES_MAX:
            self._closed.popitem(last=False)

    def _require(self, session_id: str, event: SessionEvent) -> Session:
        try:
            session = self.store.get_session(session_id)
        except SessionNotFound:
            if session_id in self._closed:
                raise InvalidStateTransition(session_id, "closed", event) from None
            raise
        if session.state not in _ALLOWED_FROM[event]:
            raise InvalidStateTransition(session_id, session.state, event)
        if session.state == "open":
            session.state = "accumulating"
        self.store.touch(session_id)
        return session

    def append_chunk(self, session_id: str, chunk: bytes) -> int:
        session = self._require(session_id, "audioChunk")
        if session.chunks.would_overflow(chunk):
            raise BufferLimitExceeded(session.chunks.max_bytes or 0)
        session.chunks.append(chunk)
        session.chunks_received += 1
        session.bytes_received += len(chunk)
        return session.chunks.pending_bytes

    def flush(self, session_id: str) -> bytes:
        return self.store.get_session(session_id).chunks.flush()

    def start_flush(
        self,
        session_id: str,
        on_segment: Optional[SegmentCallback] = None,
    ) -> Optional[Awaitable[TranscriptSegment]]:
        """Cut the flush unit now and return its pending transcription.

        Both the unit boundary and the unit's place in the session queue are
        fixed at call time, so chunks appended afterwards land in the next
        unit and later flushes or a finalize wait for this one. Returns None
        when nothing is buffered. Must be called from a running event loop.
        """
        session = self._require(session_id, "chunkEnd")
        unit = session.chunks.flush()
        if not unit:
            return None
        session.state = "flushing"
        session.flushes_in_flight += 1
        previous, done = _enqueue(session)
        return self._complete_flush(session, unit, on_segment, previous, done)

    async def chunk_end(
        self,
        session_id: str,
        on_segment: Optional[SegmentCallback] = None,
    ) -> Optional[TranscriptSegment]:
        pending = self.start_flush(session_id, on_segment)
        if pending is None:
            return None
        return await pending

    async def _complete_flush(
        self,
        session: Session,
        unit: bytes,
        on_segment: Optional[SegmentCallback],
        previous: Optional[asyncio.Future],
        done: asyncio.Future,
    ) -> TranscriptSegment:
        try:
            await _wait_turn(previous)
            return await self._transcribe_unit(session, unit, on_segment)
        finally:
            _release(session, done)
            session.flushes_in_flight -= 1
            if session.flushes_in_flight == 0 and session.state == "flushing":
                session.state = "accumulating"

    async def _transcribe_unit(
        self,
        session: Session,
        unit: bytes,
        on_segment: Optional[SegmentCallback],
    ) -> TranscriptSegment:
        if session.state == "closed":
            raise SessionNotFound(session.session_id)

        started = time.perf_counter()
        provider_name = self.gateway.asr.name()
        try:
            text = await self.gateway.transcribe(unit, self._mime_type)
        except ProviderError as exc:
            if session.state == "closed":
                raise SessionNotFound(session.session_id) from exc
            result = session.transcript.append_failure(
                exc.code, exc.message, audio_bytes=len(unit), provider_name=exc.provider_name
            )
            audit.log_event(session, "TRANSCRIBE_FAILED", exc.code, exc.message, _elapsed_ms(started))
        else:
            if session.state == "closed":
                raise SessionNotFound(session.session_id)
            result = session.transcript.append_text(text, audio_bytes=len(unit), provider_name=provider_name)
            audit.log_event(
                session,
                "CHUNK_FLUSHED",
                "OK",
                f"segment={result.segment.index} audio_bytes={len(unit)}",
                _elapsed_ms(started),
            )

        session.flush_count += 1
        self.store.touch(session.session_id)
        if on_segment is not None:
            await on_segment(result.segment)
        return result.segment

    async def finalize(
        self,
        session_id: str,
        on_segment: Optional[SegmentCallback] = None,
    ) -> FinalizeResult:
        session = self._require(session_id, "end")
        session.state = "finalizing"
        previous, done = _enqueue(session)
        started = time.perf_counter()
        try:
            await _wait_turn(previous)
            if self._flush_on_end and not session.chunks.is_empty():
                await self._transcribe_unit(session, session.chunks.flush(), on_segment)
            transcript = session.transcript.text
            summary = await summarize_transcript(self.gateway, transcript, params=self._params)
        except Exception as exc:
            if session.state == "finalizing":
                # Back to accumulating so the client can send end again.
                session.state = "accumulating"
                audit.log_event(session, "ERROR", getattr(exc, "code", exc.__class__.__name__), str(exc))
            raise
        finally:
            _release(session, done)

        if session.state == "closed":
            raise SessionNotFound(session_id)
        if isinstance(summary, SummaryFallback):
            audit.log_event(session, "SUMMARY_FALLBACK", "INVALID_JSON", f"raw_chars={len(summary.raw)}")
        audit.log_event(
            session,
            "FINALIZE",
            "OK",
            f"segments={len(session.transcript)} failed={session.transcript.failed_count}",
            _elapsed_ms(started),
        )
        result = FinalizeResult(
            session_id=session_id,
            transcript=transcript,
            summary=summary,
            segments=session.transcript.segments,
        )
        audit.log_event(session, "SESSION_DESTROYED", "FINALIZED", "session deleted after final")
        session.state = "closed"
        self.store.destroy_session(session_id, reason="finalized")
        self._remember_closed(session_id, "finalized")
        logger.info("session finalized session_id=%s segments=%d", session_id, len(result.segments))
        return result

    def abandon(self, session_id: str, reason: str = "disconnected") -> bool:
        if self.store.has_session(session_id):
            session = self.store.get_session(session_id)
            audit.log_event(session, "SESSION_DESTROYED", reason.upper(), f"state={session.state}")
        removed = self.store.destroy_session(session_id, reason=reason)
        if removed:
            self._remember_closed(session_id, reason)
        return removed
