from __future__ import annotations

"""
HTTP and WebSocket surface for the scribe service.

Design intent:
- Keep transport thin: parse, dispatch to the session manager or one-shot pipeline, serialize.
- Turn every per-message failure into an `error` reply; one session never takes down another.
- Resolve collaborators from app.state so tests and deployments can inject their own.
"""

import asyncio
import base64
import binascii
import contextlib
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from fastapi import FastAPI, File, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from scribe.internal_core.config import ScribeConfig, load_config
from scribe.internal_core.contracts import (
    AuditEvent,
    ClinicalSummary,
    SessionState,
    SummaryFallback,
    TranscriptSegment,
)
from scribe.internal_core.errors import (
    ProviderError,
    ScribeError,
    SessionNotFound,
    UploadError,
)
from scribe.internal_core.gateway import ProviderGateway, build_gateway
from scribe.internal_core.session_manager import StreamingSessionManager
from scribe.internal_core.session_store import InMemorySessionStore
from scribe.note.pipeline import run_one_shot
from scribe.note.summary import summary_to_json


class AudioChunkMessage(BaseModel):
    type: Literal["audioChunk"]
    data: str = ""


class ChunkEndMessage(BaseModel):
    type: Literal["chunkEnd"]


class EndMessage(BaseModel):
    type: Literal["end"]


ClientMessage = Annotated[
    Union[AudioChunkMessage, ChunkEndMessage, EndMessage],
    Field(discriminator="type"),
]
_CLIENT_MESSAGE_ADAPTER: TypeAdapter[Any] = TypeAdapter(ClientMessage)


class OneShotResponse(BaseModel):
    transcript: str
    summary: Union[ClinicalSummary, SummaryFallback]


class SessionStatusResponse(BaseModel):
    session_id: str
    state: SessionState
    created_at: str
    updated_at: str
    expires_at: str
    chunks_received: int = 0
    bytes_received: int = 0
    pending_bytes: int = 0
    flush_count: int = 0
    flushes_in_flight: int = 0
    segments: list[TranscriptSegment] = Field(default_factory=list)
    transcript_text: str = ""
    audit_events: list[AuditEvent] = Field(default_factory=list)


logger = logging.getLogger(__name__)


def _iso_from_epoch(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _get_config() -> ScribeConfig:
    existing = getattr(app.state, "config", None)
    if isinstance(existing, ScribeConfig):
        return existing
    created = load_config()
    setattr(app.state, "config", created)
    return created


def _get_provider_gateway() -> ProviderGateway:
    existing = getattr(app.state, "provider_gateway", None)
    if isinstance(existing, ProviderGateway):
        return existing
    created = build_gateway(_get_config())
    setattr(app.state, "provider_gateway", created)
    return created


def _get_session_store() -> InMemorySessionStore:
    existing = getattr(app.state, "session_store", None)
    if isinstance(existing, InMemorySessionStore):
        return existing
    config = _get_config()
    created = InMemorySessionStore(
        config.SCRIBE_SESSION_IDLE_TIMEOUT_SECONDS,
        max_buffer_bytes=config.SCRIBE_STREAM_MAX_BUFFER_BYTES,
    )
    setattr(app.state, "session_store", created)
    return created


def _get_session_manager() -> StreamingSessionManager:
    store = _get_session_store()
    gateway = _get_provider_gateway()
    existing = getattr(app.state, "session_manager", None)
    if isinstance(existing, StreamingSessionManager) and existing.store is store and existing.gateway is gateway:
        return existing
    config = _get_config()
    created = StreamingSessionManager(
        store,
        gateway,
        mime_type=config.SCRIBE_AUDIO_MIME_TYPE,
        flush_on_end=config.SCRIBE_FLUSH_ON_END,
    )
    setattr(app.state, "session_manager", created)
    return created


async def _sweep_idle_sessions(interval_sec: float) -> None:
    while True:
        await asyncio.sleep(interval_sec)
        try:
            removed = _get_session_store().cleanup_expired_sessions()
        except Exception:
            logger.exception("idle session sweep failed")
            continue
        if removed:
            logger.info("idle sweep removed %d sessions", removed)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    config = _get_config()
    sweeper = asyncio.create_task(_sweep_idle_sessions(max(1.0, config.SCRIBE_SESSION_SWEEP_INTERVAL_SECONDS)))
    logger.info(
        "scribe service ready asr=%s llm=%s idle_timeout_sec=%d",
        config.SCRIBE_ASR_PROVIDER,
        config.SCRIBE_LLM_BACKEND,
        config.SCRIBE_SESSION_IDLE_TIMEOUT_SECONDS,
    )
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper


app = FastAPI(title="encounter scribe service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(load_config().SCRIBE_CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(UploadError)
async def _upload_error_handler(_request: Request, exc: UploadError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(ProviderError)
async def _provider_error_handler(_request: Request, exc: ProviderError) -> JSONResponse:
    logger.warning("provider failure on HTTP path provider=%s code=%s", exc.provider_name, exc.code)
    return JSONResponse(status_code=500, content={"error": exc.message})


@app.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    return "OK"


@app.get("/sessions/{session_id}", response_model=SessionStatusResponse)
async def session_status(session_id: str) -> Any:
    try:
        session = _get_session_store().get_session(session_id)
    except SessionNotFound as exc:
        return JSONResponse(status_code=404, content={"error": str(exc)})
    return SessionStatusResponse(
        session_id=session.session_id,
        state=session.state,
        created_at=_iso_from_epoch(session.created_at),
        updated_at=_iso_from_epoch(session.updated_at),
        expires_at=_iso_from_epoch(session.expires_at),
        chunks_received=session.chunks_received,
        bytes_received=session.bytes_received,
        pending_bytes=session.chunks.pending_bytes,
        flush_count=session.flush_count,
        flushes_in_flight=session.flushes_in_flight,
        segments=session.transcript.segments,
        transcript_text=session.transcript.text,
        audit_events=list(session.audit_events),
    )


async def _read_upload_capped(upload: UploadFile, max_bytes: int) -> bytes:
    payload = await upload.read(max_bytes + 1)
    if len(payload) > max_bytes:
        raise UploadError(f"Audio exceeds {max_bytes // (1024 * 1024)}MB limit.", status_code=413)
    return payload


@app.post("/one-shot", response_model=OneShotResponse)
async def one_shot(audio: Optional[UploadFile] = File(default=None)) -> OneShotResponse:
    if audio is None:
        raise UploadError("No audio")
    config = _get_config()
    try:
        payload = await _read_upload_capped(audio, config.SCRIBE_UPLOAD_MAX_BYTES)
    finally:
        await audio.close()

    mime_type = str(audio.content_type or "").strip()
    if not mime_type or mime_type == "application/octet-stream":
        mime_type = config.SCRIBE_AUDIO_MIME_TYPE
    result = await run_one_shot(_get_provider_gateway(), payload, mime_type=mime_type)
    return OneShotResponse(transcript=result.transcript, summary=result.summary)


def _decode_audio_chunk(data: str) -> bytes:
    raw = (data or "").strip()
    if not raw:
        raise ValueError("missing_data")
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("invalid_base64") from exc


class _StreamConnection:
    """One WebSocket connection bound to one streaming session."""

    def __init__(self, websocket: WebSocket, manager: StreamingSessionManager, session_id: str):
        self._ws = websocket
        self._manager = manager
        self._session_id = session_id
        self._send_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    async def send(self, payload: dict[str, Any]) -> None:
        async with self._send_lock:
            if self._closed:
                return
            await self._ws.send_json(payload)

    async def send_error(self, message: str) -> None:
        await self.send({"type": "error", "message": message})

    async def _send_segment(self, segment: TranscriptSegment) -> None:
        if segment.ok:
            await self.send({"type": "partialTranscript", "text": segment.text})
        else:
            await self.send_error(f"Transcription failed: {segment.error_message or segment.error_code}")

    async def _close(self, code: int = 1000) -> None:
        if self._closed:
            return
        async with self._send_lock:
            self._closed = True
            with contextlib.suppress(RuntimeError):
                await self._ws.close(code=code)

    async def _run_flush(self, pending: Any) -> None:
        try:
            await pending
        except SessionNotFound:
            logger.info("flush dropped, session already closed session_id=%s", self._session_id)
        except Exception as exc:
            logger.exception("flush failed session_id=%s", self._session_id)
            with contextlib.suppress(Exception):
                await self.send_error(str(exc))

    async def run(self) -> None:
        await self.send({"type": "session", "sessionId": self._session_id})
        try:
            while not self._closed:
                raw = await self._receive_frame()
                if raw is None:
                    await self.send_error("invalid_message: expected a UTF-8 JSON text frame")
                    continue
                await self.handle(raw)
        except WebSocketDisconnect:
            logger.info("client disconnected session_id=%s", self._session_id)
        finally:
            await self._shutdown()

    async def _receive_frame(self) -> Optional[str]:
        message = await self._ws.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(code=message.get("code", 1000))
        text = message.get("text")
        if text is not None:
            return text
        data = message.get("bytes")
        if data is None:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return None

    async def _shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._manager.abandon(self._session_id, reason="disconnected"):
            logger.info("session abandoned before finalize session_id=%s", self._session_id)

    async def handle(self, raw: str) -> None:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            await self.send_error("invalid_json")
            return
        try:
            message = _CLIENT_MESSAGE_ADAPTER.validate_python(payload)
        except ValidationError as exc:
            await self.send_error(f"invalid_message: {exc.errors()[0].get('msg', 'unknown')}")
            return

        try:
            await self._dispatch(message)
        except SessionNotFound:
            await self.send_error("Session expired or closed.")
            await self._close(code=1008)
        except ScribeError as exc:
            await self.send_error(str(exc))
        except Exception as exc:
            logger.exception("message handling failed session_id=%s", self._session_id)
            # The socket itself may be the thing that failed.
            with contextlib.suppress(Exception):
                await self.send_error(str(exc) or exc.__class__.__name__)

    async def _dispatch(self, message: Any) -> None:
        if isinstance(message, AudioChunkMessage):
            try:
                chunk = _decode_audio_chunk(message.data)
            except ValueError as exc:
                await self.send_error(str(exc))
                return
            self._manager.append_chunk(self._session_id, chunk)
            return

        if isinstance(message, ChunkEndMessage):
            pending = self._manager.start_flush(self._session_id, on_segment=self._send_segment)
            if pending is None:
                await self.send_error("No audio buffered for chunkEnd.")
                return
            task = asyncio.create_task(self._run_flush(pending))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return

        result = await self._manager.finalize(self._session_id, on_segment=self._send_segment)
        await self.send(
            {
                "type": "final",
                "transcript": result.transcript,
                "summary": summary_to_json(result.summary),
            }
        )
        await self._close(code=1000)


@app.websocket("/stream")
async def stream_ws(websocket: WebSocket) -> None:
    await websocket.accept()
    manager = _get_session_manager()
    session_id = manager.open_session()
    await _StreamConnection(websocket, manager, session_id).run()
