from __future__ import annotations

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

SessionState = Literal["open", "accumulating", "flushing", "finalizing", "closed"]

SessionEvent = Literal["audioChunk", "chunkEnd", "end"]


class TranscriptSegment(BaseModel):
    model_config = ConfigDict(extra="forbid")

    index: int
    text: str = ""
    ok: bool = True
    audio_bytes: int = 0
    provider_name: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class ClinicalSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subjective: List[str]
    objective: List[str]
    assessment: List[str]
    plan: List[str]
    red_flags: List[str] = Field(alias="redFlags")


class SummaryFallback(BaseModel):
    model_config = ConfigDict(extra="forbid")

    error: str
    raw: str


SummaryPayload = Union[ClinicalSummary, SummaryFallback]


class FinalizeResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: str
    transcript: str
    summary: SummaryPayload
    segments: List[TranscriptSegment] = Field(default_factory=list)


class OneShotResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    transcript: str
    summary: SummaryPayload


AuditEventType = Literal[
    "SESSION_CREATED",
    "CHUNK_FLUSHED",
    "TRANSCRIBE_FAILED",
    "FINALIZE",
    "SUMMARY_FALLBACK",
    "SESSION_DESTROYED",
    "ERROR",
]


class AuditEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ts_iso: str
    session_id: str
    type: AuditEventType
    code: str
    detail: str
    duration_ms: Optional[int] = None
