from __future__ import annotations

"""
Maintain a session-scoped, append-only transcript log for streaming sessions.

Design intent:
- Record one segment per flushed audio unit, in flush order.
- Keep failed flushes visible as error markers without polluting the text.
- Expose the full transcript as one string at any point.
"""

from dataclasses import dataclass
from typing import Optional

from scribe.internal_core.contracts import TranscriptSegment


def _normalize_text(text: str) -> str:
    # Trim only; inner spacing is the provider's.
    return (text or "").strip()


def join_transcript(texts: list[str]) -> str:
    return " ".join(text for text in texts if text).strip()


@dataclass(frozen=True)
class TranscriptAppendResult:
    segment: TranscriptSegment
    transcript_text: str


class TranscriptLog:
    def __init__(self) -> None:
        self._segments: list[TranscriptSegment] = []

    def __len__(self) -> int:
        return len(self._segments)

    @property
    def segments(self) -> list[TranscriptSegment]:
        return list(self._segments)

    @property
    def failed_count(self) -> int:
        return sum(1 for item in self._segments if not item.ok)

    @property
    def text(self) -> str:
        return join_transcript([item.text for item in self._segments if item.ok])

    def append_text(
        self,
        text: str,
        *,
        audio_bytes: int = 0,
        provider_name: Optional[str] = None,
    ) -> TranscriptAppendResult:
        segment = TranscriptSegment(
            index=len(self._segments),
            text=_normalize_text(text),
            ok=True,
            audio_bytes=audio_bytes,
            provider_name=provider_name,
        )
        self._segments.append(segment)
        return TranscriptAppendResult(segment=segment, transcript_text=self.text)

    def append_failure(
        self,
        code: str,
        message: str,
        *,
        audio_bytes: int = 0,
        provider_name: Optional[str] = None,
    ) -> TranscriptAppendResult:
        segment = TranscriptSegment(
            index=len(self._segments),
            ok=False,
            audio_bytes=audio_bytes,
            provider_name=provider_name,
            error_code=code,
            error_message=message,
        )
        self._segments.append(segment)
        return TranscriptAppendResult(segment=segment, transcript_text=self.text)
