from __future__ import annotations

from abc import ABC, abstractmethod


def guess_audio_suffix(mime_type: str | None) -> str:
    mt = str(mime_type or "").strip().lower()
    if "wav" in mt:
        return ".wav"
    if "mpeg" in mt or "mp3" in mt:
        return ".mp3"
    if "mp4" in mt or "m4a" in mt:
        return ".m4a"
    if "ogg" in mt:
        return ".ogg"
    if "flac" in mt:
        return ".flac"
    if "webm" in mt:
        return ".webm"
    return ".wav"


class ASRProvider(ABC):
    @abstractmethod
    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str: ...

    @abstractmethod
    def name(self) -> str: ...
