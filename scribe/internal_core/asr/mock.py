from __future__ import annotations

from typing import Iterable, Optional

from .base import ASRProvider


class MockASRProvider(ASRProvider):
    def __init__(self, responses: Optional[Iterable[str]] = None) -> None:
        self._responses = list(responses or [])
        self._counter = 0

    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str:
        self._counter += 1
        if self._responses:
            return self._responses.pop(0)
        return f"(mock) simulated transcript for chunk {self._counter}."

    def name(self) -> str:
        return "mock"
