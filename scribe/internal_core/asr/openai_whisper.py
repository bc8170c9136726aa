from __future__ import annotations

from ..openai_client import LazyAsyncOpenAI, provider_error_from_openai
from .base import ASRProvider, guess_audio_suffix


class OpenAIWhisperProvider(ASRProvider):
    def __init__(self, client: LazyAsyncOpenAI, model: str = "whisper-1"):
        self._client = client
        self._model = model

    def name(self) -> str:
        return "openai"

    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str:
        client = self._client.get(self.name())
        filename = f"chunk{guess_audio_suffix(mime_type)}"
        try:
            transcription = await client.audio.transcriptions.create(
                file=(filename, audio, mime_type),
                model=self._model,
            )
        except Exception as exc:
            raise provider_error_from_openai(exc, self.name()) from exc
        return str(getattr(transcription, "text", "") or "").strip()
