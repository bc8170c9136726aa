from __future__ import annotations

from typing import Any

from ..openai_client import LazyAsyncOpenAI, provider_error_from_openai
from .base import LLMProvider, ModelParams


class OpenAIResponsesProvider(LLMProvider):
    def __init__(self, client: LazyAsyncOpenAI, default_model: str = "gpt-4o-mini"):
        self._client = client
        self._default_model = default_model

    def name(self) -> str:
        return "openai"

    async def complete(self, prompt: str, params: ModelParams) -> str:
        client = self._client.get(self.name())
        request: dict[str, Any] = {
            "model": params.model or self._default_model,
            "input": prompt,
            "temperature": params.temperature,
        }
        if params.max_tokens > 0:
            request["max_output_tokens"] = int(params.max_tokens)
        try:
            response = await client.responses.create(**request)
        except Exception as exc:
            raise provider_error_from_openai(exc, self.name()) from exc
        return str(getattr(response, "output_text", "") or "").strip()
