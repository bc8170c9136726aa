from __future__ import annotations

from typing import Optional

import openai
from openai import AsyncOpenAI

from .errors import ProviderError


def provider_error_from_openai(exc: Exception, provider_name: str) -> ProviderError:
    if isinstance(exc, openai.APITimeoutError):
        return ProviderError("TIMEOUT", str(exc) or "OpenAI request timed out", provider_name)
    if isinstance(exc, openai.APIConnectionError):
        return ProviderError("CONNECTION_ERROR", str(exc) or "OpenAI connection failed", provider_name)
    if isinstance(exc, openai.APIStatusError):
        message = getattr(exc, "message", "") or str(exc)
        return ProviderError(f"HTTP_{exc.status_code}", message, provider_name)
    if isinstance(exc, openai.OpenAIError):
        return ProviderError("OPENAI_ERROR", str(exc), provider_name)
    return ProviderError("PROVIDER_EXCEPTION", str(exc) or exc.__class__.__name__, provider_name)


class LazyAsyncOpenAI:
    """Builds the AsyncOpenAI client on first use so a missing key fails per call, not at import."""

    def __init__(self, api_key: str = "", client: Optional[AsyncOpenAI] = None):
        self._api_key = api_key
        self._client = client

    def get(self, provider_name: str) -> AsyncOpenAI:
        if self._client is not None:
            return self._client
        try:
            self._client = AsyncOpenAI(api_key=self._api_key or None, max_retries=0)
        except openai.OpenAIError as exc:
            raise ProviderError("OPENAI_NOT_CONFIGURED", str(exc), provider_name) from exc
        return self._client
