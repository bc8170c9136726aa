from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Optional, TypeVar

from .asr import ASRProvider, MockASRProvider, OpenAIWhisperProvider, WhisperCppProvider
from .config import ScribeConfig
from .errors import ProviderError
from .llm import LLMProvider, LlamaCppProvider, MockLLMProvider, ModelParams, OpenAIResponsesProvider
from .openai_client import LazyAsyncOpenAI

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderGateway:
    """Single boundary over the speech-to-text and language-model backends.

    Both calls are single-shot: failures surface as ProviderError and the
    caller decides whether to re-initiate. Nothing here retries.
    """

    def __init__(
        self,
        asr: ASRProvider,
        llm: LLMProvider,
        *,
        timeout_seconds: Optional[float] = None,
        default_params: Optional[ModelParams] = None,
    ):
        self.asr = asr
        self.llm = llm
        self._timeout_seconds = timeout_seconds
        self.default_params = default_params or ModelParams()

    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str:
        return await self._call(self.asr.name(), "transcribe", self.asr.transcribe(audio, mime_type))

    async def summarize(self, prompt: str, params: Optional[ModelParams] = None) -> str:
        return await self._call(self.llm.name(), "summarize", self.llm.complete(prompt, params or self.default_params))

    async def _call(self, provider_name: str, op: str, awaitable: Awaitable[T]) -> T:
        started = time.perf_counter()
        try:
            if self._timeout_seconds:
                result = await asyncio.wait_for(awaitable, timeout=self._timeout_seconds)
            else:
                result = await awaitable
        except ProviderError as exc:
            logger.warning("%s failed provider=%s code=%s: %s", op, exc.provider_name, exc.code, exc.message)
            raise
        except asyncio.TimeoutError as exc:
            logger.warning("%s timed out provider=%s after %.1fs", op, provider_name, self._timeout_seconds)
            raise ProviderError(
                "TIMEOUT", f"{op} did not finish within {self._timeout_seconds}s", provider_name
            ) from exc
        except Exception as exc:
            logger.exception("%s raised unexpectedly provider=%s", op, provider_name)
            raise ProviderError("PROVIDER_EXCEPTION", str(exc) or exc.__class__.__name__, provider_name) from exc
        logger.debug("%s ok provider=%s latency_ms=%d", op, provider_name, (time.perf_counter() - started) * 1000)
        return result


def _build_asr(config: ScribeConfig, openai_client: LazyAsyncOpenAI) -> ASRProvider:
    provider = config.SCRIBE_ASR_PROVIDER
    if provider == "openai":
        return OpenAIWhisperProvider(openai_client, model=config.SCRIBE_OPENAI_TRANSCRIBE_MODEL)
    if provider == "whisper_cpp":
        return WhisperCppProvider(
            config.SCRIBE_WHISPER_CPP_BIN,
            config.SCRIBE_WHISPER_CPP_MODEL,
            no_gpu=config.SCRIBE_WHISPER_CPP_NO_GPU,
        )
    if provider == "mock":
        return MockASRProvider()
    raise ValueError(f"Unsupported SCRIBE_ASR_PROVIDER: {provider!r}")


def _build_llm(config: ScribeConfig, openai_client: LazyAsyncOpenAI) -> LLMProvider:
    backend = config.SCRIBE_LLM_BACKEND
    if backend == "openai":
        return OpenAIResponsesProvider(openai_client, default_model=config.SCRIBE_OPENAI_SUMMARY_MODEL)
    if backend == "llama_cpp":
        return LlamaCppProvider(
            config.SCRIBE_LLAMA_CPP_MODEL,
            n_ctx=config.SCRIBE_LLAMA_CPP_N_CTX,
            chat_format=config.SCRIBE_LLAMA_CPP_CHAT_FORMAT,
        )
    if backend == "mock":
        return MockLLMProvider()
    raise ValueError(f"Unsupported SCRIBE_LLM_BACKEND: {backend!r}")


def build_gateway(config: ScribeConfig) -> ProviderGateway:
    openai_client = LazyAsyncOpenAI(api_key=config.OPENAI_API_KEY)
    params = ModelParams(
        model=config.SCRIBE_OPENAI_SUMMARY_MODEL if config.SCRIBE_LLM_BACKEND == "openai" else "",
        temperature=config.SCRIBE_LLM_TEMPERATURE,
        max_tokens=config.SCRIBE_LLM_MAX_TOKENS,
    )
    return ProviderGateway(
        _build_asr(config, openai_client),
        _build_llm(config, openai_client),
        timeout_seconds=config.SCRIBE_PROVIDER_TIMEOUT_SECONDS,
        default_params=params,
    )
