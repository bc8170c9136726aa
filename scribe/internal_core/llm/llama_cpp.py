from __future__ import annotations

"""
Local GGUF summarizer via llama-cpp-python.

Design intent:
- Load the model lazily on first use and reuse it across sessions.
- Ask for JSON output when the installed llama_cpp supports response_format.
- Run blocking inference off the event loop.
"""

import asyncio
import os
import threading
from typing import Any

from ..errors import ProviderError
from .base import LLMProvider, ModelParams


class LlamaCppProvider(LLMProvider):
    def __init__(self, model_path: str, *, n_ctx: int = 4096, chat_format: str = ""):
        self._model_path = model_path
        self._n_ctx = int(n_ctx)
        self._chat_format = chat_format
        self._llm: Any = None
        self._load_lock = threading.Lock()
        # Inference on one Llama instance is not re-entrant.
        self._infer_lock = threading.Lock()

    def name(self) -> str:
        return "llama_cpp"

    async def complete(self, prompt: str, params: ModelParams) -> str:
        return await asyncio.to_thread(self._complete_blocking, prompt, params)

    def _load(self) -> Any:
        with self._load_lock:
            if self._llm is not None:
                return self._llm
            if not self._model_path:
                raise ProviderError(
                    "LLAMA_MODEL_MISSING",
                    "llama.cpp model path is missing. Set SCRIBE_LLAMA_CPP_MODEL to a GGUF file.",
                    self.name(),
                )
            if not os.path.exists(self._model_path):
                raise ProviderError(
                    "LLAMA_MODEL_MISSING", f"llama.cpp model file not found: {self._model_path}", self.name()
                )
            try:
                from llama_cpp import Llama  # type: ignore
            except Exception as exc:
                raise ProviderError("LLAMA_IMPORT_FAILED", f"llama_cpp import failed: {exc}", self.name()) from exc

            kwargs: dict[str, Any] = {"model_path": self._model_path, "n_ctx": self._n_ctx, "verbose": False}
            if self._chat_format:
                kwargs["chat_format"] = self._chat_format
            try:
                self._llm = Llama(**kwargs)
            except Exception as exc:
                raise ProviderError("LLAMA_LOAD_FAILED", f"llama.cpp model load failed: {exc}", self.name()) from exc
            return self._llm

    def _complete_blocking(self, prompt: str, params: ModelParams) -> str:
        llm = self._load()
        completion_kwargs: dict[str, Any] = {
            "messages": [{"role": "user", "content": prompt}],
            "temperature": float(params.temperature),
            "max_tokens": int(params.max_tokens),
        }
        if params.json_output:
            completion_kwargs["response_format"] = {"type": "json_object"}

        with self._infer_lock:
            try:
                try:
                    resp = llm.create_chat_completion(**completion_kwargs)
                except TypeError as exc:
                    if "response_format" not in str(exc) or "response_format" not in completion_kwargs:
                        raise
                    completion_kwargs.pop("response_format", None)
                    resp = llm.create_chat_completion(**completion_kwargs)
            except Exception as exc:
                raise ProviderError("LLAMA_INFERENCE_FAILED", f"llama.cpp inference failed: {exc}", self.name()) from exc

        try:
            return str(resp["choices"][0]["message"]["content"] or "").strip()
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError("LLAMA_BAD_RESPONSE", f"Unexpected llama.cpp response shape: {exc}", self.name()) from exc
