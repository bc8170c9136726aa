from __future__ import annotations

from .base import LLMProvider, ModelParams
from .llama_cpp import LlamaCppProvider
from .mock import MockLLMProvider
from .openai_responses import OpenAIResponsesProvider

__all__ = [
    "LLMProvider",
    "LlamaCppProvider",
    "MockLLMProvider",
    "ModelParams",
    "OpenAIResponsesProvider",
]
