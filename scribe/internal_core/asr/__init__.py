from __future__ import annotations

from .base import ASRProvider, guess_audio_suffix
from .mock import MockASRProvider
from .openai_whisper import OpenAIWhisperProvider
from .whisper_cpp import WhisperCppProvider, whisper_cpp_available

__all__ = [
    "ASRProvider",
    "MockASRProvider",
    "OpenAIWhisperProvider",
    "WhisperCppProvider",
    "guess_audio_suffix",
    "whisper_cpp_available",
]
