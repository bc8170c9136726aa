from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

_DEFAULT_UPLOAD_MAX_BYTES = 40 * 1024 * 1024


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _getenv_opt_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return float(value)


def _getenv_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class ScribeConfig:
    HOST: str
    PORT: int
    OPENAI_API_KEY: str
    SCRIBE_ASR_PROVIDER: str
    SCRIBE_LLM_BACKEND: str
    SCRIBE_OPENAI_TRANSCRIBE_MODEL: str
    SCRIBE_OPENAI_SUMMARY_MODEL: str
    SCRIBE_LLM_TEMPERATURE: float
    SCRIBE_LLM_MAX_TOKENS: int
    SCRIBE_WHISPER_CPP_BIN: str
    SCRIBE_WHISPER_CPP_MODEL: str
    SCRIBE_WHISPER_CPP_NO_GPU: bool
    SCRIBE_LLAMA_CPP_MODEL: str
    SCRIBE_LLAMA_CPP_N_CTX: int
    SCRIBE_LLAMA_CPP_CHAT_FORMAT: str
    SCRIBE_AUDIO_MIME_TYPE: str
    SCRIBE_PROVIDER_TIMEOUT_SECONDS: Optional[float]
    SCRIBE_SESSION_IDLE_TIMEOUT_SECONDS: int
    SCRIBE_SESSION_SWEEP_INTERVAL_SECONDS: float
    SCRIBE_UPLOAD_MAX_BYTES: int
    SCRIBE_STREAM_MAX_BUFFER_BYTES: int
    SCRIBE_FLUSH_ON_END: bool
    SCRIBE_LOG_LEVEL: str
    SCRIBE_CORS_ORIGINS: tuple[str, ...]


def load_config() -> ScribeConfig:
    timeout = _getenv_opt_float("SCRIBE_PROVIDER_TIMEOUT_SECONDS")
    if timeout is None:
        timeout = 120.0
    elif timeout <= 0:
        # Zero or negative disables the gateway-level timeout.
        timeout = None

    return ScribeConfig(
        HOST=_getenv_str("HOST", "0.0.0.0"),
        PORT=_getenv_int("PORT", 10000),
        OPENAI_API_KEY=_getenv_str("OPENAI_API_KEY", ""),
        SCRIBE_ASR_PROVIDER=_getenv_str("SCRIBE_ASR_PROVIDER", "openai").strip().lower(),
        SCRIBE_LLM_BACKEND=_getenv_str("SCRIBE_LLM_BACKEND", "openai").strip().lower(),
        SCRIBE_OPENAI_TRANSCRIBE_MODEL=_getenv_str("SCRIBE_OPENAI_TRANSCRIBE_MODEL", "whisper-1"),
        SCRIBE_OPENAI_SUMMARY_MODEL=_getenv_str("SCRIBE_OPENAI_SUMMARY_MODEL", "gpt-4o-mini"),
        SCRIBE_LLM_TEMPERATURE=_getenv_float("SCRIBE_LLM_TEMPERATURE", 0.2),
        SCRIBE_LLM_MAX_TOKENS=_getenv_int("SCRIBE_LLM_MAX_TOKENS", 800),
        SCRIBE_WHISPER_CPP_BIN=_getenv_str("SCRIBE_WHISPER_CPP_BIN", ""),
        SCRIBE_WHISPER_CPP_MODEL=_getenv_str("SCRIBE_WHISPER_CPP_MODEL", ""),
        SCRIBE_WHISPER_CPP_NO_GPU=_getenv_bool("SCRIBE_WHISPER_CPP_NO_GPU", False),
        SCRIBE_LLAMA_CPP_MODEL=_getenv_str("SCRIBE_LLAMA_CPP_MODEL", ""),
        SCRIBE_LLAMA_CPP_N_CTX=_getenv_int("SCRIBE_LLAMA_CPP_N_CTX", 4096),
        SCRIBE_LLAMA_CPP_CHAT_FORMAT=_getenv_str("SCRIBE_LLAMA_CPP_CHAT_FORMAT", ""),
        SCRIBE_AUDIO_MIME_TYPE=_getenv_str("SCRIBE_AUDIO_MIME_TYPE", "audio/wav"),
        SCRIBE_PROVIDER_TIMEOUT_SECONDS=timeout,
        SCRIBE_SESSION_IDLE_TIMEOUT_SECONDS=_getenv_int("SCRIBE_SESSION_IDLE_TIMEOUT_SECONDS", 900),
        SCRIBE_SESSION_SWEEP_INTERVAL_SECONDS=_getenv_float("SCRIBE_SESSION_SWEEP_INTERVAL_SECONDS", 30.0),
        SCRIBE_UPLOAD_MAX_BYTES=_getenv_int("SCRIBE_UPLOAD_MAX_BYTES", _DEFAULT_UPLOAD_MAX_BYTES),
        SCRIBE_STREAM_MAX_BUFFER_BYTES=_getenv_int(
            "SCRIBE_STREAM_MAX_BUFFER_BYTES", _DEFAULT_UPLOAD_MAX_BYTES
        ),
        SCRIBE_FLUSH_ON_END=_getenv_bool("SCRIBE_FLUSH_ON_END", True),
        SCRIBE_LOG_LEVEL=_getenv_str("SCRIBE_LOG_LEVEL", "INFO"),
        SCRIBE_CORS_ORIGINS=tuple(_getenv_list("SCRIBE_CORS_ORIGINS", ["*"])),
    )
