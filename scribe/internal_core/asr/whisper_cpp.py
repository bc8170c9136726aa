from __future__ import annotations

import asyncio
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, Tuple

from ..errors import ProviderError
from .base import ASRProvider, guess_audio_suffix


def whisper_cpp_available(bin_path: str, model_path: str) -> Tuple[bool, str]:
    if not bin_path:
        return False, "missing SCRIBE_WHISPER_CPP_BIN"
    if not model_path:
        return False, "missing SCRIBE_WHISPER_CPP_MODEL"
    if not Path(bin_path).exists():
        return False, f"whisper-cli not found: {bin_path}"
    if not Path(model_path).exists():
        return False, f"model not found: {model_path}"
    return True, ""


def _with_dyld_paths(bin_path: str, env: Optional[dict[str, str]] = None) -> dict[str, str]:
    env_out = dict(os.environ) if env is None else dict(env)
    if not bin_path:
        return env_out
    try:
        build_dir = Path(bin_path).resolve().parents[1]
    except Exception:
        return env_out

    candidates = [
        build_dir / "src",
        build_dir / "ggml" / "src",
        build_dir / "ggml" / "src" / "ggml-blas",
        build_dir / "ggml" / "src" / "ggml-metal",
    ]
    new_paths = [str(p) for p in candidates if p.exists()]
    if not new_paths:
        return env_out

    existing = env_out.get("DYLD_LIBRARY_PATH", "")
    joined = os.pathsep.join(new_paths)
    env_out["DYLD_LIBRARY_PATH"] = (
        joined if not existing else f"{joined}{os.pathsep}{existing}"
    )
    return env_out


class WhisperCppProvider(ASRProvider):
    def __init__(
        self,
        bin_path: str,
        model_path: str,
        *,
        no_gpu: bool = False,
        language: str = "en",
        timeout_sec: int = 120,
    ):
        self._bin_path = bin_path
        self._model_path = model_path
        self._no_gpu = bool(no_gpu)
        self._language = language
        self._timeout_sec = timeout_sec

    def name(self) -> str:
        return "whisper_cpp"

    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str:
        ok, reason = whisper_cpp_available(self._bin_path, self._model_path)
        if not ok:
            bin_ok = bool(self._bin_path) and Path(self._bin_path).exists()
            code = "WHISPER_MODEL_MISSING" if bin_ok else "WHISPER_BIN_MISSING"
            raise ProviderError(code, reason, self.name())
        return await asyncio.to_thread(self._transcribe_blocking, audio, mime_type)

    def _transcribe_blocking(self, audio: bytes, mime_type: str) -> str:
        with tempfile.TemporaryDirectory(prefix="scribe_whisper_") as tmp_dir:
            audio_path = Path(tmp_dir) / f"unit{guess_audio_suffix(mime_type)}"
            audio_path.write_bytes(audio)

            # Capture stdout (no output files) and keep logs clean.
            cmd = [
                self._bin_path,
                "-m",
                self._model_path,
                "-f",
                str(audio_path),
                "-l",
                self._language,
                "--no-timestamps",
                "--no-prints",
            ]
            if self._no_gpu:
                cmd.insert(1, "-ng")
            try:
                res = subprocess.run(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    timeout=self._timeout_sec,
                    env=_with_dyld_paths(self._bin_path),
                )
            except subprocess.TimeoutExpired as exc:
                raise ProviderError("WHISPER_TIMEOUT", "whisper.cpp timed out", self.name()) from exc
            except OSError as exc:
                raise ProviderError("WHISPER_EXEC_FAILED", str(exc), self.name()) from exc

        if res.returncode != 0:
            msg = (res.stderr or "").strip() or f"exit_code={res.returncode}"
            if len(msg) > 200:
                msg = msg[:200] + "..."
            raise ProviderError("WHISPER_EXIT_NONZERO", msg, self.name())

        return " ".join((res.stdout or "").split()).strip()
