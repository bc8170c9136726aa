import asyncio
import subprocess
import sys
from pathlib import Path
from types import SimpleNamespace

import httpx
import openai
import pytest

from scribe.internal_core.asr import (
    ASRProvider,
    MockASRProvider,
    OpenAIWhisperProvider,
    WhisperCppProvider,
    guess_audio_suffix,
)
from scribe.internal_core.config import load_config
from scribe.internal_core.errors import ProviderError
from scribe.internal_core.gateway import ProviderGateway, build_gateway
from scribe.internal_core.llm import LlamaCppProvider, MockLLMProvider, ModelParams, OpenAIResponsesProvider
from scribe.internal_core.openai_client import LazyAsyncOpenAI, provider_error_from_openai

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/audio/transcriptions")


def _fake_openai_client(*, transcription=None, response=None, error=None):
    calls: dict[str, dict] = {}

    async def create_transcription(**kwargs):
        calls["transcription"] = kwargs
        if error is not None:
            raise error
        return transcription

    async def create_response(**kwargs):
        calls["response"] = kwargs
        if error is not None:
            raise error
        return response

    client = SimpleNamespace(
        audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create_transcription)),
        responses=SimpleNamespace(create=create_response),
    )
    return LazyAsyncOpenAI(client=client), calls


def test_openai_errors_map_to_provider_codes() -> None:
    status = openai.APIStatusError(
        "rate limited", response=httpx.Response(429, request=_REQUEST), body=None
    )
    cases = [
        (openai.APITimeoutError(request=_REQUEST), "TIMEOUT"),
        (openai.APIConnectionError(request=_REQUEST), "CONNECTION_ERROR"),
        (status, "HTTP_429"),
        (openai.OpenAIError("boom"), "OPENAI_ERROR"),
        (ValueError("odd"), "PROVIDER_EXCEPTION"),
    ]
    for exc, code in cases:
        mapped = provider_error_from_openai(exc, "openai")
        assert mapped.code == code
        assert mapped.provider_name == "openai"
    assert provider_error_from_openai(status, "openai").message == "rate limited"


def test_missing_api_key_fails_per_call(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    provider = OpenAIWhisperProvider(LazyAsyncOpenAI(api_key=""))
    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(provider.transcribe(b"RIFF"))
    assert excinfo.value.code == "OPENAI_NOT_CONFIGURED"


def test_openai_whisper_sends_named_file_and_strips_text() -> None:
    client, calls = _fake_openai_client(transcription=SimpleNamespace(text="  hello there \n"))
    provider = OpenAIWhisperProvider(client, model="whisper-1")

    text = asyncio.run(provider.transcribe(b"\x1a\x45\xdf\xa3", "audio/webm;codecs=opus"))

    assert text == "hello there"
    assert calls["transcription"]["model"] == "whisper-1"
    assert calls["transcription"]["file"] == ("chunk.webm", b"\x1a\x45\xdf\xa3", "audio/webm;codecs=opus")


def test_openai_whisper_maps_client_failure() -> None:
    client, _ = _fake_openai_client(error=openai.APITimeoutError(request=_REQUEST))
    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(OpenAIWhisperProvider(client).transcribe(b"RIFF"))
    assert excinfo.value.code == "TIMEOUT"


def test_openai_responses_uses_params_and_default_model() -> None:
    client, calls = _fake_openai_client(response=SimpleNamespace(output_text=' {"plan": []} '))
    provider = OpenAIResponsesProvider(client, default_model="gpt-4o-mini")

    text = asyncio.run(provider.complete("prompt", ModelParams(temperature=0.1, max_tokens=300)))

    assert text == '{"plan": []}'
    assert calls["response"] == {
        "model": "gpt-4o-mini",
        "input": "prompt",
        "temperature": 0.1,
        "max_output_tokens": 300,
    }


def test_guess_audio_suffix() -> None:
    assert guess_audio_suffix("audio/wav") == ".wav"
    assert guess_audio_suffix("audio/mpeg") == ".mp3"
    assert guess_audio_suffix("audio/webm;codecs=opus") == ".webm"
    assert guess_audio_suffix(None) == ".wav"


def test_whisper_cpp_reports_missing_binary_and_model(tmp_path) -> None:
    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(WhisperCppProvider("", "").transcribe(b"RIFF"))
    assert excinfo.value.code == "WHISPER_BIN_MISSING"

    bin_path = tmp_path / "whisper-cli"
    bin_path.write_text("", encoding="utf-8")
    provider = WhisperCppProvider(str(bin_path), str(tmp_path / "missing.bin"))
    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(provider.transcribe(b"RIFF"))
    assert excinfo.value.code == "WHISPER_MODEL_MISSING"


def test_whisper_cpp_runs_cli_and_collapses_output(monkeypatch, tmp_path) -> None:
    bin_path = tmp_path / "bin" / "whisper-cli"
    bin_path.parent.mkdir()
    bin_path.write_text("", encoding="utf-8")
    model_path = tmp_path / "ggml-base.en.bin"
    model_path.write_text("", encoding="utf-8")
    seen = {}

    def fake_run(cmd, **kwargs):
        seen["cmd"] = cmd
        audio_path = Path(cmd[cmd.index("-f") + 1])
        seen["audio_exists"] = audio_path.exists() and audio_path.suffix == ".wav"
        return SimpleNamespace(returncode=0, stdout=" Patient reports\n  dizziness. \n", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    provider = WhisperCppProvider(str(bin_path), str(model_path), no_gpu=True)

    text = asyncio.run(provider.transcribe(b"RIFF", "audio/wav"))

    assert text == "Patient reports dizziness."
    assert seen["cmd"][:2] == [str(bin_path), "-ng"]
    assert "--no-timestamps" in seen["cmd"]
    assert seen["audio_exists"] is True


def test_whisper_cpp_nonzero_exit_is_provider_error(monkeypatch, tmp_path) -> None:
    bin_path = tmp_path / "whisper-cli"
    bin_path.write_text("", encoding="utf-8")
    model_path = tmp_path / "model.bin"
    model_path.write_text("", encoding="utf-8")

    monkeypatch.setattr(
        subprocess, "run", lambda cmd, **kwargs: SimpleNamespace(returncode=3, stdout="", stderr="bad input")
    )
    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(WhisperCppProvider(str(bin_path), str(model_path)).transcribe(b"RIFF"))
    assert excinfo.value.code == "WHISPER_EXIT_NONZERO"
    assert excinfo.value.message == "bad input"


def test_llama_cpp_drops_response_format_when_unsupported(monkeypatch, tmp_path) -> None:
    class FakeLlama:
        instances = 0

        def __init__(self, **kwargs) -> None:
            FakeLlama.instances += 1
            assert kwargs["chat_format"] == "gemma"
            self.calls = []

        def create_chat_completion(self, **kwargs):
            self.calls.append(kwargs)
            if "response_format" in kwargs:
                raise TypeError("create_chat_completion() got an unexpected keyword argument 'response_format'")
            return {"choices": [{"message": {"content": ' {"plan": []} '}}]}

    monkeypatch.setitem(sys.modules, "llama_cpp", SimpleNamespace(Llama=FakeLlama))
    model_path = tmp_path / "mock.gguf"
    model_path.write_text("x", encoding="utf-8")
    provider = LlamaCppProvider(str(model_path), chat_format="gemma")

    first = asyncio.run(provider.complete("prompt", ModelParams(max_tokens=256)))
    second = asyncio.run(provider.complete("prompt", ModelParams(json_output=False)))

    assert first == second == '{"plan": []}'
    assert FakeLlama.instances == 1


def test_llama_cpp_missing_model_and_bad_response(monkeypatch, tmp_path) -> None:
    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(LlamaCppProvider("").complete("prompt", ModelParams()))
    assert excinfo.value.code == "LLAMA_MODEL_MISSING"

    class EmptyLlama:
        def __init__(self, **kwargs) -> None:
            pass

        def create_chat_completion(self, **kwargs):
            return {"choices": []}

    monkeypatch.setitem(sys.modules, "llama_cpp", SimpleNamespace(Llama=EmptyLlama))
    model_path = tmp_path / "mock.gguf"
    model_path.write_text("x", encoding="utf-8")
    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(LlamaCppProvider(str(model_path)).complete("prompt", ModelParams()))
    assert excinfo.value.code == "LLAMA_BAD_RESPONSE"


class _SlowASR(ASRProvider):
    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str:
        await asyncio.sleep(1)
        return "late"

    def name(self) -> str:
        return "slow"


class _BrokenASR(ASRProvider):
    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str:
        raise RuntimeError("decoder crashed")

    def name(self) -> str:
        return "broken"


def test_gateway_times_out_slow_provider() -> None:
    gateway = ProviderGateway(_SlowASR(), MockLLMProvider(), timeout_seconds=0.01)
    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(gateway.transcribe(b"RIFF"))
    assert excinfo.value.code == "TIMEOUT"
    assert excinfo.value.provider_name == "slow"


def test_gateway_wraps_unexpected_exceptions() -> None:
    gateway = ProviderGateway(_BrokenASR(), MockLLMProvider())
    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(gateway.transcribe(b"RIFF"))
    assert excinfo.value.code == "PROVIDER_EXCEPTION"
    assert excinfo.value.message == "decoder crashed"


def test_gateway_passes_default_params_to_llm() -> None:
    class RecordingLLM(MockLLMProvider):
        def __init__(self) -> None:
            super().__init__()
            self.params = []

        async def complete(self, prompt: str, params: ModelParams) -> str:
            self.params.append(params)
            return await super().complete(prompt, params)

    llm = RecordingLLM()
    defaults = ModelParams(model="m", temperature=0.0, max_tokens=50)
    gateway = ProviderGateway(MockASRProvider(), llm, default_params=defaults)

    asyncio.run(gateway.summarize("p"))
    asyncio.run(gateway.summarize("p", ModelParams(model="other")))

    assert llm.params[0] == defaults
    assert llm.params[1].model == "other"


def test_build_gateway_selects_configured_providers(monkeypatch) -> None:
    monkeypatch.setenv("SCRIBE_ASR_PROVIDER", "mock")
    monkeypatch.setenv("SCRIBE_LLM_BACKEND", "mock")
    gateway = build_gateway(load_config())
    assert isinstance(gateway.asr, MockASRProvider)
    assert isinstance(gateway.llm, MockLLMProvider)

    monkeypatch.setenv("SCRIBE_LLM_BACKEND", "llama_cpp")
    assert isinstance(build_gateway(load_config()).llm, LlamaCppProvider)

    monkeypatch.setenv("SCRIBE_ASR_PROVIDER", "vosk")
    with pytest.raises(ValueError):
        build_gateway(load_config())
