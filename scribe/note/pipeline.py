from __future__ import annotations

import logging
import time
from typing import Optional

from scribe.internal_core.contracts import OneShotResult
from scribe.internal_core.errors import UploadError
from scribe.internal_core.gateway import ProviderGateway
from scribe.internal_core.llm import ModelParams

from .summary import summarize_transcript

logger = logging.getLogger(__name__)


async def run_one_shot(
    gateway: ProviderGateway,
    audio: Optional[bytes],
    *,
    mime_type: str = "audio/wav",
    params: Optional[ModelParams] = None,
) -> OneShotResult:
    """Transcribe one complete recording and summarize it.

    Stateless: nothing is stored between calls. Raises UploadError for empty
    input and lets ProviderError from either call propagate unchanged.
    """
    if not audio:
        raise UploadError("No audio", status_code=400)

    started = time.perf_counter()
    transcript = (await gateway.transcribe(audio, mime_type)).strip()
    transcribed = time.perf_counter()
    summary = await summarize_transcript(gateway, transcript, params=params)
    logger.info(
        "one-shot done audio_bytes=%d transcribe_ms=%d summarize_ms=%d",
        len(audio),
        (transcribed - started) * 1000,
        (time.perf_counter() - transcribed) * 1000,
    )
    return OneShotResult(transcript=transcript, summary=summary)
