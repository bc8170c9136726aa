from __future__ import annotations

"""
SOAP summary prompt and schema-validating parse of model output.

Design intent:
- Keep the instruction prompt fixed so sessions and uploads summarize identically.
- Accept only output that validates as the summary schema.
- Never let malformed output abort a finalize: callers get a fallback payload with the raw text.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError

from scribe.internal_core.contracts import ClinicalSummary, SummaryFallback, SummaryPayload
from scribe.internal_core.errors import MalformedModelOutput
from scribe.internal_core.gateway import ProviderGateway
from scribe.internal_core.llm import ModelParams

logger = logging.getLogger(__name__)

INVALID_JSON_ERROR = "Invalid JSON from model"

_SUMMARY_INSTRUCTIONS = (
    "You are a clinical note helper. Convert the given doctor-patient transcript into concise "
    "SOAP sections and redFlags.\n"
    "Return ONLY JSON:\n"
    '{"subjective":[],"objective":[],"assessment":[],"plan":[],"redFlags":[]}\n'
)


def build_summary_prompt(transcript: str) -> str:
    return f"{_SUMMARY_INSTRUCTIONS}\nTranscript:\n{(transcript or '').strip()}\n"


def _extract_first_json_object(text: str) -> str:
    start = text.find("{")
    if start < 0:
        return ""
    depth = 0
    in_str = False
    escape = False
    for i, ch in enumerate(text[start:], start=start):
        if in_str:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return ""


def _load_json_object(raw: str) -> dict[str, Any]:
    text = (raw or "").strip()
    if not text:
        raise MalformedModelOutput(raw, "empty output")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Models often wrap the object in prose or a fenced block.
        extracted = _extract_first_json_object(text)
        if not extracted:
            raise MalformedModelOutput(raw, "no JSON object found") from None
        try:
            data = json.loads(extracted)
        except json.JSONDecodeError as exc:
            raise MalformedModelOutput(raw, f"invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise MalformedModelOutput(raw, "top-level JSON value is not an object")
    return data


def parse_summary(raw: str) -> ClinicalSummary:
    data = _load_json_object(raw)
    try:
        return ClinicalSummary.model_validate(data)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise MalformedModelOutput(raw, f"schema mismatch on {', '.join(fields)}") from exc


def parse_summary_or_fallback(raw: str) -> SummaryPayload:
    try:
        return parse_summary(raw)
    except MalformedModelOutput as exc:
        logger.warning("summary output rejected: %s (raw_chars=%d)", exc.reason, len(raw or ""))
        return SummaryFallback(error=INVALID_JSON_ERROR, raw=raw or "")


async def summarize_transcript(
    gateway: ProviderGateway,
    transcript: str,
    *,
    params: ModelParams | None = None,
) -> SummaryPayload:
    raw = await gateway.summarize(build_summary_prompt(transcript), params)
    return parse_summary_or_fallback(raw)


def summary_to_json(summary: SummaryPayload) -> dict[str, Any]:
    return summary.model_dump(by_alias=True)
