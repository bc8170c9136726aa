from __future__ import annotations

import json
from typing import Iterable, Optional

from .base import LLMProvider, ModelParams

_EMPTY_SUMMARY = {"subjective": [], "objective": [], "assessment": [], "plan": [], "redFlags": []}


class MockLLMProvider(LLMProvider):
    def __init__(self, responses: Optional[Iterable[str]] = None) -> None:
        self._responses = list(responses or [])
        self.prompts: list[str] = []

    async def complete(self, prompt: str, params: ModelParams) -> str:
        self.prompts.append(prompt)
        if self._responses:
            return self._responses.pop(0)
        return json.dumps(_EMPTY_SUMMARY)

    def name(self) -> str:
        return "mock"
