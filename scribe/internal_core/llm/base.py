from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ModelParams:
    model: str = ""
    temperature: float = 0.2
    max_tokens: int = 800
    json_output: bool = True


class LLMProvider(ABC):
    @abstractmethod
    async def complete(self, prompt: str, params: ModelParams) -> str: ...

    @abstractmethod
    def name(self) -> str: ...
