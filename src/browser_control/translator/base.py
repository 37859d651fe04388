"""Base classes for natural-language inference integrations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..models import PageInfo


@dataclass
class InferenceRequest:
    """Everything sent to the inference service for one instruction."""

    system_prompt: str
    prompt: str
    instruction: str
    page: Optional[PageInfo] = None


class InferenceClient(ABC):
    """Abstract interface for text-completion providers."""

    @abstractmethod
    async def complete(self, request: InferenceRequest) -> str:
        """Return the raw model output for ``request``.

        Implementations raise on transport failures; the translator decides
        how to recover.
        """

    async def aclose(self) -> None:
        """Release network resources held by the client."""


class StaticResponseClient(InferenceClient):
    """A trivial client that always returns the same text."""

    def __init__(self, response: str) -> None:
        self._response = response

    async def complete(self, request: InferenceRequest) -> str:
        return self._response
