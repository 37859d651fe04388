"""Mock inference clients for testing and offline use."""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterable

from .base import InferenceClient, InferenceRequest


class ScriptedInferenceClient(InferenceClient):
    """Return responses from a predefined sequence."""

    def __init__(self, responses: Iterable[str]) -> None:
        self._responses: Deque[str] = deque(responses)
        self.requests: list[InferenceRequest] = []

    async def complete(self, request: InferenceRequest) -> str:
        self.requests.append(request)
        if not self._responses:
            raise RuntimeError("ScriptedInferenceClient ran out of responses")
        return self._responses.popleft()
