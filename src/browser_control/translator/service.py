"""Instruction translator: free text plus page context to one action."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from ..errors import TranslationFailed
from ..models import Action, PageInfo
from .base import InferenceClient, InferenceRequest
from .fallback import DEFAULT_SEARCH_URL, fallback_action
from .json_parser import parse_action
from .prompt_builder import DEFAULT_SYSTEM_PROMPT, PromptBuilder

LOGGER = logging.getLogger(__name__)


class InstructionTranslator:
    """Translate instructions through an inference client, falling back to heuristics.

    The client is called once per instruction and bounded by ``timeout``.
    Whatever goes wrong on that path, the heuristic parser answers instead, so
    :meth:`translate` always returns a valid action.
    """

    def __init__(
        self,
        client: Optional[InferenceClient] = None,
        *,
        timeout: float = 15.0,
        search_url: str = DEFAULT_SEARCH_URL,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        prompt_builder: Optional[PromptBuilder] = None,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._search_url = search_url
        self._system_prompt = system_prompt
        self._prompt_builder = prompt_builder or PromptBuilder()

    @property
    def has_inference(self) -> bool:
        return self._client is not None

    async def translate(self, instruction: str, page: Optional[PageInfo] = None) -> Action:
        if self._client is None or not instruction.strip():
            return self.fallback(instruction)
        try:
            return await self._infer(instruction, page)
        except asyncio.TimeoutError:
            LOGGER.warning("Inference timed out after %ss; using heuristic parser", self._timeout)
        except httpx.HTTPError as exc:
            LOGGER.warning("Inference service unreachable (%s); using heuristic parser", exc)
        except TranslationFailed as exc:
            LOGGER.warning("%s; using heuristic parser", exc)
        except Exception:  # noqa: BLE001 - any client failure resolves to the fallback
            LOGGER.exception("Inference client failed; using heuristic parser")
        return self.fallback(instruction)

    def fallback(self, instruction: str) -> Action:
        return fallback_action(instruction, search_url=self._search_url)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def _infer(self, instruction: str, page: Optional[PageInfo]) -> Action:
        assert self._client is not None
        request = InferenceRequest(
            system_prompt=self._system_prompt,
            prompt=self._prompt_builder.build(instruction, page),
            instruction=instruction,
            page=page,
        )
        raw = await asyncio.wait_for(self._client.complete(request), timeout=self._timeout)
        action = parse_action(raw, instruction=instruction)
        LOGGER.info("Translated %r into %s", instruction, action.describe())
        return action
