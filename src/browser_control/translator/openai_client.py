"""Inference client for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import TranslatorConfig
from ..errors import TranslationFailed
from .base import InferenceClient, InferenceRequest

LOGGER = logging.getLogger(__name__)

_DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "openrouter": "https://openrouter.ai/api/v1",
}


class OpenAIChatClient(InferenceClient):
    """Call an OpenAI-compatible chat completion API for a single action."""

    def __init__(
        self,
        config: TranslatorConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not config.model:
            raise ValueError("Translator model must be specified for OpenAIChatClient")
        self._config = config
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        base_url = config.base_url or _DEFAULT_BASE_URLS.get(
            config.provider.lower(),
            _DEFAULT_BASE_URLS["openai"],
        )
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=config.timeout,
            headers=headers,
            transport=transport,
        )
        self._temperature = config.parameters.get("temperature", 0.0)

    async def complete(self, request: InferenceRequest) -> str:
        payload = {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.prompt},
            ],
            "temperature": self._temperature,
        }
        payload.update(
            {
                k: v
                for k, v in self._config.parameters.items()
                if k not in {"temperature", "system_prompt"}
            }
        )
        response = await self._client.post("/chat/completions", json=payload)
        response.raise_for_status()
        data = response.json()
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise TranslationFailed(f"Unexpected response format: {data}") from exc
        LOGGER.debug("Model response: %s", content)
        return content or ""

    async def aclose(self) -> None:
        await self._client.aclose()
