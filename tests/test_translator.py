import asyncio
import json

import httpx
import pytest

from browser_control.config import TranslatorConfig
from browser_control.models import ActionKind, ActionOrigin, PageInfo
from browser_control.translator.base import InferenceClient, InferenceRequest, StaticResponseClient
from browser_control.translator.fallback import fallback_action
from browser_control.translator.mock import ScriptedInferenceClient
from browser_control.translator.openai_client import OpenAIChatClient
from browser_control.translator.service import InstructionTranslator


class SlowClient(InferenceClient):
    async def complete(self, request: InferenceRequest) -> str:
        await asyncio.sleep(5)
        return '{"kind": "scroll"}'


class ExplodingClient(InferenceClient):
    async def complete(self, request: InferenceRequest) -> str:
        raise RuntimeError("boom")


def _page() -> PageInfo:
    return PageInfo(url="https://example.com", title="Example", viewport_width=1280, viewport_height=720)


@pytest.mark.asyncio
async def test_translate_uses_inference_output():
    client = ScriptedInferenceClient(['```json\n{"kind": "click", "locator": "#buy"}\n```'])
    translator = InstructionTranslator(client)

    action = await translator.translate("buy the thing", _page())

    assert action.kind == ActionKind.CLICK
    assert action.locator == "#buy"
    assert action.origin == ActionOrigin.TRANSLATED
    assert action.instruction == "buy the thing"
    assert len(client.requests) == 1
    request = client.requests[0]
    assert "https://example.com" in request.prompt
    assert '"buy the thing"' in request.prompt


@pytest.mark.asyncio
async def test_translate_falls_back_on_malformed_output():
    translator = InstructionTranslator(StaticResponseClient("I cannot help with that"))

    action = await translator.translate("scroll down")

    assert action == fallback_action("scroll down")


@pytest.mark.asyncio
async def test_translate_falls_back_on_schema_violation():
    translator = InstructionTranslator(StaticResponseClient('{"kind": "navigate"}'))

    action = await translator.translate("go to example.com")

    assert action.kind == ActionKind.NAVIGATE
    assert action.url == "https://example.com"


@pytest.mark.asyncio
async def test_translate_falls_back_on_timeout():
    translator = InstructionTranslator(SlowClient(), timeout=0.05)

    action = await translator.translate("take a screenshot")

    assert action.kind == ActionKind.SCREENSHOT


@pytest.mark.asyncio
async def test_translate_falls_back_on_client_error():
    translator = InstructionTranslator(ExplodingClient())

    action = await translator.translate("wait 2 seconds")

    assert action.kind == ActionKind.WAIT
    assert action.seconds == 2.0


@pytest.mark.asyncio
async def test_translate_without_client_uses_heuristics():
    translator = InstructionTranslator()

    assert not translator.has_inference
    action = await translator.translate("visit github")
    assert action.url == "https://github.com"


@pytest.mark.asyncio
async def test_openai_client_posts_chat_completion():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"choices": [{"message": {"content": '{"kind": "scroll", "amount": 200}'}}]},
        )

    config = TranslatorConfig(provider="openrouter", model="test/model", api_key="secret")
    client = OpenAIChatClient(config, transport=httpx.MockTransport(handler))
    translator = InstructionTranslator(client)

    action = await translator.translate("scroll a bit")
    await translator.aclose()

    assert action.kind == ActionKind.SCROLL
    assert action.amount == 200
    assert captured["url"] == "https://openrouter.ai/api/v1/chat/completions"
    assert captured["auth"] == "Bearer secret"
    body = captured["body"]
    assert body["model"] == "test/model"
    assert body["messages"][0]["role"] == "system"


@pytest.mark.asyncio
async def test_http_error_falls_back():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "overloaded"})

    client = OpenAIChatClient(
        TranslatorConfig(provider="openai", model="gpt", api_key="k"),
        transport=httpx.MockTransport(handler),
    )
    translator = InstructionTranslator(client)

    action = await translator.translate("search for otters")
    await translator.aclose()

    assert action == fallback_action("search for otters")
