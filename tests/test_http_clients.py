"""Tests for HTTP-based adapters."""

import asyncio
import json

import httpx
import pytest

from calories_ai.adapters.httpx_webhook_client import HttpxWebhookClient
from calories_ai.adapters.openai_nutrition_client import OpenAINutritionClient


class _FakeResponses:
    def __init__(self, output_text: str) -> None:
        self.output_text = output_text
        self.last_payload: dict[str, object] | None = None

    async def create(self, **kwargs):  # type: ignore[no-untyped-def]
        self.last_payload = kwargs
        return type("Resp", (), {"output_text": self.output_text})()


class _FakeOpenAI:
    def __init__(self, output_text: str) -> None:
        self.responses = _FakeResponses(output_text)


def test_openai_client_parses_output_and_sends_image() -> None:
    fake = _FakeOpenAI(json.dumps({"foodName": "Toast", "calories": 80}))
    client = OpenAINutritionClient(client=fake, model="gpt-5.2", reasoning_effort="low")

    result = asyncio.run(
        client.analyze(
            prompt="Analyze",
            system_prompt="You are a nutritionist",
            image_data_url="data:image/jpeg;base64,ZmFrZQ==",
            schema={"type": "object"},
        )
    )

    assert result == {"foodName": "Toast", "calories": 80}
    payload = fake.responses.last_payload
    assert payload is not None
    assert payload["instructions"] == "You are a nutritionist"
    assert payload["reasoning"] == {"effort": "low"}
    content = payload["input"][0]["content"]  # type: ignore[index]
    assert content[0]["type"] == "input_image"
    assert content[1] == {"type": "input_text", "text": "Analyze"}


def test_openai_client_rejects_empty_output() -> None:
    client = OpenAINutritionClient(client=_FakeOpenAI(""), model="gpt-5.2")

    with pytest.raises(RuntimeError, match="empty response"):
        asyncio.run(
            client.analyze(
                prompt="Analyze",
                system_prompt="",
                image_data_url=None,
                schema={},
            )
        )


def test_webhook_client_returns_readable_reply() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content.decode()) == {"userId": "u1"}
        return httpx.Response(200, json={"plan": "PRO"})

    client = HttpxWebhookClient(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )

    reply = asyncio.run(client.post_json("https://hooks.test/status", {"userId": "u1"}))

    assert reply.is_success
    assert reply.reason == "OK"
    assert reply.content_type == "application/json"
    assert json.loads(reply.body) == {"plan": "PRO"}


def test_webhook_client_error_status_is_not_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="missing")

    client = HttpxWebhookClient(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )

    reply = asyncio.run(client.post_json("https://hooks.test/data", {}))

    assert not reply.is_success
    assert reply.status_code == 404
    assert reply.body == "missing"


def test_webhook_client_opaque_sends_plain_text() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(500, text="ignored")

    client = HttpxWebhookClient(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )

    asyncio.run(client.post_opaque("https://hooks.test/data", {"userId": "u1"}))

    assert seen[0].headers["content-type"] == "text/plain"
    assert json.loads(seen[0].content.decode()) == {"userId": "u1"}


def test_webhook_client_propagates_network_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = HttpxWebhookClient(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )

    with pytest.raises(httpx.ConnectError):
        asyncio.run(client.post_json("https://hooks.test/data", {}))
