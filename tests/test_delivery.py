"""Tests for webhook delivery."""

import asyncio

import httpx

from calories_ai.domain.webhooks import DeliveryResult, WebhookReply
from calories_ai.services.delivery import DeliveryQueue, DeliveryService
from tests.conftest import DATA_URL, FakeWebhookTransport, json_reply, text_reply

PAYLOAD: dict[str, object] = {"userId": "u1", "entryData": {"calories": 100}}


def test_deliver_success_parses_json() -> None:
    transport = FakeWebhookTransport(replies={DATA_URL: json_reply({"saved": True})})

    result = asyncio.run(DeliveryService(transport).deliver(PAYLOAD, DATA_URL))

    assert result == DeliveryResult(
        success=True, data={"saved": True}, message="Success"
    )
    assert transport.opaque_calls == []


def test_deliver_success_keeps_text_body() -> None:
    transport = FakeWebhookTransport(replies={DATA_URL: text_reply("Workflow started")})

    result = asyncio.run(DeliveryService(transport).deliver(PAYLOAD, DATA_URL))

    assert result.success
    assert result.data == "Workflow started"


def test_deliver_error_status_is_soft_failure_without_fallback() -> None:
    transport = FakeWebhookTransport(
        replies={DATA_URL: json_reply({"error": "nope"}, 404, "Not Found")}
    )

    result = asyncio.run(DeliveryService(transport).deliver(PAYLOAD, DATA_URL))

    assert not result.success
    assert result.data == {"error": "nope"}
    assert result.message == "Request failed: Not Found"
    assert transport.opaque_calls == []


def test_deliver_falls_back_once_when_primary_raises() -> None:
    transport = FakeWebhookTransport(replies={DATA_URL: httpx.ConnectError("refused")})

    result = asyncio.run(DeliveryService(transport).deliver(PAYLOAD, DATA_URL))

    assert result.success
    assert result.data is None
    assert transport.opaque_calls == [(DATA_URL, PAYLOAD)]


def test_deliver_reports_primary_error_when_both_fail() -> None:
    transport = FakeWebhookTransport(
        replies={DATA_URL: httpx.ConnectError("primary refused")},
        opaque_errors={DATA_URL: httpx.ReadTimeout("fallback timed out")},
    )

    result = asyncio.run(DeliveryService(transport).deliver(PAYLOAD, DATA_URL))

    assert not result.success
    assert result.message == "primary refused"
    assert len(transport.opaque_calls) == 1


def test_undecodable_json_is_kept_as_text() -> None:
    transport = FakeWebhookTransport(
        replies={
            DATA_URL: WebhookReply(
                status_code=200,
                reason="OK",
                content_type="application/json",
                body="<html>oops</html>",
            )
        }
    )

    result = asyncio.run(DeliveryService(transport).deliver(PAYLOAD, DATA_URL))

    assert result.success
    assert result.data == "<html>oops</html>"
    assert transport.opaque_calls == []


def test_queue_does_not_block_caller_and_reports_result() -> None:
    gate_holder: dict[str, asyncio.Event] = {}
    results: list[DeliveryResult] = []

    class SlowTransport(FakeWebhookTransport):
        async def post_json(self, url, payload):  # type: ignore[no-untyped-def]
            await gate_holder["gate"].wait()
            return json_reply({"ok": True})

    async def scenario() -> None:
        gate_holder["gate"] = asyncio.Event()
        queue = DeliveryQueue(DeliveryService(SlowTransport()))
        queue.submit(PAYLOAD, DATA_URL, on_result=results.append)
        await asyncio.sleep(0)
        assert queue.pending == 1
        assert results == []
        gate_holder["gate"].set()
        await queue.drain()
        assert queue.pending == 0

    asyncio.run(scenario())

    assert len(results) == 1
    assert results[0].success


def test_queue_swallows_handler_errors() -> None:
    async def failing_handler(result: DeliveryResult) -> None:
        raise RuntimeError("render failed")

    async def scenario() -> DeliveryResult:
        queue = DeliveryQueue(DeliveryService(FakeWebhookTransport()))
        task = queue.submit(PAYLOAD, DATA_URL, on_result=failing_handler)
        await queue.drain()
        return task.result()

    result = asyncio.run(scenario())

    assert result.success
