"""Best-effort delivery of analysis results to a downstream webhook."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from calories_ai.domain.webhooks import DeliveryResult, WebhookReply

_logger = logging.getLogger(__name__)

DeliveryCallback = Callable[[DeliveryResult], Awaitable[None] | None]


class WebhookTransport(Protocol):
    """Interface for the two webhook transport modes."""

    async def post_json(self, url: str, payload: dict[str, object]) -> WebhookReply:
        """Send a JSON request and return its readable reply."""

    async def post_opaque(self, url: str, payload: dict[str, object]) -> None:
        """Send a request whose response cannot be observed."""


def decode_reply_body(reply: WebhookReply) -> object:
    """Decode a reply body as JSON when declared so, else return the text."""
    content_type = (reply.content_type or "").lower()
    if "application/json" not in content_type:
        return reply.body
    try:
        return json.loads(reply.body)
    except ValueError:
        _logger.warning("Webhook declared JSON but sent an undecodable body")
        return reply.body


@dataclass
class DeliveryService:
    """Two-tier delivery: a readable request, then one opaque retry."""

    transport: WebhookTransport

    async def deliver(
        self, payload: dict[str, object], endpoint: str
    ) -> DeliveryResult:
        """Deliver a payload; never raises."""
        try:
            reply = await self.transport.post_json(endpoint, payload)
        except Exception as exc:  # noqa: BLE001
            _logger.warning(
                "Readable delivery to %s failed, trying opaque fallback: %s",
                endpoint,
                exc,
            )
            return await self._deliver_opaque(payload, endpoint, exc)

        body = decode_reply_body(reply)
        if reply.is_success:
            return DeliveryResult(success=True, data=body, message="Success")
        return DeliveryResult(
            success=False,
            data=body,
            message=f"Request failed: {reply.reason or reply.status_code}",
        )

    async def _deliver_opaque(
        self, payload: dict[str, object], endpoint: str, primary_error: Exception
    ) -> DeliveryResult:
        try:
            await self.transport.post_opaque(endpoint, payload)
        except Exception as exc:  # noqa: BLE001
            _logger.warning("Opaque delivery to %s failed: %s", endpoint, exc)
            return DeliveryResult(
                success=False, message=str(primary_error) or "Network error"
            )
        return DeliveryResult(
            success=True, data=None, message="Request sent (opaque response)"
        )


@dataclass
class DeliveryQueue:
    """Runs deliveries in the background so callers never wait on them."""

    service: DeliveryService
    _pending: set[asyncio.Task[DeliveryResult]] = field(
        default_factory=set, init=False
    )

    def submit(
        self,
        payload: dict[str, object],
        endpoint: str,
        on_result: DeliveryCallback | None = None,
    ) -> asyncio.Task[DeliveryResult]:
        """Schedule a delivery and return immediately."""
        task = asyncio.create_task(self._run(payload, endpoint, on_result))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        """Return the number of deliveries still in flight."""
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every outstanding delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _run(
        self,
        payload: dict[str, object],
        endpoint: str,
        on_result: DeliveryCallback | None,
    ) -> DeliveryResult:
        result = await self.service.deliver(payload, endpoint)
        if on_result is not None:
            try:
                outcome = on_result(result)
                if outcome is not None:
                    await outcome
            except Exception:
                _logger.exception("Delivery result handler failed")
        return result
