"""HTTPX-backed webhook transport."""

import json
from dataclasses import dataclass

import httpx

from calories_ai.domain.webhooks import WebhookReply
from calories_ai.services.delivery import WebhookTransport


@dataclass
class HttpxWebhookClient(WebhookTransport):
    """Webhook client implemented with httpx."""

    http_client: httpx.AsyncClient
    timeout: float = 10

    @classmethod
    def create(cls, timeout: float = 10) -> "HttpxWebhookClient":
        """Create a webhook client with a managed httpx session."""
        return cls(http_client=httpx.AsyncClient(), timeout=timeout)

    async def post_json(self, url: str, payload: dict[str, object]) -> WebhookReply:
        """POST a JSON payload and return the readable reply."""
        response = await self.http_client.post(url, json=payload, timeout=self.timeout)
        return WebhookReply(
            status_code=response.status_code,
            reason=response.reason_phrase,
            content_type=response.headers.get("content-type"),
            body=response.text,
        )

    async def post_opaque(self, url: str, payload: dict[str, object]) -> None:
        """POST the payload as plain text and discard whatever comes back."""
        async with self.http_client.stream(
            "POST",
            url,
            content=json.dumps(payload),
            headers={"Content-Type": "text/plain"},
            timeout=self.timeout,
        ):
            pass

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
