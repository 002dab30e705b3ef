"""Checkout initiation through the payment webhook."""

from dataclasses import dataclass

from calories_ai.services.delivery import WebhookTransport, decode_reply_body

_ALLOWED_SCHEMES = ("https://", "http://")


class CheckoutError(RuntimeError):
    """Raised when a checkout session could not be created."""


@dataclass
class CheckoutService:
    """Requests a hosted checkout URL for upgrading to PRO."""

    transport: WebhookTransport
    endpoint: str
    callback_url: str

    async def create_checkout(self, user_id: str, email: str) -> str:
        """Return the checkout URL the user should be sent to."""
        payload: dict[str, object] = {
            "userId": user_id,
            "email": email,
            "callbackUrl": self.callback_url,
        }
        try:
            reply = await self.transport.post_json(self.endpoint, payload)
        except Exception as exc:
            raise CheckoutError(f"Checkout request failed: {exc}") from exc
        if not reply.is_success:
            raise CheckoutError(
                f"Checkout request failed: {reply.reason or reply.status_code}"
            )
        checkout_url = _extract_url(decode_reply_body(reply))
        if checkout_url is None:
            raise CheckoutError("No URL returned from webhook")
        if not checkout_url.startswith(_ALLOWED_SCHEMES):
            raise CheckoutError(f"Invalid checkout URL: {checkout_url}")
        return checkout_url


def _extract_url(body: object) -> str | None:
    if not isinstance(body, dict):
        return None
    url = body.get("url")
    if not url and isinstance(body.get("data"), dict):
        url = body["data"].get("url")
    if isinstance(url, str) and url.strip():
        return url.strip()
    return None
