"""Models for webhook requests and delivery outcomes."""

from dataclasses import dataclass


@dataclass(frozen=True)
class WebhookReply:
    """Raw reply from a readable webhook request."""

    status_code: int
    reason: str
    content_type: str | None
    body: str

    @property
    def is_success(self) -> bool:
        """Return True for any 2xx status."""
        return 200 <= self.status_code < 300  # noqa: PLR2004


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of delivering a payload downstream."""

    success: bool
    data: object | None = None
    message: str = ""
