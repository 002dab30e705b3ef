"""Pydantic models for the session API."""

from pydantic import BaseModel


class LoginRequest(BaseModel):
    """Login payload; omitted fields fall back to the configured identity."""

    email: str | None = None
    name: str | None = None


class AnalyzeRequest(BaseModel):
    """Meal analysis payload."""

    text: str | None = None
    image_base64: str | None = None
