"""Meal analysis through a remote inference model."""

import base64
from dataclasses import dataclass
from typing import Protocol

from pydantic import ValidationError

from calories_ai.domain.models import NutritionalData

NUTRITION_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "foodName": {"type": "string"},
        "calories": {"type": "number", "minimum": 0},
        "protein": {"type": "number", "minimum": 0},
        "carbs": {"type": "number", "minimum": 0},
        "fat": {"type": "number", "minimum": 0},
        "notes": {"type": "string"},
    },
    "required": ["foodName", "calories", "protein", "carbs", "fat", "notes"],
    "additionalProperties": False,
}

SYSTEM_PROMPT = (
    "You are an expert nutritionist. Estimate calories and macros from food "
    "descriptions or images. Be conservative but realistic in your estimates."
)


class AnalysisError(RuntimeError):
    """Raised when a meal could not be analysed, whatever the cause."""


class AnalysisClient(Protocol):
    """Interface for the inference model."""

    async def analyze(
        self,
        *,
        prompt: str,
        system_prompt: str,
        image_data_url: str | None,
        schema: dict[str, object],
    ) -> dict[str, object]:
        """Return structured nutrition data for the prompt and image."""


@dataclass
class AnalysisService:
    """Builds analysis prompts and validates the model output."""

    client: AnalysisClient

    async def analyze(self, text: str | None, image: bytes | None) -> NutritionalData:
        """Estimate nutrition for a meal description and/or photo."""
        description = (text or "").strip()
        if description:
            prompt = (
                f'Analyze this meal described as: "{description}". '
                "Provide nutritional estimates."
            )
        else:
            prompt = "Analyze the food in this image. Provide nutritional estimates."
        try:
            raw = await self.client.analyze(
                prompt=prompt,
                system_prompt=SYSTEM_PROMPT,
                image_data_url=to_data_url(image) if image else None,
                schema=NUTRITION_SCHEMA,
            )
            return NutritionalData.model_validate(raw)
        except ValidationError as exc:
            raise AnalysisError("Model returned an invalid nutrition estimate") from exc
        except Exception as exc:
            raise AnalysisError(f"Meal analysis failed: {exc}") from exc


def to_data_url(image_bytes: bytes) -> str:
    """Convert bytes to a base64 data URL for image input."""
    mime_type = _detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def _detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"
