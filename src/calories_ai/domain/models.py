"""Domain models for the calorie tracker client."""

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class UserPlan(StrEnum):
    """Subscription plan of a user."""

    FREE = "FREE"
    PRO = "PRO"


@dataclass(frozen=True)
class UserRecord:
    """Locally cached user profile with quota state.

    ``daily_usage_count`` is only meaningful for ``last_usage_date``.
    """

    id: str
    email: str
    name: str
    plan: UserPlan
    daily_usage_count: int
    last_usage_date: date | None


class NutritionalData(BaseModel):
    """Nutrition estimate returned by the inference service."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    food_name: str = Field(alias="foodName")
    calories: float = Field(ge=0.0)
    protein: float = Field(ge=0.0)
    carbs: float = Field(ge=0.0)
    fat: float = Field(ge=0.0)
    notes: str = ""

    def macro_breakdown(self) -> list[tuple[str, float]]:
        """Return macro grams in display order."""
        return [("Protein", self.protein), ("Carbs", self.carbs), ("Fat", self.fat)]


@dataclass(frozen=True)
class HistoryEntry:
    """A single analysed meal, immutable once created."""

    id: str
    timestamp: datetime
    text_input: str | None
    image_url: str | None
    data: NutritionalData
