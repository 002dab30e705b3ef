"""Normalization of plan values returned by the status webhook.

The status endpoint is loosely specified: the plan may arrive as a ``plan`` or
``userPlan`` field, nested under ``data``, wrapped in a one-element list, or
as a bare string (sometimes a JSON document served as text). Each rule below
inspects one of those shapes and either extracts a candidate or passes.
Rules never raise; the first one that yields a value wins, and only a
case-insensitive ``"PRO"`` maps to the paid plan.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass

from calories_ai.domain.models import UserPlan

_PLAN_FIELDS = ("plan", "userPlan", "user_plan")
_MAX_DEPTH = 3


@dataclass(frozen=True)
class PlanExtraction:
    """A candidate plan value and the rule that produced it."""

    value: object
    rule: str


PlanRule = Callable[[object, int], PlanExtraction | None]


def _is_present(value: object) -> bool:
    return value is not None and value != ""


def _field_rule(name: str) -> PlanRule:
    def rule(raw: object, depth: int) -> PlanExtraction | None:
        if isinstance(raw, dict) and _is_present(raw.get(name)):
            return PlanExtraction(value=raw[name], rule=f"field:{name}")
        return None

    return rule


def _nested_data_rule(raw: object, depth: int) -> PlanExtraction | None:
    if isinstance(raw, dict) and isinstance(raw.get("data"), dict):
        return _extract(raw["data"], depth + 1)
    return None


def _first_item_rule(raw: object, depth: int) -> PlanExtraction | None:
    if isinstance(raw, list) and raw:
        return _extract(raw[0], depth + 1)
    return None


def _bare_string_rule(raw: object, depth: int) -> PlanExtraction | None:
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        decoded = json.loads(raw)
    except ValueError:
        decoded = None
    if isinstance(decoded, str) and decoded.strip():
        return PlanExtraction(value=decoded, rule="json-string")
    if isinstance(decoded, dict | list):
        nested = _extract(decoded, depth + 1)
        if nested is not None:
            return nested
    return PlanExtraction(value=raw, rule="bare-string")


PLAN_RULES: tuple[PlanRule, ...] = (
    *(_field_rule(name) for name in _PLAN_FIELDS),
    _nested_data_rule,
    _first_item_rule,
    _bare_string_rule,
)


def _extract(raw: object, depth: int) -> PlanExtraction | None:
    if depth > _MAX_DEPTH:
        return None
    for rule in PLAN_RULES:
        extraction = rule(raw, depth)
        if extraction is not None:
            return extraction
    return None


def extract_plan(raw: object) -> PlanExtraction | None:
    """Return the best plan candidate found in a response body, if any."""
    return _extract(raw, 0)


def normalize_plan(raw: object) -> UserPlan:
    """Map any response body to a plan; unknown shapes fall back to FREE."""
    extraction = extract_plan(raw)
    if extraction is None or not isinstance(extraction.value, str):
        return UserPlan.FREE
    if extraction.value.strip().upper() == UserPlan.PRO.value:
        return UserPlan.PRO
    return UserPlan.FREE
