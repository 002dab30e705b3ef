"""Daily quota rules for the free plan."""

from dataclasses import dataclass, replace
from datetime import date

from calories_ai.domain.models import UserPlan, UserRecord

MAX_FREE_USES = 3


@dataclass(frozen=True)
class QuotaDecision:
    """Result of a quota check.

    ``record`` is the snapshot the caller should commit; it differs from the
    input only when a new day reset the counter.
    """

    allowed: bool
    record: UserRecord
    upgrade_required: bool = False


def rollover(record: UserRecord, today: date) -> UserRecord:
    """Reset the usage counter when the record belongs to another day."""
    if record.last_usage_date == today:
        return record
    return replace(record, daily_usage_count=0, last_usage_date=today)


def can_proceed(record: UserRecord, today: date) -> QuotaDecision:
    """Decide whether an analysis may run now."""
    if record.plan == UserPlan.PRO:
        return QuotaDecision(allowed=True, record=record)
    if record.last_usage_date != today:
        return QuotaDecision(allowed=True, record=rollover(record, today))
    if record.daily_usage_count >= MAX_FREE_USES:
        return QuotaDecision(allowed=False, record=record, upgrade_required=True)
    return QuotaDecision(allowed=True, record=record)


def record_usage(record: UserRecord) -> UserRecord:
    """Consume one analysis after a successful result."""
    return replace(record, daily_usage_count=record.daily_usage_count + 1)


def remaining_free_uses(record: UserRecord, today: date) -> int:
    """Return how many free analyses are left today."""
    if record.plan == UserPlan.PRO or record.last_usage_date != today:
        return MAX_FREE_USES
    return max(0, MAX_FREE_USES - record.daily_usage_count)
