"""Reconciliation of the cached plan against the remote status webhook."""

import json
import logging
from dataclasses import dataclass, replace

from calories_ai.domain.models import UserPlan
from calories_ai.domain.notifications import NotificationKind
from calories_ai.domain.webhooks import WebhookReply
from calories_ai.services.context import SessionContext
from calories_ai.services.delivery import WebhookTransport
from calories_ai.services.plan_rules import normalize_plan

STATUS_ACTION = "get_user_status"
PRO_ACTIVE_MESSAGE = "Your PRO plan is active!"

_logger = logging.getLogger(__name__)


class StatusUnavailableError(RuntimeError):
    """Raised when the status webhook reply cannot be trusted."""


def read_status_body(reply: WebhookReply) -> object:
    """Return the reply body, refusing error statuses and broken JSON."""
    if not reply.is_success:
        raise StatusUnavailableError(
            f"Status request failed: {reply.reason or reply.status_code}"
        )
    if "application/json" not in (reply.content_type or "").lower():
        return reply.body
    try:
        return json.loads(reply.body)
    except ValueError as exc:
        raise StatusUnavailableError("Status reply is not valid JSON") from exc


@dataclass
class PlanReconciler:
    """Refreshes the locally cached plan from the authoritative source."""

    transport: WebhookTransport
    endpoint: str

    async def fetch_plan(self, user_id: str, email: str) -> UserPlan:
        """Ask the status webhook for the user's plan."""
        payload: dict[str, object] = {
            "userId": user_id,
            "email": email,
            "action": STATUS_ACTION,
        }
        reply = await self.transport.post_json(self.endpoint, payload)
        return normalize_plan(read_status_body(reply))

    async def reconcile(self, context: SessionContext) -> UserPlan | None:
        """Sync the cached plan; failures are logged and leave the cache alone."""
        user = context.user
        if user is None:
            return None
        generation = context.generation
        context.syncing += 1
        try:
            plan = await self.fetch_plan(user.id, user.email)
        except Exception as exc:  # noqa: BLE001
            _logger.warning("Failed to sync plan status for %s: %s", user.id, exc)
            return None
        finally:
            context.syncing -= 1

        _logger.info("Plan status for %s is %s", user.id, plan)
        if not context.is_current(generation) or context.user is None:
            return plan
        previous = context.user.plan
        if previous == plan:
            return plan
        context.commit_user(lambda record: replace(record, plan=plan))
        if previous == UserPlan.FREE and plan == UserPlan.PRO:
            context.notifications.notify(NotificationKind.SUCCESS, PRO_ACTIVE_MESSAGE)
        return plan
