"""Session lifecycle: bootstrap, login/logout, analysis and upgrade flows."""

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Literal
from uuid import uuid4

from calories_ai.domain.models import (
    HistoryEntry,
    NutritionalData,
    UserPlan,
    UserRecord,
)
from calories_ai.domain.notifications import NotificationKind
from calories_ai.domain.webhooks import DeliveryResult
from calories_ai.services.analysis import AnalysisService, to_data_url
from calories_ai.services.checkout import CheckoutService
from calories_ai.services.context import SessionContext
from calories_ai.services.delivery import DeliveryQueue
from calories_ai.services.plan_status import PlanReconciler
from calories_ai.services.quota import can_proceed, record_usage, rollover

PAYMENT_SUCCESS = "success"

_logger = logging.getLogger(__name__)

AnalysisStatus = Literal[
    "completed", "quota_exceeded", "invalid_input", "failed", "unauthenticated"
]


@dataclass(frozen=True)
class BootstrapResult:
    """Outcome of restoring a session on startup."""

    authenticated: bool
    scrub_location: bool = False


@dataclass(frozen=True)
class AnalysisOutcome:
    """Outcome of a single analysis request."""

    status: AnalysisStatus
    entry: HistoryEntry | None = None
    upgrade_required: bool = False
    text: str | None = None
    image: bytes | None = None


@dataclass
class SessionService:
    """Coordinates the session context with the remote collaborators."""

    context: SessionContext
    reconciler: PlanReconciler
    analysis_service: AnalysisService
    delivery_queue: DeliveryQueue
    checkout_service: CheckoutService
    data_webhook_url: str
    today: Callable[[], date]
    sync_source: str = "CaloriesAI_Web_Client"
    default_email: str = "alex.doe@example.com"
    default_name: str = "Alex Doe"
    _tasks: set[asyncio.Task[UserPlan | None]] = field(
        default_factory=set, init=False
    )

    async def bootstrap(self, payment_status: str | None = None) -> BootstrapResult:
        """Restore persisted state and start a background plan sync."""
        loaded = self.context.store.load()
        self.context.restore(loaded)
        if self.context.user is not None:
            self.context.commit_user(lambda record: rollover(record, self.today()))
        self.acknowledge_payment_return(payment_status)
        if self.context.user is not None:
            self.schedule_reconcile()
        return BootstrapResult(
            authenticated=self.context.authenticated,
            scrub_location=payment_status is not None,
        )

    def acknowledge_payment_return(self, payment_status: str | None) -> bool:
        """Tell the user a returning checkout is being verified."""
        if payment_status != PAYMENT_SUCCESS or self.context.user is None:
            return False
        self.context.notifications.notify(
            NotificationKind.INFO, "Payment successful! Verifying plan..."
        )
        return True

    async def login(
        self, email: str | None = None, name: str | None = None
    ) -> UserRecord:
        """Start a session, reusing this device's stable identity.

        Logging in again while the same identity is signed in keeps the current
        record, so today's usage and the cached plan survive.
        """
        stable_id = self.context.store.get_or_create_stable_id()
        current = self.context.user
        if (
            self.context.authenticated
            and current is not None
            and current.id == stable_id
        ):
            self.schedule_reconcile()
            return current
        record = UserRecord(
            id=stable_id,
            email=email or self.default_email,
            name=name or self.default_name,
            plan=UserPlan.FREE,
            daily_usage_count=0,
            last_usage_date=self.today(),
        )
        self.context.start(record)
        self.schedule_reconcile()
        return record

    def logout(self) -> None:
        """End the session; outstanding async results are ignored."""
        self.context.end()

    def schedule_reconcile(self) -> asyncio.Task[UserPlan | None]:
        """Run a plan sync in the background."""
        task = asyncio.create_task(self.reconciler.reconcile(self.context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def sync_account_status(self) -> UserPlan | None:
        """Run a user-requested plan sync; failures stay silent."""
        return await self.reconciler.reconcile(self.context)

    async def analyze_meal(
        self, text: str | None = None, image: bytes | None = None
    ) -> AnalysisOutcome:
        """Gate, analyse, record and forward a meal."""
        if self.context.user is None:
            return AnalysisOutcome(status="unauthenticated", text=text, image=image)
        decision = can_proceed(self.context.user, self.today())
        self.context.commit_user(lambda _record: decision.record)
        if not decision.allowed:
            return AnalysisOutcome(
                status="quota_exceeded", upgrade_required=True, text=text, image=image
            )
        if not (text and text.strip()) and not image:
            return AnalysisOutcome(status="invalid_input", text=text, image=image)

        generation = self.context.generation
        self.context.analyzing = True
        try:
            data = await self.analysis_service.analyze(text, image)
        except Exception:
            _logger.exception("Meal analysis failed")
            if self.context.is_current(generation):
                self.context.notifications.notify(
                    NotificationKind.ERROR, "Failed to analyze meal. Please try again."
                )
            return AnalysisOutcome(status="failed", text=text, image=image)
        finally:
            if self.context.is_current(generation):
                self.context.analyzing = False

        if not self.context.is_current(generation):
            return AnalysisOutcome(status="failed", text=text, image=image)

        entry = HistoryEntry(
            id=str(uuid4()),
            timestamp=datetime.now(tz=UTC),
            text_input=text,
            image_url=to_data_url(image) if image else None,
            data=data,
        )
        self.context.commit_history(lambda history: [entry, *history])
        user = self.context.commit_user(record_usage)
        if user is not None:
            self.delivery_queue.submit(
                self._sync_payload(user, data),
                self.data_webhook_url,
                on_result=self._delivery_handler(generation),
            )
        return AnalysisOutcome(status="completed", entry=entry)

    async def start_upgrade(self) -> str | None:
        """Request a checkout URL; failures become an error notification."""
        user = self.context.user
        if user is None:
            return None
        self.context.upgrading = True
        try:
            checkout_url = await self.checkout_service.create_checkout(
                user.id, user.email
            )
        except Exception as exc:
            _logger.warning("Upgrade failed: %s", exc)
            self.context.notifications.notify(
                NotificationKind.ERROR, "Could not start checkout.", detail=str(exc)
            )
            self.context.upgrading = False
            return None
        _logger.info("Redirecting %s to checkout", user.id)
        return checkout_url

    async def drain(self) -> None:
        """Wait for background syncs and deliveries to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.delivery_queue.drain()

    def _sync_payload(
        self, user: UserRecord, data: NutritionalData
    ) -> dict[str, object]:
        return {
            "userId": user.id,
            "userEmail": user.email,
            "userPlan": user.plan.value,
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "entryData": data.model_dump(mode="json", by_alias=True),
            "source": self.sync_source,
        }

    def _delivery_handler(self, generation: int) -> Callable[[DeliveryResult], None]:
        def handle(result: DeliveryResult) -> None:
            if not self.context.is_current(generation):
                return
            if result.success:
                detail = None
                if isinstance(result.data, dict) and "message" not in result.data:
                    detail = json.dumps(result.data, indent=2)
                self.context.notifications.notify(
                    NotificationKind.SUCCESS,
                    result.message or "Analysis saved to cloud.",
                    detail=detail,
                )
                return
            _logger.warning("Cloud sync did not complete: %s", result.message)
            self.context.notifications.notify(
                NotificationKind.INFO, "Analysis complete (Cloud sync pending)"
            )

        return handle
