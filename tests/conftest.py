"""Shared test fixtures."""

import json
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta

import pytest

from calories_ai.config import Settings
from calories_ai.containers import AppContainer
from calories_ai.domain.models import UserPlan, UserRecord
from calories_ai.domain.webhooks import WebhookReply
from calories_ai.services.analysis import AnalysisClient, AnalysisService
from calories_ai.services.checkout import CheckoutService
from calories_ai.services.context import SessionContext
from calories_ai.services.delivery import (
    DeliveryQueue,
    DeliveryService,
    WebhookTransport,
)
from calories_ai.services.notifications import NotificationCenter
from calories_ai.services.plan_status import PlanReconciler
from calories_ai.services.session import SessionService
from calories_ai.services.storage import KeyValueStore, LocalStateStore

STATUS_URL = "https://hooks.test/user/status"
DATA_URL = "https://hooks.test/analyse/data"
CHECKOUT_URL = "https://hooks.test/pay/checkout"
CALLBACK_URL = "https://app.test/"
TODAY = date(2026, 10, 19)
YESTERDAY = TODAY - timedelta(days=1)


def json_reply(
    body: object, status_code: int = 200, reason: str = "OK"
) -> WebhookReply:
    return WebhookReply(
        status_code=status_code,
        reason=reason,
        content_type="application/json; charset=utf-8",
        body=json.dumps(body),
    )


def text_reply(body: str, status_code: int = 200, reason: str = "OK") -> WebhookReply:
    return WebhookReply(
        status_code=status_code,
        reason=reason,
        content_type="text/plain",
        body=body,
    )


def make_user(
    plan: UserPlan = UserPlan.FREE,
    count: int = 0,
    last_usage_date: date | None = TODAY,
    user_id: str = "google_uid_abc12345",
) -> UserRecord:
    return UserRecord(
        id=user_id,
        email="alex.doe@example.com",
        name="Alex Doe",
        plan=plan,
        daily_usage_count=count,
        last_usage_date=last_usage_date,
    )


@dataclass
class InMemoryKeyValueStore(KeyValueStore):
    """In-memory key/value store for tests; writes can be made to fail."""

    values: dict[str, str] = field(default_factory=dict)
    fail_writes: bool = False

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.values[key] = value

    def delete(self, key: str) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.values.pop(key, None)


@dataclass
class FakeWebhookTransport(WebhookTransport):
    """Fake transport with per-URL replies or errors."""

    replies: dict[str, WebhookReply | Exception] = field(default_factory=dict)
    opaque_errors: dict[str, Exception] = field(default_factory=dict)
    json_calls: list[tuple[str, dict[str, object]]] = field(default_factory=list)
    opaque_calls: list[tuple[str, dict[str, object]]] = field(default_factory=list)

    async def post_json(self, url: str, payload: dict[str, object]) -> WebhookReply:
        self.json_calls.append((url, payload))
        reply = self.replies.get(url, json_reply({"ok": True}))
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def post_opaque(self, url: str, payload: dict[str, object]) -> None:
        self.opaque_calls.append((url, payload))
        error = self.opaque_errors.get(url)
        if error is not None:
            raise error

    def calls_to(self, url: str) -> list[dict[str, object]]:
        return [payload for called, payload in self.json_calls if called == url]


@dataclass
class FakeAnalysisClient(AnalysisClient):
    """Fake inference client returning a fixed payload or raising."""

    payload: dict[str, object] = field(
        default_factory=lambda: {
            "foodName": "Grilled chicken with quinoa",
            "calories": 520,
            "protein": 42,
            "carbs": 48,
            "fat": 14,
            "notes": "Balanced meal.",
        }
    )
    error: Exception | None = None
    calls: list[dict[str, object]] = field(default_factory=list)

    async def analyze(
        self,
        *,
        prompt: str,
        system_prompt: str,
        image_data_url: str | None,
        schema: dict[str, object],
    ) -> dict[str, object]:
        self.calls.append({"prompt": prompt, "image_data_url": image_data_url})
        if self.error is not None:
            raise self.error
        return self.payload


@dataclass
class FakeClock:
    """Manually advanced clock."""

    now: datetime = field(
        default_factory=lambda: datetime(2026, 10, 19, 12, tzinfo=UTC)
    )

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class TodayProvider:
    """Mutable calendar date for quota tests."""

    value: date = TODAY

    def __call__(self) -> date:
        return self.value


def make_context(
    kv_store: InMemoryKeyValueStore | None = None,
    clock: FakeClock | None = None,
    history_limit: int = 50,
) -> SessionContext:
    return SessionContext(
        store=LocalStateStore(kv_store or InMemoryKeyValueStore()),
        notifications=NotificationCenter(ttl_seconds=5, clock=clock or FakeClock()),
        history_limit=history_limit,
    )


def make_session_service(
    context: SessionContext | None = None,
    transport: FakeWebhookTransport | None = None,
    analysis_client: FakeAnalysisClient | None = None,
    today: TodayProvider | None = None,
) -> SessionService:
    resolved_transport = transport or FakeWebhookTransport()
    return SessionService(
        context=context or make_context(),
        reconciler=PlanReconciler(transport=resolved_transport, endpoint=STATUS_URL),
        analysis_service=AnalysisService(analysis_client or FakeAnalysisClient()),
        delivery_queue=DeliveryQueue(DeliveryService(resolved_transport)),
        checkout_service=CheckoutService(
            transport=resolved_transport,
            endpoint=CHECKOUT_URL,
            callback_url=CALLBACK_URL,
        ),
        data_webhook_url=DATA_URL,
        today=today or TodayProvider(),
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        openai_api_key="openai-key",
        status_webhook_url=STATUS_URL,
        data_webhook_url=DATA_URL,
        checkout_webhook_url=CHECKOUT_URL,
        app_base_url=CALLBACK_URL,
        state_dir=str(tmp_path / "state"),
        timezone="UTC",
    )


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def transport() -> FakeWebhookTransport:
    return FakeWebhookTransport()


@pytest.fixture
def analysis_client() -> FakeAnalysisClient:
    return FakeAnalysisClient()


@pytest.fixture
def container(
    settings: Settings,
    kv_store: InMemoryKeyValueStore,
    transport: FakeWebhookTransport,
    analysis_client: FakeAnalysisClient,
) -> AppContainer:
    context = make_context(kv_store)
    session_service = make_session_service(
        context=context, transport=transport, analysis_client=analysis_client
    )

    async def close_resources() -> None:
        await session_service.drain()

    return AppContainer(
        settings=settings,
        context=context,
        session_service=session_service,
        close_resources=close_resources,
    )
