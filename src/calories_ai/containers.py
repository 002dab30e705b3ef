"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from calories_ai.adapters.file_key_value_store import FileKeyValueStore
from calories_ai.adapters.httpx_webhook_client import HttpxWebhookClient
from calories_ai.adapters.openai_nutrition_client import OpenAINutritionClient
from calories_ai.config import Settings, resolve_timezone, today_in
from calories_ai.services.analysis import AnalysisService
from calories_ai.services.checkout import CheckoutService
from calories_ai.services.context import SessionContext
from calories_ai.services.delivery import DeliveryQueue, DeliveryService
from calories_ai.services.notifications import NotificationCenter
from calories_ai.services.plan_status import PlanReconciler
from calories_ai.services.session import SessionService
from calories_ai.services.storage import LocalStateStore


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    context: SessionContext
    session_service: SessionService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    tz = resolve_timezone(resolved_settings.timezone)
    state_store = LocalStateStore(FileKeyValueStore(Path(resolved_settings.state_dir)))
    context = SessionContext(
        store=state_store,
        notifications=NotificationCenter(
            ttl_seconds=resolved_settings.notification_ttl_seconds
        ),
        history_limit=resolved_settings.history_limit,
    )
    webhook_client = HttpxWebhookClient.create(
        timeout=resolved_settings.webhook_timeout_seconds
    )
    openai_client = OpenAINutritionClient.create(
        api_key=resolved_settings.openai_api_key,
        model=resolved_settings.openai_model,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
    )
    session_service = SessionService(
        context=context,
        reconciler=PlanReconciler(
            transport=webhook_client,
            endpoint=resolved_settings.status_webhook_url,
        ),
        analysis_service=AnalysisService(openai_client),
        delivery_queue=DeliveryQueue(DeliveryService(webhook_client)),
        checkout_service=CheckoutService(
            transport=webhook_client,
            endpoint=resolved_settings.checkout_webhook_url,
            callback_url=resolved_settings.app_base_url,
        ),
        data_webhook_url=resolved_settings.data_webhook_url,
        today=lambda: today_in(tz),
        sync_source=resolved_settings.sync_source,
        default_email=resolved_settings.default_user_email,
        default_name=resolved_settings.default_user_name,
    )

    async def close_resources() -> None:
        await session_service.drain()
        await webhook_client.close()
        await openai_client.close()

    return AppContainer(
        settings=resolved_settings,
        context=context,
        session_service=session_service,
        close_resources=close_resources,
    )
