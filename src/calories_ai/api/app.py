"""FastAPI application factory."""

import base64
import binascii
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from calories_ai.api.models import AnalyzeRequest, LoginRequest
from calories_ai.app_logging import configure_logging
from calories_ai.containers import AppContainer
from calories_ai.domain.models import HistoryEntry, UserRecord
from calories_ai.domain.notifications import Notification
from calories_ai.services.context import SessionContext
from calories_ai.services.quota import MAX_FREE_USES, remaining_free_uses


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            await state_container.session_service.bootstrap()
        except Exception:
            logger.exception("Failed to restore the previous session")
        yield
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    def get_container(request: Request) -> AppContainer:
        return request.app.state.container

    async def require_session(
        state_container: AppContainer = Depends(get_container),
    ) -> None:
        """Reject requests when nobody is logged in."""
        if not state_container.context.authenticated:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/", response_model=None)
    async def session_view(
        request: Request,
        payment: str | None = None,
        state_container: AppContainer = Depends(get_container),
    ) -> dict[str, object] | RedirectResponse:
        """Return the session state; a payment return is handled then scrubbed."""
        if payment is not None:
            result = await state_container.session_service.bootstrap(payment)
            if result.scrub_location:
                target = request.url.remove_query_params("payment")
                return RedirectResponse(
                    str(target), status_code=status.HTTP_303_SEE_OTHER
                )
        return _session_view(state_container)

    @app.post("/login")
    async def login(
        payload: LoginRequest, state_container: AppContainer = Depends(get_container)
    ) -> dict[str, object]:
        """Start a session with this device's stable identity."""
        await state_container.session_service.login(payload.email, payload.name)
        return _session_view(state_container)

    @app.post("/logout")
    async def logout(
        state_container: AppContainer = Depends(get_container),
    ) -> dict[str, object]:
        """End the session and clear local state."""
        state_container.session_service.logout()
        return _session_view(state_container)

    @app.post("/analyze", dependencies=[Depends(require_session)])
    async def analyze(
        payload: AnalyzeRequest,
        state_container: AppContainer = Depends(get_container),
    ) -> dict[str, object]:
        """Analyse a meal description or photo."""
        image = _decode_image(payload.image_base64)
        outcome = await state_container.session_service.analyze_meal(
            payload.text, image
        )
        return {
            "status": outcome.status,
            "upgrade_required": outcome.upgrade_required,
            "entry": _entry_view(outcome.entry) if outcome.entry else None,
            "session": _session_view(state_container),
        }

    @app.post("/status/sync", dependencies=[Depends(require_session)])
    async def sync_status(
        state_container: AppContainer = Depends(get_container),
    ) -> dict[str, object]:
        """Refresh the plan from the status service."""
        plan = await state_container.session_service.sync_account_status()
        return {"synced": plan is not None, "session": _session_view(state_container)}

    @app.post("/checkout", dependencies=[Depends(require_session)])
    async def checkout(
        state_container: AppContainer = Depends(get_container),
    ) -> dict[str, object]:
        """Start an upgrade checkout."""
        checkout_url = await state_container.session_service.start_upgrade()
        return {
            "checkout_url": checkout_url,
            "notification": _notification_view(
                state_container.context.notifications.current()
            ),
        }

    @app.get("/history")
    async def history(
        state_container: AppContainer = Depends(get_container),
    ) -> dict[str, object]:
        """Return the meal history, newest first."""
        return {
            "entries": [
                _entry_view(entry) for entry in state_container.context.history
            ]
        }

    @app.get("/notification")
    async def notification(
        state_container: AppContainer = Depends(get_container),
    ) -> dict[str, object]:
        """Return the active notification, if any."""
        current = state_container.context.notifications.current()
        return {"notification": _notification_view(current)}

    @app.delete("/notification")
    async def dismiss_notification(
        state_container: AppContainer = Depends(get_container),
    ) -> dict[str, str]:
        """Dismiss the active notification."""
        state_container.context.notifications.dismiss()
        return {"status": "ok"}

    return app


def _decode_image(image_base64: str | None) -> bytes | None:
    """Decode a base64 image, accepting an optional data URL prefix."""
    if not image_base64:
        return None
    _, _, encoded = image_base64.rpartition(",")
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="image_base64 is not valid base64",
        ) from exc


def _session_view(container: AppContainer) -> dict[str, object]:
    context: SessionContext = container.context
    today = container.session_service.today()
    user = context.user
    return {
        "authenticated": context.authenticated,
        "user": _user_view(user) if user else None,
        "remaining_free_uses": remaining_free_uses(user, today) if user else 0,
        "max_free_uses": MAX_FREE_USES,
        "syncing": context.syncing > 0,
        "upgrading": context.upgrading,
        "history_count": len(context.history),
        "notification": _notification_view(context.notifications.current()),
    }


def _user_view(user: UserRecord) -> dict[str, object]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "plan": user.plan.value,
        "daily_usage_count": user.daily_usage_count,
        "last_usage_date": (
            user.last_usage_date.isoformat() if user.last_usage_date else None
        ),
    }


def _entry_view(entry: HistoryEntry) -> dict[str, object]:
    return {
        "id": entry.id,
        "timestamp": entry.timestamp.isoformat(),
        "text_input": entry.text_input,
        "image_url": entry.image_url,
        "data": entry.data.model_dump(mode="json", by_alias=True),
        "macros": dict(entry.data.macro_breakdown()),
    }


def _notification_view(notification: Notification | None) -> dict[str, object] | None:
    if notification is None:
        return None
    return {
        "kind": notification.kind.value,
        "message": notification.message,
        "detail": notification.detail,
    }
