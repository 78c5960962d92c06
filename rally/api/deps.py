"""Shared FastAPI dependencies."""

from datetime import timedelta
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from twilio.request_validator import RequestValidator

from rally.config import settings
from rally.database import AsyncSessionLocal, get_db
from rally.models.user import User
from rally.services.poller import SchedulingPoller
from rally.services.state_machine import WakeUpCallStateMachine
from rally.services.user_service import UserService
from rally.telephony.base import TelephonyTransport
from rally.telephony.twilio_transport import TwilioTransport


DBSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    db: DBSession,
    x_user_id: Annotated[str | None, Header()] = None,
) -> User:
    """Resolve the authenticated caller from the identity provider's user id."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")

    user = await UserService(db).get_user_by_external_id(x_user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


@lru_cache
def get_transport() -> TelephonyTransport:
    """Shared telephony transport."""
    return TwilioTransport(settings)


@lru_cache
def get_state_machine() -> WakeUpCallStateMachine:
    """Shared state machine; its per-call locks must outlive a single request."""
    return WakeUpCallStateMachine(AsyncSessionLocal, get_transport())


@lru_cache
def get_poller() -> SchedulingPoller:
    """Shared scheduling poller."""
    return SchedulingPoller(
        AsyncSessionLocal,
        get_state_machine(),
        grace_period=timedelta(seconds=settings.missed_call_grace_seconds),
        concurrency=settings.poller_concurrency,
    )


StateMachine = Annotated[WakeUpCallStateMachine, Depends(get_state_machine)]
Poller = Annotated[SchedulingPoller, Depends(get_poller)]


async def verify_twilio_signature(request: Request) -> None:
    """Reject webhook calls not signed by Twilio (skipped when no auth token is configured)."""
    if not settings.twilio_auth_token:
        return

    url = settings.public_base_url.rstrip("/") + request.url.path
    if request.url.query:
        url += f"?{request.url.query}"
    form = await request.form()
    signature = request.headers.get("X-Twilio-Signature", "")

    validator = RequestValidator(settings.twilio_auth_token)
    if not validator.validate(url, dict(form), signature):
        raise HTTPException(status_code=403, detail="Invalid Twilio signature")
