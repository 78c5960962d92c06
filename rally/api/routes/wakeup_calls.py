"""Wake-up call routes - API endpoints for managing a user's wake-up calls."""

from fastapi import APIRouter, HTTPException, Query
from uuid import UUID

from rally.api.deps import CurrentUser, DBSession
from rally.schemas.wakeup_call import (
    CallLogResponse,
    OccurrencesResponse,
    SnoozeResponse,
    WakeUpCallCreate,
    WakeUpCallResponse,
    WakeUpCallUpdate,
)
from rally.services.call_log_service import CallLogService
from rally.services.wakeup_call_service import WakeUpCallService

router = APIRouter()


async def _get_owned_call(service: WakeUpCallService, user, wakeup_call_id: UUID):
    call = await service.get_user_call(user.id, wakeup_call_id)
    if not call:
        raise HTTPException(status_code=404, detail="Wake-up call not found")
    return call


@router.get("/", response_model=list[WakeUpCallResponse])
async def list_wakeup_calls(user: CurrentUser, db: DBSession):
    """Get all wake-up calls for the calling user."""
    service = WakeUpCallService(db)
    return await service.get_user_calls(user.id)


@router.post("/", response_model=WakeUpCallResponse, status_code=201)
async def create_wakeup_call(call_data: WakeUpCallCreate, user: CurrentUser, db: DBSession):
    """Create a one-shot or recurring wake-up call."""
    service = WakeUpCallService(db)
    return await service.create_call(user, call_data)


@router.get("/{wakeup_call_id}", response_model=WakeUpCallResponse)
async def get_wakeup_call(wakeup_call_id: UUID, user: CurrentUser, db: DBSession):
    """Get a wake-up call by ID."""
    service = WakeUpCallService(db)
    return await _get_owned_call(service, user, wakeup_call_id)


@router.patch("/{wakeup_call_id}", response_model=WakeUpCallResponse)
async def update_wakeup_call(
    wakeup_call_id: UUID,
    call_data: WakeUpCallUpdate,
    user: CurrentUser,
    db: DBSession,
):
    """Edit message, time, destination or recurrence (pending calls only), or toggle is_active."""
    service = WakeUpCallService(db)
    call = await _get_owned_call(service, user, wakeup_call_id)
    return await service.update_call(call, call_data)


@router.delete("/{wakeup_call_id}", status_code=204)
async def delete_wakeup_call(wakeup_call_id: UUID, user: CurrentUser, db: DBSession):
    """Delete a wake-up call in any state, with its snoozes and call logs."""
    service = WakeUpCallService(db)
    call = await _get_owned_call(service, user, wakeup_call_id)
    await service.delete_call(call)


@router.get("/{wakeup_call_id}/snoozes", response_model=list[SnoozeResponse])
async def list_snoozes(wakeup_call_id: UUID, user: CurrentUser, db: DBSession):
    """Get the snoozes of the call's current occurrence."""
    service = WakeUpCallService(db)
    call = await _get_owned_call(service, user, wakeup_call_id)
    return await service.get_snoozes(call.id)


@router.get("/{wakeup_call_id}/logs", response_model=list[CallLogResponse])
async def list_call_logs(wakeup_call_id: UUID, user: CurrentUser, db: DBSession):
    """Get every telephony attempt made for the call."""
    service = WakeUpCallService(db)
    call = await _get_owned_call(service, user, wakeup_call_id)
    return await CallLogService(db).get_call_logs(call.id)


@router.get("/{wakeup_call_id}/occurrences", response_model=OccurrencesResponse)
async def preview_occurrences(
    wakeup_call_id: UUID,
    user: CurrentUser,
    db: DBSession,
    count: int = Query(5, ge=1, le=50),
):
    """Preview the next occurrences of a recurring call."""
    service = WakeUpCallService(db)
    call = await _get_owned_call(service, user, wakeup_call_id)
    return OccurrencesResponse(
        wakeup_call_id=call.id,
        occurrences=service.preview_occurrences(call, user, count),
    )
