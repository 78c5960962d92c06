"""Telephony routes - webhooks called by Twilio while a wake-up call is in progress."""

import logging
from fastapi import APIRouter, Depends, Form, Response
from uuid import UUID

import logfire

from rally.api.deps import DBSession, StateMachine, verify_twilio_signature
from rally.errors import InvalidTransitionError
from rally.models.call_log import CallLogStatus
from rally.services.call_log_service import CallLogService

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_twilio_signature)])

# Twilio call statuses that mean nobody picked up
UNANSWERED_STATUSES = {
    CallLogStatus.NO_ANSWER.value,
    CallLogStatus.BUSY.value,
    CallLogStatus.FAILED.value,
    CallLogStatus.CANCELED.value,
}


def twiml_response(markup: str) -> Response:
    return Response(content=markup, media_type="application/xml")


@router.post("/{wakeup_call_id}/initiate")
async def initiate_call(wakeup_call_id: UUID, machine: StateMachine):
    """Return the opening prompt for a call Twilio is connecting."""
    markup = await machine.answer(wakeup_call_id)
    return twiml_response(markup)


@router.post("/{wakeup_call_id}/snooze")
async def snooze_call(
    wakeup_call_id: UUID,
    machine: StateMachine,
    SpeechResult: str | None = Form(None),
    Digits: str | None = Form(None),
):
    """Handle the recipient's snooze request (speech or keypad)."""
    transcript = SpeechResult or Digits or ""
    logfire.info("snooze_requested", wakeup_call_id=str(wakeup_call_id), transcript=transcript)
    outcome = await machine.snooze(wakeup_call_id, transcript)
    return twiml_response(outcome.markup)


@router.post("/{wakeup_call_id}/complete")
async def complete_call(wakeup_call_id: UUID, machine: StateMachine):
    """Mark a ringing call as completed."""
    call = await machine.complete(wakeup_call_id)
    return {"success": True, "status": call.status, "is_active": call.is_active}


@router.post("/{wakeup_call_id}/status")
async def call_status(
    wakeup_call_id: UUID,
    db: DBSession,
    machine: StateMachine,
    CallSid: str = Form(...),
    CallStatus: str = Form(...),
    CallDuration: int | None = Form(None),
):
    """Twilio status callback: record how the call ended and settle its lifecycle."""
    await CallLogService(db).record_outcome(CallSid, CallStatus, duration=CallDuration)
    # Release the write before the state machine opens its own transaction
    await db.commit()

    try:
        if CallStatus == CallLogStatus.COMPLETED.value:
            await machine.complete(wakeup_call_id)
        elif CallStatus in UNANSWERED_STATUSES:
            await machine.miss(wakeup_call_id)
    except InvalidTransitionError as e:
        # A snoozed call hangs up too; the poller re-initiates it later
        logger.info(f"Status callback for {wakeup_call_id} left state unchanged: {e.message}")

    return {"received": True}
