"""Wake-up call service - Business logic for creating and editing wake-up calls.

Status is never written here; lifecycle changes go through
``WakeUpCallStateMachine``.
"""

from datetime import datetime
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rally.database import utcnow
from rally.errors import InvalidTransitionError, WakeUpValidationError
from rally.models.snooze import Snooze
from rally.models.user import User
from rally.models.wakeup_call import CallStatus, RecurrenceRule, WakeUpCall
from rally.schemas.wakeup_call import RecurrenceRuleCreate, WakeUpCallCreate, WakeUpCallUpdate
from rally.services.recurrence import upcoming_occurrences, validate_rule

# Fields that may only change while the call is still waiting for its first trigger
PENDING_ONLY_FIELDS = {"message", "scheduled_time", "phone_number", "recurrence_rule"}


def build_recurrence_rule(
    rule_data: RecurrenceRuleCreate,
    scheduled_time: datetime,
    rule: RecurrenceRule | None = None,
) -> RecurrenceRule:
    """Fill a rule model from a validated payload, anchored at the scheduled time by default.

    An existing rule is updated in place so the one-to-one row keeps its identity.
    """
    rule = rule or RecurrenceRule()
    rule.frequency = rule_data.frequency.value
    rule.interval = rule_data.interval
    rule.by_day = sorted(set(rule_data.by_day))
    rule.start_date = rule_data.start_date or scheduled_time
    rule.end_date = rule_data.end_date
    rule.exceptions = sorted({day.isoformat() for day in rule_data.exceptions})
    rule.exhausted_at = None
    validate_rule(rule)
    return rule


class WakeUpCallService:
    """Service class for wake-up call operations, scoped to one user."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_call(self, user_id: UUID, wakeup_call_id: UUID) -> WakeUpCall | None:
        """Get a wake-up call owned by the user."""
        result = await self.db.execute(
            select(WakeUpCall).where(
                WakeUpCall.id == wakeup_call_id,
                WakeUpCall.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_user_calls(self, user_id: UUID) -> list[WakeUpCall]:
        """Get all wake-up calls for a user."""
        result = await self.db.execute(
            select(WakeUpCall)
            .where(WakeUpCall.user_id == user_id)
            .order_by(WakeUpCall.scheduled_time)
        )
        return list(result.scalars().all())

    async def create_call(self, user: User, call_data: WakeUpCallCreate) -> WakeUpCall:
        """Create a wake-up call and its recurrence rule in one unit of work."""
        message = call_data.message or (user.preferences.default_message if user.preferences else None)
        if not message:
            raise WakeUpValidationError("Message is required")

        phone_number = call_data.phone_number or user.phone_number
        if not phone_number:
            raise WakeUpValidationError("A phone number is required for the user or the call")

        if call_data.scheduled_time <= utcnow():
            raise WakeUpValidationError("Scheduled date must be in the future")

        call = WakeUpCall(
            user_id=user.id,
            phone_number=phone_number,
            message=message,
            scheduled_time=call_data.scheduled_time,
            status=CallStatus.PENDING.value,
            is_active=True,
            recurrence_rule=None,
        )
        if call_data.recurrence_rule is not None:
            call.recurrence_rule = build_recurrence_rule(
                call_data.recurrence_rule, call_data.scheduled_time
            )

        self.db.add(call)
        await self.db.flush()
        await self.db.refresh(call)
        return call

    async def update_call(self, call: WakeUpCall, call_data: WakeUpCallUpdate) -> WakeUpCall:
        """Edit a wake-up call.

        Message, time, destination and recurrence can only change while the
        call is pending; ``is_active`` can be toggled in any state.
        """
        update_data = call_data.model_dump(exclude_unset=True)

        if PENDING_ONLY_FIELDS & update_data.keys() and call.status != CallStatus.PENDING.value:
            raise InvalidTransitionError(call.id, call.status, "edit")

        if update_data.get("scheduled_time") is not None and update_data["scheduled_time"] <= utcnow():
            raise WakeUpValidationError("Scheduled date must be in the future")

        for field in ("message", "scheduled_time", "phone_number", "is_active"):
            if update_data.get(field) is not None:
                setattr(call, field, update_data[field])

        if "recurrence_rule" in update_data:
            if call_data.recurrence_rule is None:
                call.recurrence_rule = None
            else:
                call.recurrence_rule = build_recurrence_rule(
                    call_data.recurrence_rule, call.scheduled_time, call.recurrence_rule
                )
        elif update_data.get("scheduled_time") is not None and call.recurrence_rule is not None:
            # The series is anchored at start_date; move it with the call
            call.recurrence_rule.start_date = call.scheduled_time
            validate_rule(call.recurrence_rule)

        await self.db.flush()
        await self.db.refresh(call)
        return call

    async def delete_call(self, call: WakeUpCall) -> None:
        """Delete a wake-up call with its rule, snoozes and call logs."""
        await self.db.delete(call)
        await self.db.flush()

    async def get_snoozes(self, wakeup_call_id: UUID) -> list[Snooze]:
        """Get the snoozes of the call's current occurrence."""
        result = await self.db.execute(
            select(Snooze)
            .where(Snooze.wakeup_call_id == wakeup_call_id)
            .order_by(Snooze.snoozed_at)
        )
        return list(result.scalars().all())

    def preview_occurrences(self, call: WakeUpCall, user: User, count: int = 5) -> list[datetime]:
        """Upcoming occurrences after the current scheduled time."""
        if call.recurrence_rule is None or call.recurrence_rule.exhausted_at is not None:
            return []
        tz = ZoneInfo(user.preferences.timezone) if user.preferences else None
        return upcoming_occurrences(call.recurrence_rule, call.scheduled_time, count, tz)
