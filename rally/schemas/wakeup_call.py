from pydantic import AwareDatetime, BaseModel, Field, model_validator
from datetime import date, datetime
from uuid import UUID
from rally.models.wakeup_call import Frequency, ScheduleKind


PHONE_PATTERN = r"^\+?[1-9]\d{7,14}$"


class RecurrenceRuleBase(BaseModel):
    """Base recurrence rule schema."""
    frequency: Frequency = Field(..., description="DAILY, WEEKLY, MONTHLY or YEARLY")
    interval: int = Field(1, ge=1, description="Repeat every N units")
    by_day: list[int] = Field(default_factory=list, description="Weekdays for WEEKLY rules, 0 = Sunday")
    end_date: AwareDatetime | None = Field(None, description="Last moment an occurrence may fall on")
    exceptions: list[date] = Field(default_factory=list, description="Dates to skip")

    @model_validator(mode="after")
    def check_days(self):
        if any(day < 0 or day > 6 for day in self.by_day):
            raise ValueError("Days must be between 0 and 6")
        return self


class RecurrenceRuleCreate(RecurrenceRuleBase):
    """Schema for attaching a recurrence rule to a wake-up call."""
    start_date: AwareDatetime | None = Field(
        None,
        description="Series anchor; defaults to the call's scheduled time",
    )

    @model_validator(mode="after")
    def check_bounds(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not precede start_date")
        return self


class RecurrenceRuleResponse(RecurrenceRuleBase):
    """Schema for recurrence rule response."""
    start_date: datetime
    exhausted_at: datetime | None = None

    class Config:
        from_attributes = True


class WakeUpCallCreate(BaseModel):
    """Schema for creating a wake-up call."""
    message: str | None = Field(
        None,
        min_length=1,
        max_length=1000,
        description="Text to speak; defaults to the user's default message",
    )
    scheduled_time: AwareDatetime = Field(..., description="First due time")
    phone_number: str | None = Field(
        None,
        pattern=PHONE_PATTERN,
        description="Destination; defaults to the user's phone number",
    )
    recurrence_rule: RecurrenceRuleCreate | None = None


class WakeUpCallUpdate(BaseModel):
    """Schema for editing a wake-up call. Status is not editable here."""
    message: str | None = Field(None, min_length=1, max_length=1000)
    scheduled_time: AwareDatetime | None = None
    phone_number: str | None = Field(None, pattern=PHONE_PATTERN)
    recurrence_rule: RecurrenceRuleCreate | None = None
    is_active: bool | None = None


class WakeUpCallResponse(BaseModel):
    """Schema for wake-up call response."""
    id: UUID
    user_id: UUID
    phone_number: str
    message: str
    scheduled_time: datetime
    actual_time: datetime | None
    status: str
    is_active: bool
    schedule_kind: ScheduleKind
    recurrence_rule: RecurrenceRuleResponse | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SnoozeResponse(BaseModel):
    """Schema for snooze response."""
    id: UUID
    wakeup_call_id: UUID
    snoozed_at: datetime
    snooze_until: datetime

    class Config:
        from_attributes = True


class CallLogResponse(BaseModel):
    """Schema for call log response."""
    id: UUID
    wakeup_call_id: UUID
    call_sid: str | None
    status: str
    error: str | None
    started_at: datetime
    duration: int | None

    class Config:
        from_attributes = True


class OccurrencesResponse(BaseModel):
    """Upcoming occurrences of a recurring wake-up call."""
    wakeup_call_id: UUID
    occurrences: list[datetime]
