import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional
from sqlalchemy import String, Boolean, Integer, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from rally.database import Base, UTCDateTime, utcnow


class CallStatus(str, Enum):
    """Wake-up call lifecycle status."""
    PENDING = "pending"
    INITIATED = "initiated"
    SNOOZED = "snoozed"
    COMPLETED = "completed"
    MISSED = "missed"


class Frequency(str, Enum):
    """Recurrence frequency."""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class ScheduleKind(str, Enum):
    """Whether a call repeats, and whether its series is still running."""
    ONE_SHOT = "one_shot"
    RECURRING = "recurring"
    RECURRING_EXHAUSTED = "recurring_exhausted"


class WakeUpCall(Base):
    """Wake-up call model - one scheduled call obligation for a user."""

    __tablename__ = "wakeup_calls"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(String(1000), nullable=False)
    scheduled_time: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        index=True,
    )
    # Trigger time while initiated, snooze-until while snoozed
    actual_time: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
        index=True,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=CallStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="wakeup_calls")
    recurrence_rule: Mapped[Optional["RecurrenceRule"]] = relationship(
        "RecurrenceRule",
        back_populates="wakeup_call",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    snoozes: Mapped[list["Snooze"]] = relationship(
        "Snooze",
        back_populates="wakeup_call",
        cascade="all, delete-orphan",
    )
    call_logs: Mapped[list["CallLog"]] = relationship(
        "CallLog",
        back_populates="wakeup_call",
        cascade="all, delete-orphan",
    )

    @property
    def schedule_kind(self) -> ScheduleKind:
        if self.recurrence_rule is None:
            return ScheduleKind.ONE_SHOT
        if self.recurrence_rule.exhausted_at is not None:
            return ScheduleKind.RECURRING_EXHAUSTED
        return ScheduleKind.RECURRING

    def __repr__(self) -> str:
        return f"<WakeUpCall {self.id} {self.status} at {self.scheduled_time}>"


class RecurrenceRule(Base):
    """Recurrence rule attached to a wake-up call (one-to-one)."""

    __tablename__ = "recurrence_rules"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    wakeup_call_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("wakeup_calls.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    frequency: Mapped[str] = mapped_column(String(10), nullable=False)
    interval: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    # Weekday indices, 0 = Sunday ... 6 = Saturday
    by_day: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    # ISO dates (YYYY-MM-DD) on which no occurrence is generated
    exceptions: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    exhausted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
    )

    wakeup_call: Mapped["WakeUpCall"] = relationship(
        "WakeUpCall",
        back_populates="recurrence_rule",
    )

    @property
    def exception_dates(self) -> list[date]:
        return [date.fromisoformat(value) for value in self.exceptions or []]

    def __repr__(self) -> str:
        return f"<RecurrenceRule {self.frequency} every {self.interval}>"
