import uuid
from datetime import datetime
from sqlalchemy import ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from rally.database import Base, UTCDateTime, utcnow


class Snooze(Base):
    """Snooze model - one deferral of a triggered wake-up call."""

    __tablename__ = "snoozes"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    wakeup_call_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("wakeup_calls.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    snoozed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    snooze_until: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
    )

    wakeup_call: Mapped["WakeUpCall"] = relationship("WakeUpCall", back_populates="snoozes")

    __table_args__ = (
        CheckConstraint("snooze_until > snoozed_at", name="snooze_window_positive"),
    )

    def __repr__(self) -> str:
        return f"<Snooze {self.wakeup_call_id} until {self.snooze_until}>"
