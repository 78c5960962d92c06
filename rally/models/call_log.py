import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import String, Integer, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from rally.database import Base, UTCDateTime, utcnow


class CallLogStatus(str, Enum):
    """Outcome of one telephony attempt."""
    QUEUED = "queued"
    FAILED = "failed"
    COMPLETED = "completed"
    NO_ANSWER = "no-answer"
    BUSY = "busy"
    CANCELED = "canceled"


class CallLog(Base):
    """Call log model - one row per telephony attempt."""

    __tablename__ = "call_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    wakeup_call_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("wakeup_calls.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    call_sid: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
    )

    wakeup_call: Mapped["WakeUpCall"] = relationship("WakeUpCall", back_populates="call_logs")

    def __repr__(self) -> str:
        return f"<CallLog {self.call_sid} {self.status}>"
