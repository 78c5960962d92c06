from pydantic import BaseModel, Field
from datetime import datetime
from uuid import UUID


class TickFailure(BaseModel):
    """A due call the poller could not process."""
    wakeup_call_id: UUID
    error: str


class TickResponse(BaseModel):
    """Summary of one scheduler tick."""
    ran_at: datetime
    initiated: list[UUID] = Field(default_factory=list)
    missed: list[UUID] = Field(default_factory=list)
    failed: list[TickFailure] = Field(default_factory=list)
