from rally.schemas.user import UserCreate, UserResponse, PreferencesResponse
from rally.schemas.wakeup_call import (
    RecurrenceRuleCreate,
    RecurrenceRuleResponse,
    WakeUpCallCreate,
    WakeUpCallUpdate,
    WakeUpCallResponse,
    SnoozeResponse,
    CallLogResponse,
    OccurrencesResponse,
)
from rally.schemas.scheduler import TickFailure, TickResponse

__all__ = [
    "UserCreate",
    "UserResponse",
    "PreferencesResponse",
    "RecurrenceRuleCreate",
    "RecurrenceRuleResponse",
    "WakeUpCallCreate",
    "WakeUpCallUpdate",
    "WakeUpCallResponse",
    "SnoozeResponse",
    "CallLogResponse",
    "OccurrencesResponse",
    "TickFailure",
    "TickResponse",
]
