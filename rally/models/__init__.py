from rally.models.user import User, UserPreferences
from rally.models.wakeup_call import (
    CallStatus,
    Frequency,
    RecurrenceRule,
    ScheduleKind,
    WakeUpCall,
)
from rally.models.snooze import Snooze
from rally.models.call_log import CallLog, CallLogStatus

__all__ = [
    "User",
    "UserPreferences",
    "CallStatus",
    "Frequency",
    "RecurrenceRule",
    "ScheduleKind",
    "WakeUpCall",
    "Snooze",
    "CallLog",
    "CallLogStatus",
]
