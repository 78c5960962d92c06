"""Services package - Business logic layer."""

from rally.services.user_service import UserService
from rally.services.wakeup_call_service import WakeUpCallService
from rally.services.call_log_service import CallLogService
from rally.services.state_machine import WakeUpCallStateMachine, SnoozeOutcome, SnoozeResult
from rally.services.poller import SchedulingPoller, TickReport

__all__ = [
    "UserService",
    "WakeUpCallService",
    "CallLogService",
    "WakeUpCallStateMachine",
    "SnoozeOutcome",
    "SnoozeResult",
    "SchedulingPoller",
    "TickReport",
]
