"""Domain errors raised by the wake-up call services."""


class WakeUpError(Exception):
    """Base class for wake-up call errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(WakeUpError):
    """A wake-up call, snooze or user does not exist (or is not visible to the caller)."""

    status_code = 404


class InvalidTransitionError(WakeUpError):
    """A lifecycle transition was attempted from an incompatible state."""

    status_code = 409

    def __init__(self, wakeup_call_id, current_status: str, action: str):
        super().__init__(
            f"Cannot {action} wake-up call {wakeup_call_id} while it is {current_status}"
        )
        self.wakeup_call_id = wakeup_call_id
        self.current_status = current_status
        self.action = action


class WakeUpValidationError(WakeUpError):
    """Malformed recurrence rule, snooze settings or message."""

    status_code = 422


class TransportError(WakeUpError):
    """The telephony transport failed to place or deliver a call."""

    status_code = 502
