"""Telephony transport interface used by the state machine and the poller."""

from abc import ABC, abstractmethod
from uuid import UUID


class TelephonyTransport(ABC):
    """Places outbound calls and renders prompt markup.

    The markup returned by the render methods is opaque to the rest of the
    application; it is only handed back to the transport or to the webhook
    caller.
    """

    @abstractmethod
    def initial_prompt(self, wakeup_call_id: UUID, message: str, invitation: str) -> str:
        """Markup that speaks the message and listens for a snooze request."""

    @abstractmethod
    def prompt(self, message: str) -> str:
        """Markup that speaks a message and ends the call."""

    @abstractmethod
    async def place_call(self, wakeup_call_id: UUID, to: str, markup: str) -> str:
        """Dial ``to`` and play ``markup``; returns the transport's call id.

        Raises TransportError when the call cannot be placed.
        """
