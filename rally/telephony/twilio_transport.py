"""Twilio implementation of the telephony transport."""

import asyncio
import logging
from uuid import UUID

import logfire
from twilio.base.exceptions import TwilioException
from twilio.rest import Client
from twilio.twiml.voice_response import VoiceResponse

from rally.config import Settings
from rally.errors import TransportError
from rally.telephony.base import TelephonyTransport
from rally.telephony.prompts import GOODBYE

logger = logging.getLogger(__name__)


class TwilioTransport(TelephonyTransport):
    """Places calls through the Twilio REST API and renders TwiML."""

    def __init__(self, settings: Settings, client: Client | None = None):
        self.from_number = settings.twilio_phone_number
        self.base_url = settings.public_base_url.rstrip("/")
        self.account_sid = settings.twilio_account_sid
        self.auth_token = settings.twilio_auth_token
        self._client = client

    @property
    def client(self) -> Client:
        # Created on first dial so TwiML can be rendered without credentials
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def webhook_url(self, wakeup_call_id: UUID, action: str) -> str:
        return f"{self.base_url}/api/telephony/{wakeup_call_id}/{action}"

    def initial_prompt(self, wakeup_call_id: UUID, message: str, invitation: str) -> str:
        response = VoiceResponse()
        response.say(message)
        gather = response.gather(
            input="speech dtmf",
            action=self.webhook_url(wakeup_call_id, "snooze"),
            method="POST",
            num_digits=2,
            timeout=5,
        )
        gather.say(invitation)
        # Reached only when the caller stays silent
        response.say(GOODBYE)
        return str(response)

    def prompt(self, message: str) -> str:
        response = VoiceResponse()
        response.say(message)
        response.hangup()
        return str(response)

    async def place_call(self, wakeup_call_id: UUID, to: str, markup: str) -> str:
        try:
            call = await asyncio.to_thread(
                self.client.calls.create,
                to=to,
                from_=self.from_number,
                twiml=markup,
                status_callback=self.webhook_url(wakeup_call_id, "status"),
                status_callback_event=["completed"],
                status_callback_method="POST",
            )
        except TwilioException as e:
            logger.error(f"Twilio rejected call for {wakeup_call_id}: {e}")
            logfire.error("twilio_call_failed", wakeup_call_id=str(wakeup_call_id), error=str(e))
            raise TransportError(f"Error making phone call: {e}") from e

        logfire.info("twilio_call_placed", wakeup_call_id=str(wakeup_call_id), call_sid=call.sid)
        return call.sid
