from types import SimpleNamespace
from uuid import UUID

import pytest
from twilio.base.exceptions import TwilioRestException

from conftest import run
from rally.config import Settings
from rally.errors import TransportError
from rally.telephony.twilio_transport import TwilioTransport

CALL_ID = UUID("12345678-1234-5678-1234-567812345678")


class FakeCalls:
    def __init__(self, error=None):
        self.error = error
        self.created = []

    def create(self, **kwargs):
        if self.error:
            raise self.error
        self.created.append(kwargs)
        return SimpleNamespace(sid="CA123")


def make_transport(calls: FakeCalls) -> TwilioTransport:
    settings = Settings(
        twilio_account_sid="AC123",
        twilio_auth_token="secret",
        twilio_phone_number="+15550001111",
        public_base_url="https://rally.example.com/",
    )
    return TwilioTransport(settings, client=SimpleNamespace(calls=calls))


def test_initial_prompt_gathers_snooze_request():
    markup = make_transport(FakeCalls()).initial_prompt(CALL_ID, "Wake up!", "Say how many minutes.")

    assert "<Say>Wake up!</Say>" in markup
    assert f'action="https://rally.example.com/api/telephony/{CALL_ID}/snooze"' in markup
    assert 'input="speech dtmf"' in markup
    assert "<Say>Say how many minutes.</Say>" in markup


def test_prompt_hangs_up():
    markup = make_transport(FakeCalls()).prompt("Bye")

    assert "<Say>Bye</Say>" in markup
    assert "<Hangup />" in markup or "<Hangup/>" in markup


def test_place_call():
    calls = FakeCalls()
    sid = run(make_transport(calls).place_call(CALL_ID, "+15551234567", "<Response/>"))

    assert sid == "CA123"
    [created] = calls.created
    assert created["to"] == "+15551234567"
    assert created["from_"] == "+15550001111"
    assert created["twiml"] == "<Response/>"
    assert created["status_callback"] == f"https://rally.example.com/api/telephony/{CALL_ID}/status"


def test_place_call_failure_becomes_transport_error():
    calls = FakeCalls(error=TwilioRestException(400, "https://api.twilio.com", msg="Invalid number"))

    with pytest.raises(TransportError):
        run(make_transport(calls).place_call(CALL_ID, "+15551234567", "<Response/>"))
