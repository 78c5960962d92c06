"""Telephony package - transport interface and the Twilio implementation."""

from rally.telephony.base import TelephonyTransport
from rally.telephony.twilio_transport import TwilioTransport

__all__ = ["TelephonyTransport", "TwilioTransport"]
