"""Service for sending SMS via Twilio."""

from __future__ import annotations

from enum import Enum
import logging
from typing import Any, Optional, Tuple

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from ridepay.core.config import secret_or_plain, settings
from ridepay.utils.phone import format_phone

logger = logging.getLogger(__name__)

MAX_SMS_LENGTH = 1600


class SMSStatus(str, Enum):
    SUCCESS = "success"
    DISABLED = "disabled"
    ERROR = "error"


class SMSService:
    """Service for sending SMS via Twilio."""

    def __init__(self, client: Optional[Client] = None) -> None:
        auth_token = secret_or_plain(settings.twilio_auth_token)
        self.enabled = bool(
            client is not None
            or (
                settings.sms_enabled
                and settings.twilio_account_sid
                and auth_token
                and settings.twilio_phone_number
            )
        )
        self.from_number = settings.twilio_phone_number

        if client is not None:
            self.client: Optional[Client] = client
        elif self.enabled:
            self.client = Client(settings.twilio_account_sid, auth_token)
        else:
            self.client = None
            logger.info("SMS service disabled - Twilio credentials not configured")

    @staticmethod
    def to_e164(phone_number: str) -> str:
        return f"+{format_phone(phone_number)}"

    def send_sms_with_status(
        self, to_number: Optional[str], message: str
    ) -> Tuple[Optional[dict[str, Any]], SMSStatus]:
        """
        Send an SMS message.

        Args:
            to_number: Recipient phone number, local or international form
            message: Message body (max 1600 chars, truncated if longer)
        """
        if not self.enabled or self.client is None:
            logger.debug("SMS disabled, would send to %s", to_number)
            return None, SMSStatus.DISABLED

        if not to_number:
            logger.warning("Cannot send SMS: no phone number provided")
            return None, SMSStatus.ERROR

        if len(message) > MAX_SMS_LENGTH:
            message = message[: MAX_SMS_LENGTH - 3] + "..."

        destination = self.to_e164(to_number)
        try:
            twilio_message = self.client.messages.create(
                body=message, to=destination, from_=self.from_number
            )
        except TwilioRestException as exc:
            logger.error("Twilio error sending SMS to %s: %s", destination[-4:], exc)
            return None, SMSStatus.ERROR

        logger.info("SMS sent to %s, SID: %s", destination[-4:], twilio_message.sid)
        return (
            {
                "sid": twilio_message.sid,
                "status": getattr(twilio_message, "status", None),
                "to": destination,
            },
            SMSStatus.SUCCESS,
        )

    def send_sms(self, to_number: Optional[str], message: str) -> Optional[dict[str, Any]]:
        result, status = self.send_sms_with_status(to_number, message)
        return result if status is SMSStatus.SUCCESS else None
