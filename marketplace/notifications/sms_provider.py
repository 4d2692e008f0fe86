"""
SMS / WhatsApp / voice provider backed by the Twilio SDK.

The SDK client is blocking, so sends run in a worker thread; the console
provider logs instead of sending.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from twilio.base.exceptions import TwilioException
from twilio.rest import Client
from twilio.twiml.voice_response import VoiceResponse

from marketplace.config import settings

logger = logging.getLogger(__name__)

VOICE_LANGUAGE = "es-MX"


@dataclass
class PhoneMessage:
    """A text (or spoken text for voice) sent to a phone number."""
    to: str
    body: str
    channel: str = "whatsapp"  # sms | whatsapp | voz


@dataclass
class PhoneSendResult:
    success: bool
    sid: Optional[str] = None
    error: Optional[str] = None


class PhoneProvider(ABC):
    @abstractmethod
    async def send(self, message: PhoneMessage) -> PhoneSendResult:
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        pass


def voice_twiml(body: str) -> str:
    """TwiML that reads ``body`` aloud."""
    response = VoiceResponse()
    response.say(body, language=VOICE_LANGUAGE)
    return str(response)


def whatsapp_address(number: str) -> str:
    if not number or number.startswith("whatsapp:"):
        return number
    return f"whatsapp:{number}"


class TwilioProvider(PhoneProvider):
    """Twilio Messages (sms/whatsapp) and Calls (voz) APIs."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_sms: str = "",
        from_whatsapp: str = "",
        from_voice: str = "",
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_sms = from_sms
        self.from_whatsapp = from_whatsapp
        self.from_voice = from_voice

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)

    def _deliver(self, message: PhoneMessage) -> str:
        """Blocking send; returns the message or call SID."""
        client = Client(self.account_sid, self.auth_token)
        if message.channel == "voz":
            call = client.calls.create(
                to=message.to,
                from_=self.from_voice or self.from_sms,
                twiml=voice_twiml(message.body),
            )
            return call.sid
        if message.channel == "whatsapp":
            sent = client.messages.create(
                to=whatsapp_address(message.to),
                from_=whatsapp_address(self.from_whatsapp),
                body=message.body,
            )
            return sent.sid
        sent = client.messages.create(to=message.to, from_=self.from_sms, body=message.body)
        return sent.sid

    async def send(self, message: PhoneMessage) -> PhoneSendResult:
        if not self.is_configured():
            return PhoneSendResult(success=False, error="Twilio not configured")

        try:
            sid = await run_in_threadpool(self._deliver, message)
        except TwilioException as e:
            error = getattr(e, "msg", None) or str(e)
            logger.error(f"Twilio {message.channel} to {message.to} failed: {error}")
            return PhoneSendResult(success=False, error=error)

        return PhoneSendResult(success=True, sid=sid)


class ConsolePhoneProvider(PhoneProvider):
    """Logs phone messages instead of sending them."""

    def is_configured(self) -> bool:
        return True

    async def send(self, message: PhoneMessage) -> PhoneSendResult:
        logger.info(f"PHONE (Console Mode) [{message.channel}] to {message.to}: {message.body}")
        return PhoneSendResult(success=True, sid="console-dev")


def get_phone_provider() -> PhoneProvider:
    twilio = TwilioProvider(
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=settings.TWILIO_AUTH_TOKEN,
        from_sms=settings.TWILIO_FROM_SMS,
        from_whatsapp=settings.TWILIO_FROM_WHATSAPP,
        from_voice=settings.TWILIO_FROM_VOICE,
    )
    if twilio.is_configured():
        return twilio
    return ConsolePhoneProvider()
