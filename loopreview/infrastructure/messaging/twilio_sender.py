"""
Twilio SMS Sender
=================

Sends SMS through the Twilio REST API with plain `requests`.

    POST {api_url}/Accounts/{account_sid}/Messages.json
    Auth: HTTP Basic (account_sid, auth_token)
    Body (form): To, From, Body

On a non-2xx response Twilio returns JSON with a human readable "message";
that text is kept verbatim on the TransportError.
"""

import logging
from typing import Optional

import requests

from ...domain.errors import TransportError
from ..config import SMSSettings
from .channel_sender import OutboundSms, SmsSender

logger = logging.getLogger(__name__)

PROVIDER = "twilio"


class TwilioSmsSender(SmsSender):
    """
    SMS transport over the Twilio Messages API.

    USAGE:
        sender = TwilioSmsSender(settings.sms)
        sid = sender.send(OutboundSms(from_number="+15550001111", to="+15551234567", body="Hi"))
    """

    def __init__(self, settings: SMSSettings, session: Optional[requests.Session] = None):
        self._settings = settings
        self._session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        s = self._settings
        return bool(s.account_sid and s.auth_token)

    def send(self, message: OutboundSms) -> str:
        if not self.is_configured:
            raise TransportError(
                "SMS gateway is not configured (TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN missing)",
                provider=PROVIDER,
            )

        from_number = message.from_number or self._settings.from_number
        if not from_number:
            raise TransportError("No SMS sender number configured", provider=PROVIDER)

        url = f"{self._settings.api_url}/Accounts/{self._settings.account_sid}/Messages.json"

        try:
            response = self._session.post(
                url,
                auth=(self._settings.account_sid, self._settings.auth_token),
                data={"To": message.to, "From": from_number, "Body": message.body},
                timeout=self._settings.timeout_seconds,
            )
        except requests.Timeout as e:
            raise TransportError(
                f"SMS gateway timed out after {self._settings.timeout_seconds}s",
                provider=PROVIDER,
            ) from e
        except requests.RequestException as e:
            raise TransportError(f"SMS gateway request failed: {e}", provider=PROVIDER) from e

        body = self._json_or_empty(response)

        if not response.ok:
            error = body.get("message") or f"HTTP {response.status_code}"
            raise TransportError(error, provider=PROVIDER)

        sid = body.get("sid", "")
        logger.info(f"SMS sent to {message.to} ({sid})")
        return sid

    def close(self) -> None:
        self._session.close()

    @staticmethod
    def _json_or_empty(response: requests.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
