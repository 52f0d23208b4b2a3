"""
Twilio SMS client.

Configuration is read from the environment on first use and cached on the
client instance. The client is constructed explicitly and handed to whatever
needs it (the notification router, the inbound SMS route).
"""

import os
import re
import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
TWILIO_TIMEOUT_SECONDS = 10.0

_E164_PATTERN = re.compile(r"^\+\d{10,15}$")


class SmsError(Exception):
    """Raised when an SMS cannot be sent (configuration or provider failure)."""


@dataclass(frozen=True)
class SmsConfig:
    account_sid: str
    auth_token: str
    from_number: str

    @classmethod
    def from_env(cls) -> "SmsConfig":
        """
        Build config from TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN / TWILIO_PHONE_NUMBER.

        Raises:
            SmsError: If any variable is missing
        """
        values = {
            "TWILIO_ACCOUNT_SID": os.getenv("TWILIO_ACCOUNT_SID"),
            "TWILIO_AUTH_TOKEN": os.getenv("TWILIO_AUTH_TOKEN"),
            "TWILIO_PHONE_NUMBER": os.getenv("TWILIO_PHONE_NUMBER"),
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise SmsError(
                "Twilio configuration is missing. Please set the following "
                f"environment variables: {', '.join(missing)}"
            )
        return cls(
            account_sid=values["TWILIO_ACCOUNT_SID"],
            auth_token=values["TWILIO_AUTH_TOKEN"],
            from_number=values["TWILIO_PHONE_NUMBER"],
        )


def normalize_to_e164(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a phone number to E.164, or return None if it can't be resolved.

    Accepts numbers already in E.164 form (10-15 digits), bare 10-digit
    numbers (assumed +1) and 11-digit numbers with a leading 1.

    >>> normalize_to_e164("5551234567")
    '+15551234567'
    >>> normalize_to_e164("123") is None
    True
    """
    if not phone:
        return None
    compact = re.sub(r"\s+", "", phone)
    if not compact:
        return None
    if _E164_PATTERN.match(compact):
        return compact
    if compact.startswith("+"):
        return None

    digits = re.sub(r"\D", "", compact)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return None


class SmsClient:
    """Thin async client for the Twilio Messages REST endpoint."""

    def __init__(self, config: Optional[SmsConfig] = None):
        self._config = config

    @property
    def config(self) -> SmsConfig:
        if self._config is None:
            self._config = SmsConfig.from_env()
        return self._config

    def is_configured(self) -> bool:
        try:
            self.config
        except SmsError:
            return False
        return True

    async def send(self, to: str, body: str, from_: Optional[str] = None) -> str:
        """
        Send an SMS.

        Args:
            to: Recipient number in E.164 format
            body: Message text
            from_: Sender override (defaults to the configured number)

        Returns:
            The Twilio message sid

        Raises:
            SmsError: On missing configuration, invalid number or provider error
        """
        config = self.config
        if not to or not _E164_PATTERN.match(to):
            raise SmsError(f"Phone number must be in E.164 format: {to}")

        data = {"To": to, "From": from_ or config.from_number, "Body": body}
        url = f"{TWILIO_API_BASE}/Accounts/{config.account_sid}/Messages.json"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    auth=(config.account_sid, config.auth_token),
                    data=data,
                    timeout=TWILIO_TIMEOUT_SECONDS,
                )
        except httpx.HTTPError as e:
            raise SmsError(f"Twilio request failed: {e}") from e

        if response.status_code in (200, 201):
            message_sid = response.json().get("sid")
            logger.info(f"SMS sent to {to} (SID: {message_sid})")
            return message_sid

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        error_message = error_data.get("message", "Unknown error")
        error_code = error_data.get("code")
        raise SmsError(
            f"[{error_code}] {error_message}" if error_code else error_message
        )


def compute_twilio_signature(auth_token: str, url: str, params: Dict[str, str]) -> str:
    """Compute the X-Twilio-Signature value for a form-encoded webhook request."""
    payload = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), payload.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def validate_twilio_signature(
    auth_token: str, signature: str, url: str, params: Dict[str, str]
) -> bool:
    expected = compute_twilio_signature(auth_token, url, params)
    return hmac.compare_digest(expected, signature)


_sms_client: Optional[SmsClient] = None


def get_sms_client() -> SmsClient:
    """FastAPI dependency returning the lazily created process SMS client."""
    global _sms_client
    if _sms_client is None:
        _sms_client = SmsClient()
    return _sms_client
