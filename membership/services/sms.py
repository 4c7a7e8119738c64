"""SMS gateway client for OTP delivery (BulkSMS-style HTTP GET API)."""

from __future__ import annotations

import logging

import httpx

from membership.config import settings
from membership.utils.clock import mask_phone

logger = logging.getLogger(__name__)


class SmsGatewayError(Exception):
    """The gateway rejected the message or could not be reached."""


class SmsGateway:
    """
    Sends OTP messages through the configured SMS provider.

    Delivery is best-effort. Failures raise SmsGatewayError for the
    delivery queue to log; nothing here retries.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(settings.SMS_API_URL and settings.SMS_USER and settings.SMS_KEY)

    def _local_number(self, phone: str) -> str:
        """Strip the configured country prefix; the provider expects national numbers."""
        prefix = settings.SMS_STRIP_PREFIX
        if prefix and phone.startswith(prefix):
            return phone[len(prefix):]
        return phone.lstrip("+")

    @staticmethod
    def otp_message(code: str) -> str:
        minutes = max(1, settings.OTP_TTL_SECONDS // 60)
        return f"Your OTP is {code}. Valid for {minutes} minutes. Please do not share this OTP."

    async def send_otp(self, phone: str, code: str) -> None:
        """
        Send an OTP by SMS.

        Args:
            phone: E.164 phone number
            code: Plaintext code

        Raises:
            SmsGatewayError: If the provider call fails
        """
        if not self.configured:
            logger.warning("SMS gateway not configured, OTP for %s not sent", mask_phone(phone))
            if settings.ENVIRONMENT == "development":
                logger.info("DEV MODE - OTP for %s: %s", phone, code)
            return

        params = {
            "user": settings.SMS_USER,
            "key": settings.SMS_KEY,
            "mobile": self._local_number(phone),
            "message": self.otp_message(code),
            "senderid": settings.SMS_SENDER_ID,
            "accusage": settings.SMS_ACCUSAGE,
            "entityid": settings.SMS_ENTITY_ID,
            "tempid": settings.SMS_TEMPLATE_ID,
        }

        try:
            if self._client is not None:
                response = await self._client.get(settings.SMS_API_URL, params=params)
            else:
                async with httpx.AsyncClient(timeout=settings.SMS_TIMEOUT_SECONDS) as client:
                    response = await client.get(settings.SMS_API_URL, params=params)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SmsGatewayError(f"SMS delivery to {mask_phone(phone)} failed: {e}") from e

        logger.info("OTP SMS sent to %s (status %d)", mask_phone(phone), response.status_code)
