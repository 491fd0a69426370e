"""
SMS Notification Service.

Sends the warehouse-arrival SMS to a parcel's receiver through the Twilio
REST API.  Sending is fire-and-forget: :meth:`SmsService.send_async` runs
the HTTP call on a short-lived daemon thread and only logs the outcome, so
a slow or failing gateway never blocks or undoes a status change.

The gateway is an injected collaborator (:class:`SmsGateway`); tests pass
a recording fake.
"""

from __future__ import annotations

import threading
from typing import Optional, Protocol

import requests

from parcelops.config import AppConfig
from parcelops.logger import StructuredLogger
from parcelops.services.base_service import BaseService


class SmsDeliveryError(Exception):
    """The SMS could not be handed to the gateway."""


class SmsGateway(Protocol):
    def send(self, to: str, body: str) -> str:
        """Deliver *body* to *to*; return the gateway message id.

        Raises:
            SmsDeliveryError: On missing credentials or a rejected request.
        """
        ...


class TwilioSmsGateway:
    """:class:`SmsGateway` over Twilio's ``Messages`` endpoint."""

    def __init__(self, config: AppConfig, session: Optional[requests.Session] = None) -> None:
        self._config = config
        self._session = session or requests.Session()

    def send(self, to: str, body: str) -> str:
        cfg = self._config
        if not cfg.sms_configured:
            raise SmsDeliveryError("Twilio credentials are not configured.")

        url = f"{cfg.TWILIO_API_BASE}/Accounts/{cfg.TWILIO_ACCOUNT_SID}/Messages.json"
        try:
            response = self._session.post(
                url,
                data={"To": to, "From": cfg.TWILIO_PHONE_NUMBER, "Body": body},
                auth=(cfg.TWILIO_ACCOUNT_SID, cfg.TWILIO_AUTH_TOKEN.get_secret_value()),
                timeout=cfg.SMS_TIMEOUT_S,
            )
            response.raise_for_status()
            sid = response.json().get("sid", "")
        except requests.exceptions.HTTPError as exc:
            raise SmsDeliveryError(
                f"Twilio rejected the message: {exc.response.status_code} {exc.response.text}"
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise SmsDeliveryError(f"Twilio request failed: {exc}") from exc
        except (ValueError, AttributeError) as exc:
            raise SmsDeliveryError(f"Unreadable Twilio response: {exc}") from exc

        return str(sid)


class SmsService(BaseService):
    """Dispatches SMS without blocking the caller."""

    def __init__(self, gateway: SmsGateway, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._gateway = gateway

    def send(self, to: str, body: str) -> Optional[str]:
        """Send synchronously.  Failures are logged and yield ``None``."""
        try:
            sid = self._gateway.send(to, body)
        except SmsDeliveryError as exc:
            self._logger.error("SMS to %s failed: %s", to, exc)
            return None
        self._logger.info("SMS sent to %s (sid=%s).", to, sid)
        return sid

    def send_async(self, to: str, body: str) -> threading.Thread:
        """Send on a daemon thread and return it (tests may ``join`` it)."""
        thread = threading.Thread(
            target=self._send_in_background, args=(to, body), name="SmsDispatch", daemon=True,
        )
        thread.start()
        return thread

    def _send_in_background(self, to: str, body: str) -> None:
        try:
            self.send(to, body)
        except Exception:
            self._logger.error("SMS dispatch to %s crashed.", to, exc_info=True)
