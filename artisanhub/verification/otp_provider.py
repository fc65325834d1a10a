"""OTP delivery providers: a fixed-code development provider and Twilio Verify."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

import requests

from artisanhub.core.config import OtpConfig
from artisanhub.core.identifiers import mask_phone

LOGGER = logging.getLogger(__name__)

TWILIO_VERIFY_BASE_URL = "https://verify.twilio.com/v2/Services"


class CheckStatus(StrEnum):
    """Provider verdict for a submitted code."""

    APPROVED = "approved"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class ProviderReceipt:
    """Result of handing a code to the provider for delivery."""

    success: bool
    provider_ref: str = ""


class ProviderUnavailableError(Exception):
    """Raised when the provider cannot be reached or refuses the request."""


class OtpProvider(Protocol):
    """Delivery/check contract consumed by the OTP verifier."""

    def send(self, destination: str, code: str) -> ProviderReceipt:
        """Deliver ``code`` to ``destination``."""

    def check(self, destination: str, code: str) -> CheckStatus:
        """Ask the provider whether ``code`` is valid for ``destination``."""


class DevOtpProvider:
    """Development provider: no network, a fixed test code is always accepted."""

    def __init__(self, fixed_code: str = "123456") -> None:
        self.fixed_code = fixed_code
        self.sent: list[str] = []

    def send(self, destination: str, code: str) -> ProviderReceipt:
        self.sent.append(destination)
        LOGGER.info("dev_otp_sent to %s (test code accepted)", mask_phone(destination))
        return ProviderReceipt(success=True, provider_ref=f"dev_{int(time.time() * 1000)}")

    def check(self, destination: str, code: str) -> CheckStatus:
        return CheckStatus.APPROVED if code == self.fixed_code else CheckStatus.PENDING


class TwilioVerifyProvider:
    """Twilio Verify v2 client over plain HTTPS.

    Transient failures (connection errors, timeouts, 5xx) are retried once
    after ``backoff_seconds``; anything still failing raises
    ``ProviderUnavailableError``.
    """

    def __init__(
        self,
        *,
        account_sid: str,
        auth_token: str,
        service_sid: str,
        timeout_seconds: float = 5.0,
        backoff_seconds: float = 0.5,
        send_custom_code: bool = False,
        session: requests.Session | None = None,
    ) -> None:
        self._auth = (account_sid, auth_token)
        self._base_url = f"{TWILIO_VERIFY_BASE_URL}/{service_sid}"
        self._timeout = timeout_seconds
        self._backoff = backoff_seconds
        self._send_custom_code = send_custom_code
        self._http = session or requests.Session()

    def send(self, destination: str, code: str) -> ProviderReceipt:
        data = {"To": destination, "Channel": "sms"}
        if self._send_custom_code:
            data["CustomCode"] = code
        response = self._post("Verifications", data)
        if response.status_code >= 400:
            raise ProviderUnavailableError(
                f"Twilio rejected verification request ({response.status_code})"
            )
        body = self._json(response)
        return ProviderReceipt(success=True, provider_ref=str(body.get("sid") or ""))

    def check(self, destination: str, code: str) -> CheckStatus:
        response = self._post("VerificationCheck", {"To": destination, "Code": code})
        if response.status_code == 404:
            # Twilio drops verifications once approved, expired or exhausted.
            return CheckStatus.FAILED
        if response.status_code >= 400:
            raise ProviderUnavailableError(
                f"Twilio rejected verification check ({response.status_code})"
            )
        status = str(self._json(response).get("status") or "")
        try:
            return CheckStatus(status)
        except ValueError:
            return CheckStatus.FAILED

    def _post(self, endpoint: str, data: dict[str, str]) -> requests.Response:
        url = f"{self._base_url}/{endpoint}"
        last_error: Exception | None = None
        for attempt in range(2):
            if attempt:
                time.sleep(self._backoff)
            try:
                response = self._http.post(url, data=data, auth=self._auth, timeout=self._timeout)
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_error = exc
                LOGGER.warning("otp_provider_transient_error", exc_info=True)
                continue
            if response.status_code >= 500:
                last_error = ProviderUnavailableError(f"Twilio returned {response.status_code}")
                LOGGER.warning("otp_provider_server_error", extra={"status_code": response.status_code})
                continue
            return response
        raise ProviderUnavailableError("OTP provider unavailable") from last_error

    @staticmethod
    def _json(response: requests.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderUnavailableError("OTP provider returned invalid JSON") from exc
        return body if isinstance(body, dict) else {}


def build_otp_provider(config: OtpConfig) -> OtpProvider:
    """Pick the provider for the configured environment."""
    if config.use_dev_provider:
        LOGGER.info("otp_provider_dev_mode")
        return DevOtpProvider(fixed_code=config.dev_code)
    return TwilioVerifyProvider(
        account_sid=config.twilio_account_sid,
        auth_token=config.twilio_auth_token,
        service_sid=config.twilio_verify_service_sid,
        timeout_seconds=config.provider_timeout_seconds,
    )
