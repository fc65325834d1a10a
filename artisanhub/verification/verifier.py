"""OTP challenge state machine: not_started -> pending -> verified | failed."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable

from artisanhub.api.errors import ApiError, ApiErrorCode
from artisanhub.core.config import OtpConfig
from artisanhub.core.identifiers import (
    canonicalize_aadhaar,
    is_valid_otp,
    is_valid_phone,
    mask_aadhaar,
    mask_phone,
    normalize_phone,
)
from artisanhub.core.security import digest_secret, digests_match, generate_numeric_code
from artisanhub.verification.otp_provider import (
    CheckStatus,
    OtpProvider,
    ProviderUnavailableError,
)
from artisanhub.verification.store import VerificationStore, VerificationTransaction

LOGGER = logging.getLogger(__name__)


class VerificationKind(StrEnum):
    """What a challenge proves control of."""

    PHONE = "phone"
    AADHAAR = "aadhaar"

    @property
    def label(self) -> str:
        return "Aadhaar" if self is VerificationKind.AADHAAR else "phone"


@dataclass(frozen=True)
class InitiatedChallenge:
    """Public result of starting a challenge."""

    transaction_id: str
    masked_identifier: str
    expires_in: int
    provider_ref: str


def _validation_failed(message: str) -> ApiError:
    return ApiError(
        ApiErrorCode.VALIDATION_FAILED,
        "Validation failed",
        data={"errors": [message]},
    )


class OtpVerifier:
    """Issue and check 6-digit codes with expiry, attempt caps and rate limits."""

    def __init__(
        self,
        store: VerificationStore,
        provider: OtpProvider,
        config: OtpConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._provider = provider
        self._config = config
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def _canonical(self, kind: VerificationKind, identifier: str) -> tuple[str, str]:
        if kind is VerificationKind.PHONE:
            phone = normalize_phone(identifier)
            if not is_valid_phone(phone):
                raise _validation_failed("Phone number must look like +919876543210")
            return phone, mask_phone(phone)
        try:
            aadhaar = canonicalize_aadhaar(identifier)
        except ValueError as exc:
            raise _validation_failed(str(exc)) from exc
        return aadhaar, mask_aadhaar(aadhaar)

    def initiate(
        self,
        user_id: str,
        kind: VerificationKind,
        identifier: str,
        destination: str | None = None,
    ) -> InitiatedChallenge:
        """Start a challenge; the code goes to ``destination`` (default: the identifier)."""
        canonical, masked = self._canonical(kind, identifier)
        target = destination or canonical
        now = self._now()

        if not self._store.reserve_initiation(
            user_id=user_id,
            kind=str(kind),
            now=now,
            window_seconds=self._config.rate_limit_window_seconds,
            limit=self._config.rate_limit_max,
        ):
            LOGGER.warning("otp_rate_limited", extra={"user_id": user_id, "action": str(kind)})
            raise ApiError(
                ApiErrorCode.RATE_LIMITED,
                "Too many verification attempts. Please try again later.",
            )

        code = generate_numeric_code(6)
        tx = VerificationTransaction(
            transaction_id=uuid.uuid4().hex,
            user_id=user_id,
            kind=str(kind),
            destination=target,
            identifier=digest_secret(canonical),
            identifier_masked=masked,
            code_hash=digest_secret(code),
            attempts=0,
            created_at=now,
            expires_at=now + self._config.ttl_seconds,
        )
        self._store.replace(tx)
        try:
            receipt = self._provider.send(target, code)
        except ProviderUnavailableError as exc:
            self._store.consume(tx.transaction_id)
            LOGGER.error("otp_send_failed", extra={"user_id": user_id})
            raise ApiError(
                ApiErrorCode.PROVIDER_UNAVAILABLE,
                "Verification service is temporarily unavailable",
            ) from exc
        if not receipt.success:
            self._store.consume(tx.transaction_id)
            raise ApiError(ApiErrorCode.PROVIDER_UNAVAILABLE, "Failed to send OTP")

        LOGGER.info("otp_initiated", extra={"user_id": user_id, "action": str(kind)})
        return InitiatedChallenge(
            transaction_id=tx.transaction_id,
            masked_identifier=masked,
            expires_in=self._config.ttl_seconds,
            provider_ref=receipt.provider_ref,
        )

    def pending(self, user_id: str, kind: VerificationKind) -> VerificationTransaction | None:
        return self._store.get(user_id, str(kind))

    def verify(self, user_id: str, kind: VerificationKind, code: str) -> VerificationTransaction:
        """Check ``code``; on success the challenge is consumed and returned."""
        if not is_valid_otp(code):
            raise _validation_failed("OTP must be 6 digits")

        tx = self._store.get(user_id, str(kind))
        if tx is None:
            raise ApiError(
                ApiErrorCode.NO_VERIFICATION_IN_PROGRESS,
                f"No {kind.label} verification in progress. Please initiate verification first.",
            )
        if tx.attempts >= self._config.max_attempts:
            raise ApiError(
                ApiErrorCode.LOCKED,
                "Too many incorrect codes. Please initiate verification again.",
            )
        if self._now() >= tx.expires_at:
            self._store.consume(tx.transaction_id)
            raise ApiError(ApiErrorCode.EXPIRED, "OTP has expired. Please request a new one.")

        attempts = self._store.reserve_attempt(tx.transaction_id, self._config.max_attempts)
        if attempts is None:
            if self._store.get(user_id, str(kind)) is None:
                raise ApiError(
                    ApiErrorCode.NO_VERIFICATION_IN_PROGRESS,
                    f"No {kind.label} verification in progress. Please initiate verification first.",
                )
            raise ApiError(
                ApiErrorCode.LOCKED,
                "Too many incorrect codes. Please initiate verification again.",
            )

        if not self._matches(tx, code):
            remaining = max(self._config.max_attempts - attempts, 0)
            raise ApiError(
                ApiErrorCode.INVALID_CODE,
                "OTP verification failed. Invalid code.",
                data={"attemptsRemaining": remaining},
            )

        if not self._store.consume(tx.transaction_id):
            raise ApiError(
                ApiErrorCode.NO_VERIFICATION_IN_PROGRESS,
                f"No {kind.label} verification in progress. Please initiate verification first.",
            )
        return tx

    def _matches(self, tx: VerificationTransaction, code: str) -> bool:
        if digests_match(code, tx.code_hash):
            return True
        try:
            status = self._provider.check(tx.destination, code)
        except ProviderUnavailableError as exc:
            raise ApiError(
                ApiErrorCode.PROVIDER_UNAVAILABLE,
                "Verification service is temporarily unavailable",
            ) from exc
        return status is CheckStatus.APPROVED
