"""Phone and Aadhaar identity verification on top of the OTP verifier."""

from __future__ import annotations

import logging
from typing import Any

from artisanhub.api.errors import ApiError, ApiErrorCode
from artisanhub.auth.models import (
    SELLER_ROLES,
    IdentityVerification,
    Principal,
    Role,
    User,
    VerificationStatus,
)
from artisanhub.auth.repository import UserRepository
from artisanhub.auth.service import mutate_user, utc_now_iso
from artisanhub.core.identifiers import mask_phone
from artisanhub.security.pipeline import AUDIT_LOGGER
from artisanhub.verification.verifier import OtpVerifier, VerificationKind

LOGGER = logging.getLogger(__name__)

NOT_REQUIRED = "not_required"


class IdentityVerificationService:
    """Drive the verification state kept on the user record."""

    def __init__(self, users: UserRepository, verifier: OtpVerifier) -> None:
        """Initialize service dependencies."""
        self._users = users
        self._verifier = verifier

    def _user(self, user_id: str) -> User:
        user = self._users.get_by_id(user_id)
        if user is None:
            raise ApiError(ApiErrorCode.NOT_FOUND, "User not found")
        return user

    def _user_by_phone(self, phone: str) -> User:
        user = self._users.get_by_phone(phone)
        if user is None:
            raise ApiError(ApiErrorCode.NOT_FOUND, "No account is registered with this phone number")
        return user

    # Phone

    def send_phone_otp(self, phone: str) -> dict[str, Any]:
        user = self._user_by_phone(phone)
        if user.is_phone_verified:
            return {"maskedPhone": mask_phone(user.phone), "isPhoneVerified": True}
        challenge = self._verifier.initiate(user.user_id, VerificationKind.PHONE, phone)
        return {
            "transactionId": challenge.transaction_id,
            "maskedPhone": challenge.masked_identifier,
            "expiresIn": challenge.expires_in,
            "isPhoneVerified": False,
        }

    def verify_phone_otp(self, phone: str, otp: str) -> dict[str, Any]:
        user = self._user_by_phone(phone)
        self._verifier.verify(user.user_id, VerificationKind.PHONE, otp)
        saved = mutate_user(
            self._users,
            user.user_id,
            lambda current: None
            if current.is_phone_verified
            else current.model_copy(update={"is_phone_verified": True}),
        )
        LOGGER.info("phone_verified", extra={"user_id": saved.user_id})
        return {"isPhoneVerified": saved.is_phone_verified}

    # Aadhaar

    def initiate_aadhaar(self, principal: Principal, aadhaar_number: str) -> dict[str, Any]:
        """Send an Aadhaar OTP to the caller's registered phone."""
        user = self._user(principal.user_id)
        if user.is_identity_verified:
            raise ApiError(ApiErrorCode.CONFLICT, "Identity is already verified")

        challenge = self._verifier.initiate(
            user.user_id,
            VerificationKind.AADHAAR,
            aadhaar_number,
            destination=user.phone,
        )

        def apply(current: User) -> User:
            verification = current.identity_verification.model_copy(
                update={
                    "status": VerificationStatus.PENDING,
                    "transaction_id": challenge.transaction_id,
                    "masked_aadhaar": challenge.masked_identifier,
                    "method": "otp",
                }
            )
            return current.model_copy(update={"identity_verification": verification})

        mutate_user(self._users, user.user_id, apply)
        return {
            "transactionId": challenge.transaction_id,
            "maskedAadhaar": challenge.masked_identifier,
            "expiresIn": challenge.expires_in,
        }

    def verify_aadhaar(self, principal: Principal, otp: str) -> dict[str, Any]:
        """Complete the Aadhaar challenge; expiry and lockout mark it failed."""
        try:
            tx = self._verifier.verify(principal.user_id, VerificationKind.AADHAAR, otp)
        except ApiError as exc:
            if exc.error_code in (ApiErrorCode.EXPIRED, ApiErrorCode.LOCKED):
                self._mark_failed(principal.user_id)
            raise

        verified_at = utc_now_iso()

        def apply(current: User) -> User:
            verification = current.identity_verification.model_copy(
                update={
                    "status": VerificationStatus.VERIFIED,
                    "transaction_id": tx.transaction_id,
                    "masked_aadhaar": tx.identifier_masked,
                    "verified_at": verified_at,
                    "method": "otp",
                }
            )
            # The code went to the registered phone, so the phone is proven too.
            return current.model_copy(
                update={
                    "is_phone_verified": True,
                    "is_identity_verified": True,
                    "identity_verification": verification,
                }
            )

        saved = mutate_user(self._users, principal.user_id, apply)
        LOGGER.info("identity_verified", extra={"user_id": saved.user_id})
        return {
            "isIdentityVerified": saved.is_identity_verified,
            "maskedAadhaar": saved.identity_verification.masked_aadhaar,
            "verifiedAt": saved.identity_verification.verified_at,
        }

    def _mark_failed(self, user_id: str) -> None:
        def apply(current: User) -> User | None:
            if current.identity_verification.status is not VerificationStatus.PENDING:
                return None
            verification = current.identity_verification.model_copy(
                update={"status": VerificationStatus.FAILED}
            )
            return current.model_copy(update={"identity_verification": verification})

        mutate_user(self._users, user_id, apply)

    def status(self, principal: Principal) -> dict[str, Any]:
        user = self._user(principal.user_id)
        requires = user.role in SELLER_ROLES
        status = str(user.identity_verification.status)
        if not requires and user.identity_verification.status is VerificationStatus.NOT_STARTED:
            status = NOT_REQUIRED
        return {
            "status": status,
            "isVerified": user.is_identity_verified,
            "requiresVerification": requires,
            "verificationType": "aadhaar",
            "canSellProducts": requires and user.is_identity_verified,
            "maskedAadhaar": user.identity_verification.masked_aadhaar,
            "verifiedAt": user.identity_verification.verified_at,
        }

    @staticmethod
    def documents() -> dict[str, Any]:
        return {
            "verificationType": "aadhaar",
            "documentUploadSupported": False,
            "steps": [
                "Submit your 12-digit Aadhaar number",
                "Enter the OTP sent to your registered phone",
            ],
        }

    # Admin

    def pending_reviews(self) -> list[dict[str, Any]]:
        """Sellers not yet verified, plus anyone with a challenge in flight."""
        open_statuses = [
            VerificationStatus.NOT_STARTED,
            VerificationStatus.PENDING,
            VerificationStatus.FAILED,
        ]
        users = self._users.list_for_review(open_statuses, SELLER_ROLES)
        users += self._users.list_for_review([VerificationStatus.PENDING], [Role.CUSTOMER])
        return [
            {
                **user.summary(),
                "maskedPhone": mask_phone(user.phone),
                "isPhoneVerified": user.is_phone_verified,
                "identityVerification": user.identity_verification.model_dump(
                    by_alias=True, mode="json"
                ),
            }
            for user in users
        ]

    def manual_verify(
        self, admin: Principal, user_id: str, *, verified: bool, notes: str
    ) -> dict[str, Any]:
        """Admin override of identity verification; repeats are no-ops."""
        changed = False

        def apply(current: User) -> User | None:
            nonlocal changed
            changed = False
            if verified and not current.is_phone_verified:
                raise ApiError(
                    ApiErrorCode.VALIDATION_FAILED,
                    "Phone number must be verified before identity verification",
                )
            if verified and current.is_identity_verified:
                return None
            if not verified and current.identity_verification.status is VerificationStatus.FAILED:
                return None
            verification = IdentityVerification(
                status=VerificationStatus.VERIFIED if verified else VerificationStatus.FAILED,
                transaction_id=current.identity_verification.transaction_id,
                masked_aadhaar=current.identity_verification.masked_aadhaar,
                verified_at=utc_now_iso() if verified else "",
                method="manual",
                verified_by=admin.user_id,
                notes=notes.strip(),
            )
            changed = True
            return current.model_copy(
                update={"is_identity_verified": verified, "identity_verification": verification}
            )

        saved = mutate_user(self._users, user_id, apply)
        AUDIT_LOGGER.info(
            "manual_identity_override",
            extra={
                "actor": admin.user_id,
                "role": str(admin.role),
                "action": "verify",
                "resource_type": "verification",
                "resource_id": user_id,
                "outcome": "applied" if changed else "unchanged",
                "notes": notes.strip(),
            },
        )
        return {
            "userId": saved.user_id,
            "isIdentityVerified": saved.is_identity_verified,
            "identityVerification": saved.identity_verification.model_dump(
                by_alias=True, mode="json"
            ),
        }
