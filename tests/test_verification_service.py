from __future__ import annotations

import logging
from pathlib import Path

import pytest

from artisanhub.api.errors import ApiError, ApiErrorCode
from artisanhub.auth.models import Principal, Role, User, VerificationStatus
from artisanhub.auth.repository import UserRepository
from artisanhub.verification.otp_provider import DevOtpProvider
from artisanhub.verification.service import IdentityVerificationService
from artisanhub.verification.store import VerificationStore
from artisanhub.verification.verifier import OtpVerifier
from tests.mock_config import otp_config

PHONE = "+919876543210"
ADMIN = Principal(user_id="admin-1", role=Role.ADMIN)


def _setup(tmp_path: Path, role: Role = Role.ARTISAN, **user_fields) -> tuple[
    IdentityVerificationService, UserRepository, Principal
]:
    users = UserRepository(tmp_path)
    users.insert(
        User(
            user_id="u1",
            name="Asha Weaver",
            phone=PHONE,
            password_hash="x",
            role=role,
            **user_fields,
        )
    )
    verifier = OtpVerifier(VerificationStore(tmp_path / "state.db"), DevOtpProvider(), otp_config())
    service = IdentityVerificationService(users, verifier)
    return service, users, Principal(user_id="u1", role=role)


def _stored(users: UserRepository) -> User:
    user = users.get_by_id("u1")
    assert user is not None
    return user


def test_aadhaar_flow_marks_identity_and_phone_verified(tmp_path: Path) -> None:
    service, users, principal = _setup(tmp_path, role=Role.CUSTOMER)

    started = service.initiate_aadhaar(principal, "1234 5678 9012")
    assert started["maskedAadhaar"] == "XXXX XXXX 9012"
    assert _stored(users).identity_verification.status is VerificationStatus.PENDING

    with pytest.raises(ApiError) as exc_info:
        service.verify_aadhaar(principal, "000000")
    assert exc_info.value.error_code is ApiErrorCode.INVALID_CODE

    result = service.verify_aadhaar(principal, "123456")

    assert result["isIdentityVerified"] is True
    assert result["maskedAadhaar"] == "XXXX XXXX 9012"
    user = _stored(users)
    assert user.is_phone_verified is True
    assert user.identity_verification.status is VerificationStatus.VERIFIED
    assert user.identity_verification.method == "otp"


def test_aadhaar_verify_without_initiation(tmp_path: Path) -> None:
    service, _, principal = _setup(tmp_path)

    with pytest.raises(ApiError) as exc_info:
        service.verify_aadhaar(principal, "123456")

    assert exc_info.value.error_code is ApiErrorCode.NO_VERIFICATION_IN_PROGRESS
    assert "Aadhaar" in exc_info.value.message


def test_lockout_marks_verification_failed(tmp_path: Path) -> None:
    service, users, principal = _setup(tmp_path)
    service.initiate_aadhaar(principal, "123456789012")

    for _ in range(5):
        with pytest.raises(ApiError):
            service.verify_aadhaar(principal, "000000")
    with pytest.raises(ApiError) as exc_info:
        service.verify_aadhaar(principal, "123456")

    assert exc_info.value.error_code is ApiErrorCode.LOCKED
    assert _stored(users).identity_verification.status is VerificationStatus.FAILED


def test_initiate_when_already_verified_conflicts(tmp_path: Path) -> None:
    service, _, principal = _setup(tmp_path, is_phone_verified=True, is_identity_verified=True)

    with pytest.raises(ApiError) as exc_info:
        service.initiate_aadhaar(principal, "123456789012")

    assert exc_info.value.error_code is ApiErrorCode.CONFLICT


def test_status_for_customer_and_seller(tmp_path: Path) -> None:
    customer_service, _, customer = _setup(tmp_path / "c", role=Role.CUSTOMER)
    seller_service, _, seller = _setup(tmp_path / "s", role=Role.ARTISAN)

    customer_status = customer_service.status(customer)
    seller_status = seller_service.status(seller)

    assert customer_status["status"] == "not_required"
    assert customer_status["requiresVerification"] is False
    assert seller_status["status"] == "not_started"
    assert seller_status["requiresVerification"] is True
    assert seller_status["canSellProducts"] is False


def test_phone_otp_flow(tmp_path: Path) -> None:
    service, users, _ = _setup(tmp_path)

    sent = service.send_phone_otp(PHONE)
    assert sent["isPhoneVerified"] is False
    assert sent["maskedPhone"] == "XXXXXXXX3210"

    assert service.verify_phone_otp(PHONE, "123456") == {"isPhoneVerified": True}
    assert _stored(users).is_phone_verified is True
    assert service.send_phone_otp(PHONE)["isPhoneVerified"] is True


def test_phone_otp_for_unknown_number(tmp_path: Path) -> None:
    service, _, _ = _setup(tmp_path)

    with pytest.raises(ApiError) as exc_info:
        service.send_phone_otp("+919811111111")

    assert exc_info.value.error_code is ApiErrorCode.NOT_FOUND


def test_manual_verify_requires_verified_phone(tmp_path: Path) -> None:
    service, _, _ = _setup(tmp_path)

    with pytest.raises(ApiError) as exc_info:
        service.manual_verify(ADMIN, "u1", verified=True, notes="documents checked")

    assert exc_info.value.error_code is ApiErrorCode.VALIDATION_FAILED


def test_manual_verify_is_idempotent_and_audited(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    service, users, _ = _setup(tmp_path, is_phone_verified=True)

    with caplog.at_level(logging.INFO, logger="artisanhub.audit"):
        first = service.manual_verify(ADMIN, "u1", verified=True, notes=" documents checked ")
        version_after_first = _stored(users).version
        second = service.manual_verify(ADMIN, "u1", verified=True, notes="again")

    assert first["isIdentityVerified"] is True
    assert first["identityVerification"]["method"] == "manual"
    assert first["identityVerification"]["verifiedBy"] == "admin-1"
    assert first["identityVerification"]["notes"] == "documents checked"
    assert second["identityVerification"] == first["identityVerification"]
    assert _stored(users).version == version_after_first
    outcomes = [r.outcome for r in caplog.records if r.getMessage() == "manual_identity_override"]
    assert outcomes == ["applied", "unchanged"]


def test_manual_reject_marks_failed(tmp_path: Path) -> None:
    service, users, _ = _setup(tmp_path)

    result = service.manual_verify(ADMIN, "u1", verified=False, notes="blurry scan")

    assert result["isIdentityVerified"] is False
    assert _stored(users).identity_verification.status is VerificationStatus.FAILED


def test_pending_reviews_lists_unverified_sellers(tmp_path: Path) -> None:
    service, users, _ = _setup(tmp_path)
    users.insert(
        User(user_id="u2", name="Ravi", phone="+919800000002", password_hash="x", role=Role.CUSTOMER)
    )

    pending = service.pending_reviews()

    assert [item["userId"] for item in pending] == ["u1"]
    assert pending[0]["maskedPhone"] == "XXXXXXXX3210"
    assert pending[0]["identityVerification"]["status"] == "not_started"
