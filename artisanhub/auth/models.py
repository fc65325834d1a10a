"""Pydantic models for the identity domain."""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from artisanhub.core.identifiers import (
    is_valid_otp,
    is_valid_phone,
    is_valid_pin_code,
    normalize_phone,
)

_PASSWORD_RULES = (
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"[0-9]"), "a digit"),
    (re.compile(r"[^A-Za-z0-9]"), "a special character"),
)


class Role(StrEnum):
    """Marketplace roles; fixed for the lifetime of a user."""

    CUSTOMER = "customer"
    ARTISAN = "artisan"
    DISTRIBUTOR = "distributor"
    ADMIN = "admin"


SELF_REGISTRATION_ROLES = frozenset({Role.CUSTOMER, Role.ARTISAN, Role.DISTRIBUTOR})
SELLER_ROLES = frozenset({Role.ARTISAN, Role.DISTRIBUTOR})


class VerificationStatus(StrEnum):
    """Identity verification state."""

    NOT_STARTED = "not_started"
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters long")
    missing = [label for pattern, label in _PASSWORD_RULES if not pattern.search(value)]
    if missing:
        raise ValueError("Password must contain " + ", ".join(missing))
    return value


def _check_phone(value: str) -> str:
    phone = normalize_phone(value)
    if not is_valid_phone(phone):
        raise ValueError("Phone number must look like +919876543210")
    return phone


class Address(CamelModel):
    """Postal address stored on the user record."""

    address_id: str
    house_no: str
    street: str
    city: str
    district: str
    pin_code: str
    is_default: bool = False


class IdentityVerification(CamelModel):
    """Aadhaar identity verification summary kept on the user."""

    status: VerificationStatus = VerificationStatus.NOT_STARTED
    transaction_id: str = ""
    masked_aadhaar: str = ""
    verified_at: str = ""
    method: str = ""
    verified_by: str = ""
    notes: str = ""


class User(BaseModel):
    """Persisted user identity record."""

    user_id: str
    name: str
    phone: str
    password_hash: str
    role: Role
    is_phone_verified: bool = False
    is_identity_verified: bool = False
    identity_verification: IdentityVerification = Field(default_factory=IdentityVerification)
    addresses: list[Address] = Field(default_factory=list)
    version: int = 0
    created_at: str = ""
    updated_at: str = ""

    def default_address(self) -> Address | None:
        return next((addr for addr in self.addresses if addr.is_default), None)

    def profile(self) -> dict[str, Any]:
        """Return the camelCase view exposed to the owning user."""
        return {
            "userId": self.user_id,
            "name": self.name,
            "phone": self.phone,
            "role": str(self.role),
            "isPhoneVerified": self.is_phone_verified,
            "isIdentityVerified": self.is_identity_verified,
            "identityVerification": self.identity_verification.model_dump(
                by_alias=True, mode="json"
            ),
            "addresses": [addr.model_dump(by_alias=True) for addr in self.addresses],
            "createdAt": self.created_at,
        }

    def summary(self) -> dict[str, Any]:
        """Return the public view visible to other users."""
        return {
            "userId": self.user_id,
            "name": self.name,
            "role": str(self.role),
            "isIdentityVerified": self.is_identity_verified,
        }


class SessionRecord(BaseModel):
    """Refresh-token session persisted separately from the user."""

    session_id: str
    user_id: str
    token_hash: str
    issued_at: int
    expires_at: int
    device_info: str = ""
    revoked: bool = False


class Principal(BaseModel):
    """Authenticated caller derived from a verified access token."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: Role
    session_id: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


class TokenPair(BaseModel):
    """Access/refresh token pair issued for one session."""

    access_token: str
    refresh_token: str
    session_id: str
    token_type: str = "bearer"
    expires_in: int

    def as_payload(self) -> dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "tokenType": self.token_type,
            "expiresIn": self.expires_in,
        }


class RegisterRequest(CamelModel):
    """Self-service registration payload."""

    name: str = Field(min_length=2, max_length=80)
    phone: str
    password: str
    role: Role = Role.CUSTOMER

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str) -> str:
        return _check_phone(value)

    @field_validator("password")
    @classmethod
    def _password(cls, value: str) -> str:
        return _check_password_strength(value)

    @field_validator("role")
    @classmethod
    def _role(cls, value: Role) -> Role:
        if value not in SELF_REGISTRATION_ROLES:
            raise ValueError("Role must be customer, artisan or distributor")
        return value


class LoginRequest(CamelModel):
    """Login request payload."""

    phone: str
    password: str = Field(min_length=1)

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str) -> str:
        return normalize_phone(value)


class RefreshRequest(CamelModel):
    """Refresh request payload."""

    refresh_token: str = Field(min_length=1)


class ChangePasswordRequest(CamelModel):
    """Password change payload."""

    current_password: str = Field(min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def _password(cls, value: str) -> str:
        return _check_password_strength(value)


class AddressRequest(CamelModel):
    """Address create/update payload."""

    house_no: str = Field(min_length=1, max_length=40)
    street: str = Field(min_length=1, max_length=120)
    city: str = Field(min_length=1, max_length=80)
    district: str = Field(min_length=1, max_length=80)
    pin_code: str
    is_default: bool = False

    @field_validator("pin_code")
    @classmethod
    def _pin_code(cls, value: str) -> str:
        if not is_valid_pin_code(value):
            raise ValueError("PIN code must be 6 digits")
        return value


class UserUpdateRequest(CamelModel):
    """Self-service profile update; role and phone are not accepted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    name: str = Field(min_length=2, max_length=80)


class SendOtpRequest(CamelModel):
    """Phone OTP request payload."""

    phone: str

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str) -> str:
        return _check_phone(value)


class VerifyOtpRequest(CamelModel):
    """Phone OTP verification payload."""

    phone: str
    otp: str

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str) -> str:
        return _check_phone(value)

    @field_validator("otp")
    @classmethod
    def _otp(cls, value: str) -> str:
        if not is_valid_otp(value):
            raise ValueError("OTP must be 6 digits")
        return value


class AadhaarInitiateRequest(CamelModel):
    """Aadhaar verification start payload."""

    aadhaar_number: str


class AadhaarVerifyRequest(CamelModel):
    """Aadhaar OTP verification payload."""

    otp: str

    @field_validator("otp")
    @classmethod
    def _otp(cls, value: str) -> str:
        if not is_valid_otp(value):
            raise ValueError("OTP must be 6 digits")
        return value


class ManualVerifyRequest(CamelModel):
    """Admin override payload; a note is mandatory."""

    verified: bool = True
    notes: str = Field(min_length=1, max_length=500)
