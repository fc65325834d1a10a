"""Normalization, validation and masking of phone and Aadhaar identifiers."""

from __future__ import annotations

import re

DEFAULT_COUNTRY_PREFIX = "+91"

_PHONE_RE = re.compile(r"\+[1-9][0-9]{9,14}")
_LOCAL_PHONE_RE = re.compile(r"[0-9]{10}")
_AADHAAR_RE = re.compile(r"[0-9]{12}|[0-9]{4} [0-9]{4} [0-9]{4}")
_PIN_CODE_RE = re.compile(r"[1-9][0-9]{5}")
_OTP_RE = re.compile(r"[0-9]{6}")


def normalize_phone(phone: str) -> str:
    """Return E.164-like form; bare 10-digit numbers get the default prefix."""
    value = (phone or "").strip().replace(" ", "")
    if _LOCAL_PHONE_RE.fullmatch(value):
        return DEFAULT_COUNTRY_PREFIX + value
    return value


def is_valid_phone(phone: str) -> bool:
    return bool(_PHONE_RE.fullmatch(phone or ""))


def mask_phone(phone: str) -> str:
    """Keep the last four digits of a phone number visible."""
    digits = (phone or "").lstrip("+")
    if len(digits) <= 4:
        return digits
    return "X" * (len(digits) - 4) + digits[-4:]


def canonicalize_aadhaar(aadhaar_number: str) -> str:
    """Validate an Aadhaar number and return its 12-digit canonical form.

    Accepts ``dddddddddddd`` or ``dddd dddd dddd``. Numbers made of a single
    repeated digit are rejected. Raises ``ValueError`` on malformed input.
    """
    value = (aadhaar_number or "").strip()
    if not _AADHAAR_RE.fullmatch(value):
        raise ValueError("Aadhaar number must be 12 digits, optionally grouped as XXXX XXXX XXXX")
    digits = value.replace(" ", "")
    if len(set(digits)) == 1:
        raise ValueError("Aadhaar number cannot repeat a single digit")
    return digits


def mask_aadhaar(canonical: str) -> str:
    return f"XXXX XXXX {canonical[-4:]}"


def is_valid_pin_code(pin_code: str) -> bool:
    return bool(_PIN_CODE_RE.fullmatch(pin_code or ""))


def is_valid_otp(code: str) -> bool:
    return bool(_OTP_RE.fullmatch(code or ""))
