from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest
import requests

from artisanhub.verification.otp_provider import (
    CheckStatus,
    DevOtpProvider,
    ProviderUnavailableError,
    TwilioVerifyProvider,
    build_otp_provider,
)
from tests.mock_config import otp_config


@dataclass
class _Response:
    status_code: int
    payload: Any = None

    def json(self) -> Any:
        if self.payload is None:
            raise ValueError("no json")
        return self.payload


@dataclass
class _Session:
    """Replays queued responses; exceptions in the queue are raised."""

    queue: list[Any]
    posts: list[dict[str, Any]] = field(default_factory=list)

    def post(self, url: str, **kwargs: Any) -> _Response:
        self.posts.append({"url": url, **kwargs})
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _provider(session: _Session, **overrides: Any) -> TwilioVerifyProvider:
    values: dict[str, Any] = {
        "account_sid": "AC123",
        "auth_token": "token",
        "service_sid": "VA123",
        "backoff_seconds": 0,
        "session": session,
    }
    values.update(overrides)
    return TwilioVerifyProvider(**values)


def test_send_posts_verification_request() -> None:
    session = _Session([_Response(201, {"sid": "VE1", "status": "pending"})])

    receipt = _provider(session).send("+919876543210", "123456")

    assert receipt.success is True
    assert receipt.provider_ref == "VE1"
    post = session.posts[0]
    assert post["url"].endswith("/VA123/Verifications")
    assert post["data"] == {"To": "+919876543210", "Channel": "sms"}
    assert post["auth"] == ("AC123", "token")


def test_send_can_forward_custom_code() -> None:
    session = _Session([_Response(201, {"sid": "VE1"})])

    _provider(session, send_custom_code=True).send("+919876543210", "654321")

    assert session.posts[0]["data"]["CustomCode"] == "654321"


def test_transient_error_is_retried_once() -> None:
    session = _Session([requests.ConnectionError("reset"), _Response(200, {"status": "approved"})])

    assert _provider(session).check("+919876543210", "123456") is CheckStatus.APPROVED
    assert len(session.posts) == 2


def test_repeated_server_errors_raise_unavailable() -> None:
    session = _Session([_Response(503), _Response(502)])

    with pytest.raises(ProviderUnavailableError):
        _provider(session).send("+919876543210", "123456")


def test_client_error_on_send_raises_unavailable() -> None:
    session = _Session([_Response(400, {"message": "bad number"})])

    with pytest.raises(ProviderUnavailableError):
        _provider(session).send("+910000000000", "123456")


def test_missing_verification_check_is_failed() -> None:
    session = _Session([_Response(404, {"code": 20404})])

    assert _provider(session).check("+919876543210", "123456") is CheckStatus.FAILED


def test_unknown_status_maps_to_failed() -> None:
    session = _Session([_Response(200, {"status": "canceled"})])

    assert _provider(session).check("+919876543210", "123456") is CheckStatus.FAILED


def test_dev_provider_accepts_only_fixed_code() -> None:
    provider = DevOtpProvider(fixed_code="111111")

    assert provider.send("+919876543210", "999999").success is True
    assert provider.check("+919876543210", "111111") is CheckStatus.APPROVED
    assert provider.check("+919876543210", "999999") is CheckStatus.PENDING


def test_build_provider_falls_back_to_dev_without_credentials() -> None:
    assert isinstance(build_otp_provider(otp_config(provider="twilio")), DevOtpProvider)
    twilio = build_otp_provider(
        otp_config(provider="twilio", twilio_account_sid="AC1", twilio_auth_token="t")
    )
    assert isinstance(twilio, TwilioVerifyProvider)
