from __future__ import annotations

from pathlib import Path

from fastapi.routing import APIRoute

from artisanhub.verification.otp_provider import DevOtpProvider
from tests.mock_config import app_config
from web_api import APP_VERSION, create_app


def _app(tmp_path: Path):
    return create_app(app_config(), tmp_path, DevOtpProvider())


def test_health_endpoint_contract_function(tmp_path: Path) -> None:
    app = _app(tmp_path)
    route = next(
        (
            candidate
            for candidate in app.routes
            if isinstance(candidate, APIRoute) and candidate.path == "/api/health"
        ),
        None,
    )

    assert route is not None
    payload = route.endpoint()
    assert payload.model_dump() == {
        "success": True,
        "message": "ArtisanHub API is running",
        "version": APP_VERSION,
    }


def test_openapi_contains_auth_rate_limit_contract(tmp_path: Path) -> None:
    schema = _app(tmp_path).openapi()
    login = schema["paths"]["/api/auth/login"]["post"]

    assert login["responses"]["429"]["content"]["application/json"]["schema"][
        "$ref"
    ].endswith("ApiErrorResponse")


def test_openapi_contains_envelope_for_guarded_routes(tmp_path: Path) -> None:
    schema = _app(tmp_path).openapi()

    profile = schema["paths"]["/api/auth/profile"]["get"]
    assert profile["responses"]["200"]["content"]["application/json"]["schema"][
        "$ref"
    ].endswith("ApiResponse")
    assert profile["responses"]["403"]["content"]["application/json"]["schema"][
        "$ref"
    ].endswith("ApiErrorResponse")

    manual = schema["paths"]["/api/auth/admin/verifications/{userId}/manual-verify"]["patch"]
    assert manual["responses"]["409"]["content"]["application/json"]["schema"][
        "$ref"
    ].endswith("ApiErrorResponse")


def test_search_route_is_declared_before_user_lookup(tmp_path: Path) -> None:
    paths = [
        route.path
        for route in _app(tmp_path).routes
        if isinstance(route, APIRoute) and route.path.startswith("/api/users")
    ]

    assert paths.index("/api/users/search") < paths.index("/api/users/{userId}")
