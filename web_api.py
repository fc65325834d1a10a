from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from artisanhub.api.contracts import HealthResponse
from artisanhub.api.http_setup import register_exception_handlers, register_http_middleware
from artisanhub.auth.rate_limiter import LoginRateLimiter
from artisanhub.auth.repository import SessionRepository, UserRepository
from artisanhub.auth.router import create_auth_router
from artisanhub.auth.service import AuthService
from artisanhub.auth.tokens import TokenService
from artisanhub.core.config import AppConfig
from artisanhub.core.logging import setup_logging
from artisanhub.core.mongo import open_database
from artisanhub.core.mongo_migrations import apply_mongo_migrations
from artisanhub.security.guard import SecurityGuard
from artisanhub.security.pipeline import PipelineDeps
from artisanhub.security.policy import ResourceType
from artisanhub.security.threats import MaliciousInputDetector
from artisanhub.users.repository import ArtisanProfileRepository
from artisanhub.users.router import create_artisans_router, create_users_router
from artisanhub.users.service import ArtisanService
from artisanhub.verification.otp_provider import OtpProvider, build_otp_provider
from artisanhub.verification.router import create_verification_router
from artisanhub.verification.service import IdentityVerificationService
from artisanhub.verification.store import VerificationStore
from artisanhub.verification.verifier import OtpVerifier

load_dotenv()
APP_CONFIG = AppConfig.from_env()
setup_logging(APP_CONFIG.logging.level)
LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent
APP_VERSION = "1.0.0"


def create_app(
    config: AppConfig = APP_CONFIG,
    app_root: Path = APP_ROOT,
    otp_provider: OtpProvider | None = None,
) -> FastAPI:
    app = FastAPI(title="ArtisanHub Identity API", version=APP_VERSION)
    db = open_database(config.storage.mongo_uri, config.storage.mongo_db)
    applied = apply_mongo_migrations(db)
    if applied:
        LOGGER.info("mongo_migrations_applied %s", ",".join(applied))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Audit-Trail"],
    )
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)

    state_db_path = (app_root / config.storage.sqlite_path).resolve()
    users = UserRepository(app_root, db)
    tokens = TokenService(SessionRepository(app_root, db), config.auth)
    login_rate_limiter = LoginRateLimiter(
        database_path=state_db_path,
        max_attempts=config.security.login_rate_limit_max_attempts,
        window_seconds=config.security.login_rate_limit_window_seconds,
        lock_seconds=config.security.login_rate_limit_lock_seconds,
    )
    auth_service = AuthService(users, tokens, login_rate_limiter, config.auth)
    verifier = OtpVerifier(
        VerificationStore(state_db_path),
        otp_provider or build_otp_provider(config.otp),
        config.otp,
    )
    verification_service = IdentityVerificationService(users, verifier)
    artisan_service = ArtisanService(ArtisanProfileRepository(app_root, db), users)

    auth_service.bootstrap_admin_user()
    purged = tokens.purge_expired()
    if purged:
        LOGGER.info("expired_sessions_purged %d", purged)

    def user_owner(user_id: str) -> str | None:
        return user_id if users.get_by_id(user_id) is not None else None

    def identity_verified(user_id: str) -> bool:
        user = users.get_by_id(user_id)
        return bool(user and user.is_identity_verified)

    guard = SecurityGuard(
        PipelineDeps(
            authenticate=tokens.verify_access_token,
            detector=MaliciousInputDetector(),
            owner_lookups={
                ResourceType.USER: user_owner,
                ResourceType.VERIFICATION: user_owner,
                ResourceType.ARTISAN_PROFILE: artisan_service.owner_of,
            },
            identity_verified=identity_verified,
        )
    )

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(message="ArtisanHub API is running", version=APP_VERSION)

    app.include_router(create_auth_router(auth_service, verification_service, guard))
    app.include_router(create_verification_router(verification_service, guard))
    app.include_router(create_users_router(auth_service, guard))
    app.include_router(create_artisans_router(artisan_service, guard))
    return app


app = create_app()
