"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

MIN_REFRESH_TTL_SECONDS = 7 * 24 * 60 * 60
MAX_REFRESH_TTL_SECONDS = 30 * 24 * 60 * 60


@dataclass(frozen=True)
class AuthConfig:
    """Authentication-related configuration."""

    secret_key: str
    access_token_ttl_seconds: int
    refresh_token_ttl_seconds: int
    issuer: str
    admin_phone: str
    admin_password: str
    admin_name: str = "Platform Admin"


@dataclass(frozen=True)
class OtpConfig:
    """OTP delivery and verification policy."""

    provider: str
    dev_code: str
    ttl_seconds: int
    max_attempts: int
    rate_limit_max: int
    rate_limit_window_seconds: int
    provider_timeout_seconds: float
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_verify_service_sid: str = ""

    @property
    def use_dev_provider(self) -> bool:
        """Return whether the fixed-code development provider should be used."""
        if self.provider == "dev":
            return True
        return not (self.twilio_account_sid and self.twilio_auth_token)


@dataclass(frozen=True)
class StorageConfig:
    """Persistence backends for documents and runtime state."""

    sqlite_path: str
    mongo_uri: str
    mongo_db: str


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int
    login_rate_limit_max_attempts: int
    login_rate_limit_window_seconds: int
    login_rate_limit_lock_seconds: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    auth: AuthConfig
    otp: OtpConfig
    storage: StorageConfig
    logging: LoggingConfig
    security: SecurityConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        secret_key = (
            os.getenv("AUTH_SECRET_KEY", "").strip() or "dev-insecure-secret-change-me"
        )
        access_ttl = int(os.getenv("AUTH_ACCESS_TOKEN_TTL_SECONDS", "900"))
        refresh_ttl = int(os.getenv("AUTH_REFRESH_TOKEN_TTL_SECONDS", "604800"))
        refresh_ttl = min(max(refresh_ttl, MIN_REFRESH_TTL_SECONDS), MAX_REFRESH_TTL_SECONDS)
        issuer = os.getenv("AUTH_ISSUER", "artisanhub").strip() or "artisanhub"
        admin_phone = os.getenv("AUTH_ADMIN_PHONE", "+919000000000").strip()
        admin_password = os.getenv("AUTH_ADMIN_PASSWORD", "Admin@12345").strip()
        admin_name = os.getenv("AUTH_ADMIN_NAME", "Platform Admin").strip()

        otp_provider = os.getenv("OTP_PROVIDER", "dev").strip().lower() or "dev"
        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:5173,http://127.0.0.1:5173",
            ).split(",")
            if origin.strip()
        ]

        return AppConfig(
            auth=AuthConfig(
                secret_key=secret_key,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                issuer=issuer,
                admin_phone=admin_phone,
                admin_password=admin_password,
                admin_name=admin_name or "Platform Admin",
            ),
            otp=OtpConfig(
                provider=otp_provider,
                dev_code=os.getenv("OTP_DEV_CODE", "123456").strip() or "123456",
                ttl_seconds=int(os.getenv("OTP_TTL_SECONDS", "600")),
                max_attempts=int(os.getenv("OTP_MAX_ATTEMPTS", "5")),
                rate_limit_max=int(os.getenv("OTP_RATE_LIMIT_MAX", "3")),
                rate_limit_window_seconds=int(
                    os.getenv("OTP_RATE_LIMIT_WINDOW_SECONDS", "600")
                ),
                provider_timeout_seconds=float(
                    os.getenv("OTP_PROVIDER_TIMEOUT_SECONDS", "5")
                ),
                twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID", "").strip(),
                twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN", "").strip(),
                twilio_verify_service_sid=os.getenv(
                    "TWILIO_VERIFY_SERVICE_SID", ""
                ).strip(),
            ),
            storage=StorageConfig(
                sqlite_path=(
                    os.getenv("STATE_SQLITE_PATH", "runtime/app_state.db").strip()
                    or "runtime/app_state.db"
                ),
                mongo_uri=os.getenv("MONGODB_URI", "").strip(),
                mongo_db=os.getenv("MONGODB_DB", "artisanhub").strip() or "artisanhub",
            ),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=int(
                    os.getenv("REQUEST_MAX_BYTES", str(1 * 1024 * 1024))
                ),
                login_rate_limit_max_attempts=int(
                    os.getenv("LOGIN_RATE_LIMIT_MAX_ATTEMPTS", "5")
                ),
                login_rate_limit_window_seconds=int(
                    os.getenv("LOGIN_RATE_LIMIT_WINDOW_SECONDS", "300")
                ),
                login_rate_limit_lock_seconds=int(
                    os.getenv("LOGIN_RATE_LIMIT_LOCK_SECONDS", "600")
                ),
            ),
        )
