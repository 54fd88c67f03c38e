from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
from typing import Any, ClassVar
from decimal import Decimal
import json
from pathlib import Path
import os


class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"

    # Tokens are issued by the hosted auth provider; we only verify them.
    AUTH_JWT_SECRET: str = "fallback_secret_for_dev_only"
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_AUDIENCE: str = "authenticated"

    # Database URL
    # Absolute path so running from the repo root or backend/ resolves the same file.
    BASE_DIR: ClassVar[Path] = Path(__file__).resolve().parents[2]
    SQLALCHEMY_DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'amplygigs.db'}"

    # Redis connection URL for caching and realtime fan-out
    REDIS_URL: str = "redis://localhost:6379/0"
    BOOKINGS_CACHE_TTL: int = 60

    # CORS origins
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    CORS_ALLOW_ALL: bool = False

    # Public site URL used for payment callbacks
    APP_URL: str = "http://localhost:3000"

    DEFAULT_CURRENCY: str = "NGN"

    # Fee schedule applied to every gig payment
    PLATFORM_FEE_RATE: Decimal = Decimal("0.10")
    VAT_RATE: Decimal = Decimal("0.075")

    # Wallet deposit bounds (major currency units)
    MIN_DEPOSIT: Decimal = Decimal("100")
    MAX_DEPOSIT: Decimal = Decimal("1000000")

    # Musician withdrawals: flat fee deducted from each payout
    MIN_WITHDRAWAL: Decimal = Decimal("1000")
    WITHDRAWAL_FEE: Decimal = Decimal("50")

    # Escrow auto-release
    ESCROW_AUTO_RELEASE_HOURS: int = 24
    ESCROW_AUTO_RELEASE_INTERVAL_SECONDS: int = 3600
    ENABLE_SCHEDULERS: bool = True
    # Shared secret for the externally-triggered release endpoint
    CRON_SECRET: str = ""

    # Live tracking
    TRACKING_POLL_INTERVAL_SECONDS: int = 10
    TRACKING_ARRIVAL_KM: float = 0.1
    TRACKING_NOTIFY_STEP_KM: float = 1.0
    TRACKING_STREAM_MAXSIZE: int = 32

    # Paystack
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"

    # Geocoding proxy
    GOOGLE_MAPS_API_KEY: str = ""

    # Admin allowlist (comma-separated emails) granted admin even without the profile flag
    ADMIN_EMAILS: str = ""

    LOG_LEVEL: str = "INFO"
    ENABLE_CONSOLE_TRACING: bool = False
    OTEL_EXCLUDE_WS: bool = True

    @field_validator("CORS_ORIGINS", mode="before")
    def split_origins(cls, v: Any) -> list[str]:
        """Parse comma-separated or JSON list of origins from environment."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                pass
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("ADMIN_EMAILS", "APP_URL", "PAYSTACK_BASE_URL", mode="before")
    def strip_whitespace(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("PLATFORM_FEE_RATE", "VAT_RATE")
    def rate_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v >= 1:
            raise ValueError("rate must be in [0, 1)")
        return v

    @model_validator(mode="after")
    def allow_all_if_requested(cls, values: "Settings") -> "Settings":
        if values.CORS_ALLOW_ALL:
            values.CORS_ORIGINS = ["*"]
        return values

    @model_validator(mode="after")
    def check_deposit_bounds(cls, values: "Settings") -> "Settings":
        if values.MIN_DEPOSIT > values.MAX_DEPOSIT:
            raise ValueError("MIN_DEPOSIT must not exceed MAX_DEPOSIT")
        return values

    model_config = SettingsConfigDict(extra="ignore", case_sensitive=True)


def _env_file() -> str:
    return os.getenv("ENV_FILE", str(Path(__file__).resolve().parents[3] / ".env"))


def load_settings() -> "Settings":
    return Settings(_env_file=_env_file())


settings = load_settings()


def admin_emails() -> set[str]:
    raw = (settings.ADMIN_EMAILS or "").strip()
    if not raw:
        return set()
    return {e.strip().lower() for e in raw.split(",") if e.strip()}


def _redis_url() -> str:
    env_url = os.getenv("REDIS_URL")
    if env_url:
        return env_url
    return getattr(settings, "REDIS_URL", "redis://localhost:6379/0")


REDIS_URL = _redis_url()
