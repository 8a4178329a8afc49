from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
from typing import Any, ClassVar
import json
from pathlib import Path
import os


class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"

    # JWT configuration (provide a fallback for local development)
    SECRET_KEY: str = "fallback_secret_for_dev_only"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12
    # Driver sessions cover one working day
    DRIVER_TOKEN_EXPIRE_HOURS: int = 12
    # Customer booking-management links stay valid for a month
    BOOKING_TOKEN_EXPIRE_DAYS: int = 30

    # Database URL
    # Use an absolute path so running the app from different directories
    # (e.g., repo root or backend/) always resolves the same DB file.
    BASE_DIR: ClassVar[Path] = Path(__file__).resolve().parents[2]
    SQLALCHEMY_DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'pickup.db'}"
    # Insert default area rates, ladder tiers and item catalog when tables are empty
    SEED_REFERENCE_DATA: bool = True

    # Redis connection URL for shared counters
    REDIS_URL: str = "redis://localhost:6379/0"

    # Rate limiting. "memory" keeps counters in-process (single instance only);
    # "redis" shares them across instances.
    RATE_LIMIT_BACKEND: str = "memory"
    QUOTE_RATE_LIMIT: int = 30
    QUOTE_RATE_WINDOW: int = 60  # seconds
    BOOKING_RATE_LIMIT: int = 10
    BOOKING_RATE_WINDOW: int = 60  # seconds

    # Confirmed quotes the customer never answers are cancelled after this many days
    QUOTE_EXPIRY_DAYS: int = 7
    # Customers may edit a pending booking until this hour (KST) the day before pickup
    CUSTOMER_EDIT_CUTOFF_HOUR: int = 22

    # Dispatch batch caps
    DISPATCH_BATCH_LIMIT: int = 50
    DISPATCH_ROUTE_ORDER_LIMIT: int = 50
    BOOKINGS_ROUTE_ORDER_LIMIT: int = 100

    # Route optimization: "local" (haversine TSP) or "http" (external service)
    ROUTE_OPTIMIZER_BACKEND: str = "local"
    ROUTE_OPTIMIZER_URL: str = ""
    ROUTE_OPTIMIZER_API_KEY: str = ""
    ROUTE_OPTIMIZER_TIMEOUT: float = 5.0

    # SMS gateway
    SMS_API_BASE: str = "https://api.flarelane.com/v1"
    SMS_API_KEY: str = ""
    SMS_PROJECT_ID: str = ""
    SMS_TIMEOUT: float = 5.0
    BOOKING_MANAGE_URL: str = "https://coveringspot.vercel.app/booking/manage"

    # CORS origins
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    CORS_ALLOW_ALL: bool = False

    LOG_LEVEL: str = "INFO"

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

    @field_validator("RATE_LIMIT_BACKEND", "ROUTE_OPTIMIZER_BACKEND", mode="before")
    def normalize_backend(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("ROUTE_OPTIMIZER_URL", "SMS_API_BASE", mode="before")
    def strip_trailing_slash(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().rstrip("/")
        return v

    @model_validator(mode="after")
    def allow_all_if_requested(cls, values: "Settings") -> "Settings":
        if values.CORS_ALLOW_ALL:
            values.CORS_ORIGINS = ["*"]
        return values

    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=True,
    )


def load_settings() -> "Settings":
    return Settings(_env_file=os.getenv("ENV_FILE", str(Path(__file__).resolve().parents[3] / ".env")))


settings = load_settings()
