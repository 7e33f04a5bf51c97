"""Configuration settings loaded from environment variables."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    storage_backend: str = "memory"
    database_url: str = "postgresql+asyncpg://localhost:5432/fieldbook"

    # Redis window locks
    redis_url: str = "redis://localhost:6379/0"
    redis_lock_ttl_seconds: int = 5
    window_locks_enabled: bool = False

    # Booking rules
    business_hours_open: int = 8
    business_hours_close: int = 22
    exclusive_pending_bookings: bool = True

    # Staff (comma-separated user IDs)
    admin_ids: str = ""
    staff_ids: str = ""

    # Logging
    log_level: str = "INFO"

    # Application
    app_name: str = "fieldbook"
    environment: str = "development"

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Only the embedded and SQL stores are supported."""
        v = v.lower()
        if v not in ("memory", "sql"):
            raise ValueError("storage_backend must be 'memory' or 'sql'")
        return v

    @field_validator("business_hours_open")
    @classmethod
    def validate_business_hours_open(cls, v: int) -> int:
        """Opening hour must be an hour of day."""
        if not 0 <= v <= 23:
            raise ValueError("business_hours_open must be an hour of day")
        return v

    @field_validator("business_hours_close")
    @classmethod
    def validate_business_hours(cls, v: int, info) -> int:
        """Ensure the booking day is a valid hour range."""
        values = info.data
        if not 0 <= v <= 23:
            raise ValueError("business_hours_close must be an hour of day")
        if "business_hours_open" in values and v < values["business_hours_open"]:
            raise ValueError("business_hours_close must not precede business_hours_open")
        return v

    @property
    def admin_user_ids(self) -> list[str]:
        """Parse admin user IDs from comma-separated string."""
        return _split_ids(self.admin_ids)

    @property
    def staff_user_ids(self) -> list[str]:
        """Parse employee user IDs from comma-separated string."""
        return _split_ids(self.staff_ids)


def _split_ids(raw: str) -> list[str]:
    if not raw:
        return []
    return [uid.strip() for uid in raw.split(",") if uid.strip()]


def load_settings() -> Settings:
    """Load and validate settings from environment."""
    return Settings()
