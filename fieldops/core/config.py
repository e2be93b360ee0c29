"""Configuration management for fieldops."""

from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="./data/fieldops.db", description="Path to the SQLite database file")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="production", description="Deployment environment name")

    # HTTP Server Configuration
    host: str = Field(default="0.0.0.0", description="Interface the API server binds to")  # noqa: S104
    port: int = Field(default=8000, description="Port the API server listens on")

    # Overdue Forwarding Configuration
    forwarding_timezone: str = Field(
        default="UTC", description="Timezone whose calendar day decides when a planned task is overdue"
    )
    forwarder_cron: str = Field(default="5 0 * * *", description="CRON expression for the overdue forwarder job")

    # Geofence Automation Configuration
    auto_start_on_arrival: bool = Field(
        default=True, description="Start a task automatically when the worker arrives at a gating location"
    )
    auto_complete_on_departure: bool = Field(
        default=True, description="Complete a task automatically when the worker leaves a gating location"
    )
    default_radius_meters: int = Field(default=100, description="Radius used when a custom location omits one")

    @field_validator("forwarder_cron")
    @classmethod
    def _validate_cron(cls, value: str) -> str:
        if not croniter.is_valid(value):
            msg = f"Invalid forwarder_cron expression: {value!r}"
            raise ValueError(msg)
        return value

    @field_validator("forwarding_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except ZoneInfoNotFoundError as e:
            msg = f"Unknown timezone: {value!r}"
            raise ValueError(msg) from e
        return value

    @property
    def tzinfo(self) -> ZoneInfo:
        """Timezone object for forwarding_timezone."""
        return ZoneInfo(self.forwarding_timezone)


# Application Constants
class Constants:
    """Application-wide constants."""

    # Geo
    EARTH_RADIUS_METERS: float = 6_371_000.0
    MIN_RADIUS_METERS: int = 1
    TYPICAL_MIN_RADIUS_METERS: int = 10
    TYPICAL_MAX_RADIUS_METERS: int = 1000

    # Route scoring
    ROUTE_DISTANCE_WEIGHT: float = 0.3
    ROUTE_PRIORITY_WEIGHT: float = 0.4
    ROUTE_REWARD_WEIGHT: float = 0.3
    ROUTE_SCORE_CEILING: float = 10.0
    ROUTE_REWARD_SCALE: float = 1000.0
    ROUTE_TRAVEL_MINUTES_PER_KM: float = 2.0
    ROUTE_BASE_STOP_MINUTES: int = 30
    ROUTE_MAX_COMPLEXITY_MINUTES: int = 30
    ROUTE_DESCRIPTION_CHARS_PER_MINUTE: int = 10

    # Scheduler job retries
    JOB_MAX_RETRIES: int = 3
    JOB_RETRY_BASE_DELAY_SECONDS: float = 2.0
    TRACKER_DEAD_LETTER_QUEUE_MAXLEN: int = 100

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100
    LIST_ALL_PAGE_SIZE: int = 500

    # HTTP Status Codes
    HTTP_OK: int = 200
    HTTP_NOT_FOUND: int = 404
    HTTP_CONFLICT: int = 409
    HTTP_UNPROCESSABLE_ENTITY: int = 422
    HTTP_INTERNAL_SERVER_ERROR: int = 500
    HTTP_SERVICE_UNAVAILABLE: int = 503

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
