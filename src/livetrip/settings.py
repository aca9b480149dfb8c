from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TrackingSettings(BaseSettings):
    """Cadence and failure thresholds for the location propagation loops."""

    sample_interval_seconds: float = Field(
        default=3.0,
        gt=0.0,
        le=60.0,
        description="Seconds between position samples on the driver device",
    )
    poll_interval_seconds: float = Field(
        default=3.0,
        gt=0.0,
        le=60.0,
        description="Seconds between latest-value reads on a viewer without push delivery",
    )
    revalidate_interval_seconds: float = Field(
        default=15.0,
        gt=0.0,
        le=600.0,
        description="Seconds between authorization re-checks for long-lived sessions",
    )
    max_consecutive_delivery_failures: int = Field(
        default=3,
        ge=1,
        le=100,
        description="Failed publishes in a row before the session reports connection lost",
    )
    position_ttl_seconds: int = Field(
        default=1800,
        ge=30,
        description="Lifetime of the latest position in the distribution point",
    )
    arrival_proximity_threshold_m: float = Field(
        default=100.0,
        ge=10.0,
        le=1000.0,
        description="Distance in meters at which the driver counts as arrived at the destination",
    )
    viewer_queue_size: int = Field(default=16, ge=2, le=1024)

    model_config = SettingsConfigDict(env_prefix="TRACKING_")

    @model_validator(mode="after")
    def validate_revalidation_cadence(self) -> "TrackingSettings":
        if self.revalidate_interval_seconds < self.sample_interval_seconds:
            raise ValueError(
                "TRACKING_REVALIDATE_INTERVAL_SECONDS must not be shorter than "
                "TRACKING_SAMPLE_INTERVAL_SECONDS"
            )
        return self


class RedisSettings(BaseSettings):
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: str = ""
    ssl: bool = False

    model_config = SettingsConfigDict(env_prefix="REDIS_")


class LogSettings(BaseSettings):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["text", "json"] = "text"
    environment: str = "development"

    model_config = SettingsConfigDict(env_prefix="LOG_")


class APISettings(BaseSettings):
    frontend_origin: str = "http://localhost:3000"
    driver_dashboard_path: str = "/driver/dashboard"
    trip_detail_path: str = "/trips/{trip_id}"

    model_config = SettingsConfigDict(env_prefix="API_")

    @field_validator("frontend_origin")
    @classmethod
    def validate_origin(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Frontend origin must start with http:// or https://")
        return v.rstrip("/")


class Settings(BaseSettings):
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    api: APISettings = Field(default_factory=APISettings)

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        case_sensitive=False,
    )


def get_settings() -> Settings:
    """Load and validate settings from environment variables."""
    return Settings()
