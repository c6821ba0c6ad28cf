"""
Application settings for the Beacon weather alert engine.
Uses Pydantic for validation and environment variable loading.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    environment: str = Field(default="development", description="development, staging, or production")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Emit JSON logs instead of console output")
    debug_weather: bool = Field(default=False, description="Verbose logging for the weather poller")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="HTTP server port")

    # NWS API settings
    nws_api_base_url: str = Field(default="https://api.weather.gov", description="NWS API base URL")
    nws_api_user_agent: str = Field(
        default="BeaconEmergencyApp/1.0 (emergency-contact@beacon.example)",
        description="Identifying, contactable User-Agent for NWS API requests"
    )
    nws_api_timeout: float = Field(default=15.0, description="Alerts request timeout in seconds")
    nws_points_timeout: float = Field(default=10.0, description="Point lookup timeout in seconds")
    nws_api_retry_count: int = Field(default=3, ge=1, description="Attempts per alert fetch")
    nws_retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Base delay for exponential backoff between alert fetch attempts"
    )

    # Alert cache
    alert_cache_ttl_seconds: float = Field(default=30.0, ge=0, description="Per-location alert cache TTL")

    # Adaptive polling
    poll_interval_critical_seconds: float = Field(default=60.0, gt=0, description="Interval with critical alerts")
    poll_interval_severe_seconds: float = Field(default=180.0, gt=0, description="Interval with severe alerts")
    poll_interval_moderate_seconds: float = Field(default=600.0, gt=0, description="Interval with moderate alerts")
    poll_interval_normal_seconds: float = Field(default=900.0, gt=0, description="Interval with no alerts")
    escalation_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Delay before the immediate re-fetch after escalating to severe/critical"
    )
    poll_max_retries: int = Field(default=3, ge=0, description="Cycle retries before reporting a service error")
    poll_backoff_base_seconds: float = Field(default=5.0, ge=0, description="Base delay for cycle retry backoff")
    poll_backoff_max_seconds: float = Field(default=30.0, ge=0, description="Maximum cycle retry backoff")

    # Classification
    imminent_threshold_seconds: float = Field(
        default=3600.0,
        description="Alerts with onset within this window are imminent"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return upper_v

    @property
    def poll_intervals(self) -> dict[str, float]:
        """Poll interval in seconds keyed by poll mode value."""
        return {
            "critical": self.poll_interval_critical_seconds,
            "severe": self.poll_interval_severe_seconds,
            "moderate": self.poll_interval_moderate_seconds,
            "normal": self.poll_interval_normal_seconds,
        }

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
