"""Configuration management for the career portal core."""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application Configuration
    app_name: str = Field("Career Portal Core", description="Display name of the service")
    debug: bool = Field(False, description="Enable debug mode")
    log_level: str = Field("INFO", description="Logging level")

    # Eligibility rules
    organization_application_limit: int = Field(
        2, ge=1, description="Maximum non-rejected course applications per candidate per institution"
    )

    # Store client policy
    store_timeout_seconds: float = Field(10.0, gt=0, description="Timeout applied to every store call")
    counter_max_retries: int = Field(5, ge=1, description="Compare-and-swap attempts on opportunity counters")

    # Live views
    resubscribe_delay_seconds: float = Field(1.0, ge=0, description="Delay before re-subscribing after a listener error")

    # Server Configuration
    host: str = Field("0.0.0.0", description="Server host")
    port: int = Field(8000, description="Server port")
    reload: bool = Field(False, description="Enable auto-reload")
    allowed_origins: list[str] = Field(["*"], description="CORS allowed origins")
    allowed_hosts: Optional[list[str]] = Field(None, description="Trusted hosts")


# Global settings instance
settings = Settings()
