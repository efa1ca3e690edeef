"""
Helios daemon configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded credentials.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings

from helios.src.client import DEFAULT_API_BASE_URL

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class HeliosSettings(BaseSettings):
    """Configuration for the telemetry daemon and dashboard API.

    Attributes:
        givenergy_api_key: Bearer credential for the cloud API.
        api_base_url: Cloud API base URL (must be HTTPS).
        poll_interval_s: Seconds between poll ticks (min 5).
        presets_path: JSON file holding the locally saved presets.
        health_path: Health JSON file written after every poll.
        dashboard_enabled: Serve the dashboard API alongside the poll loop.
        dashboard_host: Bind address of the dashboard API.
        dashboard_port: Port of the dashboard API.
        dashboard_token: Bearer token required on ``/v1`` routes; empty
            leaves them open.
        log_level: Root log level.
    """

    givenergy_api_key: str
    api_base_url: str = DEFAULT_API_BASE_URL
    poll_interval_s: int = 15
    presets_path: str = "/data/presets.json"
    health_path: str = "/data/health.json"
    dashboard_enabled: bool = True
    dashboard_host: str = "127.0.0.1"
    dashboard_port: int = 8080
    dashboard_token: str = ""
    log_level: str = "INFO"

    @field_validator("givenergy_api_key")
    @classmethod
    def api_key_must_not_be_blank(cls, v: str) -> str:
        """Reject empty or whitespace-only API keys."""
        v = v.strip()
        if not v:
            raise ValueError("GIVENERGY_API_KEY must not be empty")
        return v

    @field_validator("api_base_url")
    @classmethod
    def api_base_url_must_be_https(cls, v: str) -> str:
        """Validate that the API base uses HTTPS; the key travels in a header."""
        if not v.lower().startswith("https://"):
            raise ValueError(f"API_BASE_URL must use HTTPS (got: '{v[:30]}...')")
        return v.rstrip("/")

    @field_validator("poll_interval_s")
    @classmethod
    def poll_interval_must_be_reasonable(cls, v: int) -> int:
        """Minimum 5-second interval to stay within cloud API rate limits."""
        if v < 5:
            raise ValueError("POLL_INTERVAL_S must be >= 5")
        return v

    @field_validator("dashboard_port")
    @classmethod
    def dashboard_port_must_be_valid(cls, v: int) -> int:
        """Validate TCP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("DASHBOARD_PORT must be between 1 and 65535")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        """Normalise to upper case and reject unknown level names."""
        v = v.upper()
        if v not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}")
        return v

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
