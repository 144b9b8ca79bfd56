"""
Collector configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
The gateway password is only ever read from the environment (or a .env
file), never from a command-line flag, so it does not show up in process
listings.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class CollectorSettings(BaseSettings):
    """Gateway collector configuration.

    All values are loaded from environment variables. Required variables
    must be set; optional variables have sensible defaults.

    Attributes:
        gateway_host: Gateway IP address / hostname on the local LAN.
        gateway_password: Customer password used for the login call.
        poll_interval_s: Seconds between sampling ticks (default 5).
        request_timeout_s: Per-request HTTP timeout in seconds (default 10).
        statefile_path: Path of the JSON "current state" file.
        timeseries_path: Append-only TSV output path, ``-`` for stdout.
        log_level: Root logger level name.
    """

    gateway_host: str
    gateway_password: str
    poll_interval_s: float = 5.0
    request_timeout_s: float = 10.0
    statefile_path: str = "/data/state.json"
    timeseries_path: str = "/data/timeseries.tsv"
    log_level: str = "INFO"

    @field_validator(
        "gateway_host", "gateway_password", "statefile_path", "timeseries_path"
    )
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        """Reject empty or whitespace-only values."""
        if not v.strip():
            raise ValueError("value must not be empty")
        return v

    @field_validator("poll_interval_s")
    @classmethod
    def poll_interval_must_be_positive(cls, v: float) -> float:
        """Validate that the sampling period is strictly positive."""
        if v <= 0:
            raise ValueError("POLL_INTERVAL_S must be > 0")
        return v

    @field_validator("request_timeout_s")
    @classmethod
    def request_timeout_must_be_positive(cls, v: float) -> float:
        """Validate that the HTTP timeout is strictly positive."""
        if v <= 0:
            raise ValueError("REQUEST_TIMEOUT_S must be > 0")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        """Normalize the log level name and reject unknown levels."""
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}")
        return level

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
