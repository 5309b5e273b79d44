"""Application configuration management via pydantic-settings.

Centralize all configuration parameters for the Drainguard sidecar. Load settings
from environment variables and/or a `.env` file. Provide type validation, default
values for the listener, and mandatory validation of every upstream-related value.
"""

import math
import re
from datetime import timedelta
from functools import lru_cache
from typing import Any, Literal, Optional

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Go-style duration strings, e.g. "300ms", "1.5s", "1h30m".
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> timedelta:
    """Parse a duration value into a `timedelta`.

    Accepts `timedelta` instances, bare numbers (seconds), numeric strings
    (seconds) and Go-style duration strings composed of one or more
    ``<number><unit>`` parts.

    Args:
        value: Raw value coming from the environment or from code.

    Returns:
        The parsed, non-negative duration.

    Raises:
        ValueError: If the value is malformed or negative.
    """
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("duration must not be empty")
        try:
            seconds = float(text)
        except ValueError:
            seconds = _parse_go_duration(text)
    else:
        raise ValueError(f"unsupported duration value: {value!r}")

    if not math.isfinite(seconds):
        raise ValueError(f"duration must be finite: {value!r}")
    if seconds < 0:
        raise ValueError(f"duration must not be negative: {value!r}")
    try:
        return timedelta(seconds=seconds)
    except OverflowError:
        raise ValueError(f"duration out of range: {value!r}") from None


def _parse_go_duration(text: str) -> float:
    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return 0.0

    position = 0
    total = 0.0
    while position < len(text):
        match = _DURATION_PART.match(text, position)
        if match is None:
            raise ValueError(f"invalid duration: {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position == 0:
        raise ValueError(f"invalid duration: {text!r}")
    return sign * total


class Settings(BaseSettings):
    """Sidecar configuration settings.

    Attributes:
        PROJECT_NAME: Display name for the application.
        VERSION: Semantic version string.
        ENVIRONMENT: Deployment environment identifier.
        LOG_LEVEL: Minimum logging verbosity level.
        HOST: Interface the sidecar listens on.
        PORT: Port the sidecar listens on.
        HEALTHCHECK_PATH: Path serving the proxied health check.
        TERMINATION_DELAY: Time between the first termination signal and exit.
        SHUTDOWN_TIMEOUT: Optional bound on the server's graceful shutdown.
        UPSTREAM_HOST: Host of the co-located upstream process.
        UPSTREAM_PORT: Port of the upstream process (required).
        UPSTREAM_HEALTHCHECK_PATH: Upstream health path (required).
        UPSTREAM_TIMEOUT: Total deadline of one upstream probe (required).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # ==========================================================================
    # PROJECT METADATA
    # ==========================================================================
    PROJECT_NAME: str = "Drainguard"
    VERSION: str = "0.1.0"

    # ==========================================================================
    # ENVIRONMENT & LOGGING
    # ==========================================================================
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"
    LOG_LEVEL: Literal["debug", "info", "warning", "error", "critical"] = "info"
    LOGGING_NOISY_MODULES: list[str] = [
        "uvicorn.access",
        "uvicorn.error",
        "httpx",
        "httpcore",
        "asyncio",
    ]

    # ==========================================================================
    # LISTENER
    # ==========================================================================
    HOST: str = "0.0.0.0"
    PORT: int = Field(default=8080, ge=1, le=65535)
    HEALTHCHECK_PATH: str = "/healthz"
    TERMINATION_DELAY: timedelta = timedelta(seconds=120)
    SHUTDOWN_TIMEOUT: Optional[timedelta] = None

    # ==========================================================================
    # UPSTREAM
    # ==========================================================================
    UPSTREAM_HOST: str = "localhost"
    # No defaults: the sidecar refuses to start without a complete upstream.
    UPSTREAM_PORT: int = Field(ge=1, le=65535)
    UPSTREAM_HEALTHCHECK_PATH: str
    UPSTREAM_TIMEOUT: timedelta

    @field_validator("TERMINATION_DELAY", "UPSTREAM_TIMEOUT", mode="before")
    @classmethod
    def validate_duration(cls, v: Any) -> timedelta:
        """Parse Go-style or numeric durations.

        Raises:
            ValueError: If the duration is malformed or negative.
        """
        return parse_duration(v)

    @field_validator("SHUTDOWN_TIMEOUT", mode="before")
    @classmethod
    def validate_optional_duration(cls, v: Any) -> Optional[timedelta]:
        if v is None or v == "":
            return None
        return parse_duration(v)

    @field_validator("UPSTREAM_TIMEOUT")
    @classmethod
    def validate_upstream_timeout(cls, v: timedelta) -> timedelta:
        """Reject a zero probe deadline, which would fail every probe."""
        if v.total_seconds() <= 0:
            raise ValueError("UPSTREAM_TIMEOUT must be greater than zero")
        return v

    @field_validator("HEALTHCHECK_PATH", "UPSTREAM_HEALTHCHECK_PATH")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Require absolute URL paths.

        Raises:
            ValueError: If the path does not start with a slash.
        """
        v = v.strip()
        if not v.startswith("/"):
            raise ValueError(f"path must start with '/': {v!r}")
        return v

    @computed_field
    @property
    def UPSTREAM_HEALTH_URL(self) -> str:
        """Construct the upstream health check URL.

        Returns:
            The URL probed on every live health check.
        """
        return (
            f"http://{self.UPSTREAM_HOST}:{self.UPSTREAM_PORT}"
            f"{self.UPSTREAM_HEALTHCHECK_PATH}"
        )


# ==============================================================================
# DEPENDENCY INJECTION
# ==============================================================================


@lru_cache()
def get_settings() -> Settings:
    """Return a cached singleton instance of the application settings.

    Returns:
        The singleton Settings instance.

    Raises:
        pydantic.ValidationError: If a required upstream value is missing or
            any value is malformed.
    """
    return Settings()
