"""Defines the shared state and value types of the health-check sidecar.

This module provides the liveness state cell shared between the termination
watcher and the health endpoint, and the immutable Pydantic model describing
the classification of a single upstream probe.
"""

import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ═══════════════════════════════════════════════════════════════════════════
# BASE CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════

class CanonicalModel(BaseModel):
    """A base model providing shared configuration for all value types.

    Configuration:
        frozen: Prevents modification after creation.
        extra: Rejects unknown fields.
        str_strip_whitespace: Normalizes string inputs automatically.
    """
    model_config = ConfigDict(
        frozen=True,
        extra='forbid',
        str_strip_whitespace=True,
    )


# ═══════════════════════════════════════════════════════════════════════════
# LIVENESS
# ═══════════════════════════════════════════════════════════════════════════

class Liveness(str, Enum):
    """Process-wide liveness of the sidecar."""
    LIVE = "live"
    TERMINATING = "terminating"


class LivenessState:
    """Single-writer, multi-reader liveness cell.

    The only transition is ``LIVE -> TERMINATING``. It happens at most once per
    process lifetime and is never reset. Reads are safe from any thread, so the
    health endpoint may evaluate it from a worker thread while the termination
    watcher writes it from the event loop.

    Example:
        >>> state = LivenessState()
        >>> state.mark_terminating()
        True
        >>> state.mark_terminating()
        False
        >>> state.value
        <Liveness.TERMINATING: 'terminating'>
    """

    def __init__(self) -> None:
        self._terminating = threading.Event()
        self._lock = threading.Lock()
        self._terminated_at: Optional[datetime] = None

    @property
    def value(self) -> Liveness:
        if self._terminating.is_set():
            return Liveness.TERMINATING
        return Liveness.LIVE

    @property
    def is_terminating(self) -> bool:
        return self._terminating.is_set()

    @property
    def terminated_at(self) -> Optional[datetime]:
        """UTC time of the transition, or None while live."""
        return self._terminated_at

    def mark_terminating(self) -> bool:
        """Transition to ``TERMINATING``.

        Returns:
            True if this call performed the transition, False if the state was
            already terminating.
        """
        with self._lock:
            if self._terminating.is_set():
                return False
            self._terminated_at = datetime.now(timezone.utc)
            self._terminating.set()
            return True

    def __repr__(self) -> str:
        return f"LivenessState(value={self.value.value!r})"


# ═══════════════════════════════════════════════════════════════════════════
# UPSTREAM PROBE OUTCOME
# ═══════════════════════════════════════════════════════════════════════════

class ProbeStatus(str, Enum):
    """Classification of one upstream health probe."""
    HEALTHY = "healthy"
    UPSTREAM_UNREACHABLE = "upstream_unreachable"
    UPSTREAM_ERROR = "upstream_error"


class ProbeOutcome(CanonicalModel):
    """Represents the transient result of a single upstream probe.

    Created per request and consumed immediately to build the health response.

    Attributes:
        status: Classification of the probe.
        status_code: Upstream HTTP status, when a response was received.
        detail: Human-readable reason, mostly useful for unreachable upstreams.

    Raises:
        ValueError: If ``status_code`` is inconsistent with ``status``.

    Example:
        >>> ProbeOutcome.upstream_error(502).status_code
        502
    """
    status: ProbeStatus
    status_code: Optional[int] = Field(
        default=None,
        ge=100,
        le=999,
        description="HTTP status returned by the upstream, if any."
    )
    detail: Optional[str] = None

    @model_validator(mode='after')
    def validate_status_code(self) -> 'ProbeOutcome':
        """Ensure the status code matches the classification.

        Raises:
            ValueError: If an upstream error lacks a status code, if an
                unreachable upstream carries one, or if an error code is
                below 500.
        """
        if self.status is ProbeStatus.UPSTREAM_ERROR:
            if self.status_code is None:
                raise ValueError("UPSTREAM_ERROR requires a status_code")
            if self.status_code < 500:
                raise ValueError(
                    f"UPSTREAM_ERROR requires a 5xx status_code, got {self.status_code}"
                )
        if self.status is ProbeStatus.UPSTREAM_UNREACHABLE and self.status_code is not None:
            raise ValueError("UPSTREAM_UNREACHABLE cannot carry a status_code")
        return self

    @property
    def is_healthy(self) -> bool:
        return self.status is ProbeStatus.HEALTHY

    @classmethod
    def healthy(cls, status_code: Optional[int] = None) -> 'ProbeOutcome':
        return cls(status=ProbeStatus.HEALTHY, status_code=status_code)

    @classmethod
    def unreachable(cls, detail: Optional[str] = None) -> 'ProbeOutcome':
        return cls(status=ProbeStatus.UPSTREAM_UNREACHABLE, detail=detail)

    @classmethod
    def upstream_error(cls, status_code: int) -> 'ProbeOutcome':
        return cls(status=ProbeStatus.UPSTREAM_ERROR, status_code=status_code)
