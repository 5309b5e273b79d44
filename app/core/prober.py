"""Upstream health prober.

Issue a single HTTP GET against the upstream's own health endpoint and
classify the result into a `ProbeOutcome`. Probes are stateless: every call
opens a fresh client, and no retry is ever attempted.
"""

import asyncio
from datetime import timedelta
from typing import Optional

import httpx

from app.core.logging_config import get_logger
from app.core.types import ProbeOutcome

logger = get_logger(__name__)

# Status codes at or above this value mark the upstream as failing.
UPSTREAM_ERROR_THRESHOLD = 500


class UpstreamProber:
    """Probe an upstream health URL within a total deadline.

    Classification:
        - Transport error, timeout or redirect loop: ``UPSTREAM_UNREACHABLE``.
        - Status code >= 500: ``UPSTREAM_ERROR``.
        - Anything else, 4xx included: ``HEALTHY``.

    Args:
        url: Upstream health check URL.
        timeout: Total deadline of one probe.
        transport: Optional httpx transport, used to simulate the upstream.
    """

    def __init__(
        self,
        url: str,
        timeout: timedelta,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    @property
    def timeout_seconds(self) -> float:
        return self.timeout.total_seconds()

    async def probe(self) -> ProbeOutcome:
        """Perform one GET against the upstream and classify it.

        Returns:
            ProbeOutcome: The classification of this probe. Never raises for
            network or upstream failures.
        """
        logger.debug("Checking upstream health", url=self.url)
        try:
            response = await asyncio.wait_for(self._get(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Upstream health check timed out",
                url=self.url,
                timeout_seconds=self.timeout_seconds,
            )
            return ProbeOutcome.unreachable(
                detail=f"timed out after {self.timeout_seconds}s"
            )
        except httpx.RequestError as exc:
            logger.warning(
                "Failed to call upstream",
                url=self.url,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return ProbeOutcome.unreachable(detail=type(exc).__name__)

        if response.status_code >= UPSTREAM_ERROR_THRESHOLD:
            logger.warning("Upstream returned error", status_code=response.status_code)
            return ProbeOutcome.upstream_error(response.status_code)

        return ProbeOutcome.healthy(response.status_code)

    async def _get(self) -> httpx.Response:
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self.timeout_seconds,
            follow_redirects=True,
        ) as client:
            return await client.get(self.url)
