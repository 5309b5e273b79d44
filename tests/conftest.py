"""Test configuration and shared fixtures.

Provide isolated settings, a simulated upstream and client fixtures for the
sidecar test suite. Nothing here reads a `.env` file or touches the network.
"""
from datetime import timedelta
from typing import Callable, Generator, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from app.config import Settings, get_settings
from app.core.prober import UpstreamProber
from app.core.types import LivenessState
from app.main import create_app

UPSTREAM_URL = "http://localhost:9000/ready"

# ==============================================================================
# CONFIGURATION FIXTURES
# ==============================================================================


def make_settings(**overrides) -> Settings:
    """Build settings with a complete upstream, bypassing any `.env` file."""
    values = {
        "ENVIRONMENT": "development",
        "LOG_LEVEL": "debug",
        "UPSTREAM_PORT": 9000,
        "UPSTREAM_HEALTHCHECK_PATH": "/ready",
        "UPSTREAM_TIMEOUT": "1s",
        "TERMINATION_DELAY": "200ms",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def mock_settings() -> Settings:
    """Provide isolated test configuration without external dependencies."""
    return make_settings()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Keep the cached settings singleton from leaking between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ==============================================================================
# UPSTREAM SIMULATION
# ==============================================================================


class FakeUpstream:
    """In-process stand-in for the upstream health endpoint.

    Set `status_code` to choose the answer, `error` to make the call fail at
    the transport level, or `handler` to take over completely.
    """

    def __init__(self) -> None:
        self.status_code = 200
        self.error: Optional[Exception] = None
        self.handler: Optional[Callable[[httpx.Request], httpx.Response]] = None
        self.calls = 0

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.handler is not None:
            return self.handler(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, text="upstream says hi")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def prober(upstream: FakeUpstream) -> UpstreamProber:
    """Prober wired to the fake upstream, with a short deadline."""
    return UpstreamProber(
        url=UPSTREAM_URL,
        timeout=timedelta(milliseconds=250),
        transport=upstream.transport,
    )


@pytest.fixture
def liveness() -> LivenessState:
    return LivenessState()


@pytest.fixture
def client(
    mock_settings: Settings,
    liveness: LivenessState,
    prober: UpstreamProber,
) -> Generator[TestClient, None, None]:
    """Provide HTTP test client for an app wired to the fake upstream.

    Yields:
        TestClient: Client running the app lifespan.
    """
    app = create_app(mock_settings, liveness=liveness, prober=prober)
    with TestClient(app) as test_client:
        yield test_client
