"""FastAPI application factory for the Drainguard health-check sidecar.

Build the FastAPI application, register the correlation middleware, the
global exception handler and the health routes, and wire the shared liveness
state and upstream prober onto ``app.state`` where route dependencies and the
termination watcher pick them up.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.api.health import build_health_router
from app.api.middleware import REQUEST_ID_HEADER, RequestCorrelationMiddleware
from app.config import Settings
from app.core.logging_config import get_logger
from app.core.prober import UpstreamProber
from app.core.types import LivenessState

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Log the sidecar's startup and shutdown.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control returns to the application after startup completes.
    """
    settings: Settings = app.state.settings
    logger.info(
        "Drainguard sidecar startup",
        env=settings.ENVIRONMENT,
        health_path=settings.HEALTHCHECK_PATH,
        upstream=settings.UPSTREAM_HEALTH_URL,
        termination_delay_seconds=settings.TERMINATION_DELAY.total_seconds(),
    )

    yield

    logger.info(
        "Drainguard sidecar shutdown",
        liveness=app.state.liveness.value.value,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Convert an unexpected fault while serving one request into a 500.

    The failure stays isolated to that request: other in-flight requests and
    the termination watcher are unaffected.
    """
    logger.error(
        "Unhandled exception occurred",
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal Server Error",
            "request_id": request.headers.get(REQUEST_ID_HEADER),
        },
    )


async def liveness_probe() -> dict[str, str]:
    """Report that the sidecar process itself is alive.

    Unlike the proxied health check this never fails while draining, so an
    orchestrator liveness probe does not restart a pod that is shutting down.
    """
    return {"status": "alive"}


def create_app(
    settings: Settings,
    liveness: Optional[LivenessState] = None,
    prober: Optional[UpstreamProber] = None,
) -> FastAPI:
    """Build the sidecar application.

    Args:
        settings: Validated settings.
        liveness: Shared liveness cell; a fresh one is created when omitted.
        prober: Upstream prober; built from the settings when omitted.

    Returns:
        FastAPI: The configured application.
    """
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="Health-check sidecar with graceful draining on termination",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.liveness = liveness if liveness is not None else LivenessState()
    app.state.prober = prober if prober is not None else UpstreamProber(
        url=settings.UPSTREAM_HEALTH_URL,
        timeout=settings.UPSTREAM_TIMEOUT,
    )

    app.add_middleware(RequestCorrelationMiddleware)
    app.add_exception_handler(Exception, global_exception_handler)

    # The configured path wins if it collides with the sidecar's own probe.
    app.include_router(build_health_router(settings.HEALTHCHECK_PATH))
    app.add_api_route(
        "/health/live",
        liveness_probe,
        methods=["GET"],
        status_code=status.HTTP_200_OK,
        include_in_schema=False,
    )
    return app
