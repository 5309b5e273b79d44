"""Health endpoint handler.

Expose the proxied health check: the shared liveness state is evaluated first
and short-circuits to ``503 terminating`` without any I/O; otherwise the
upstream is probed once and its classification mapped to a plain-text response.
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import PlainTextResponse

from app.core.logging_config import get_logger
from app.core.prober import UpstreamProber
from app.core.types import LivenessState, ProbeOutcome, ProbeStatus

logger = get_logger(__name__)

TERMINATING_BODY = "terminating"
HEALTHY_BODY = "OK"
UNREACHABLE_BODY = "upstream service is not available"
UPSTREAM_ERROR_BODY = "upstream service is returning error"

_OUTCOME_RESPONSES: dict[ProbeStatus, tuple[int, str]] = {
    ProbeStatus.HEALTHY: (status.HTTP_200_OK, HEALTHY_BODY),
    ProbeStatus.UPSTREAM_UNREACHABLE: (status.HTTP_503_SERVICE_UNAVAILABLE, UNREACHABLE_BODY),
    ProbeStatus.UPSTREAM_ERROR: (status.HTTP_503_SERVICE_UNAVAILABLE, UPSTREAM_ERROR_BODY),
}


# ==============================================================================
# DEPENDENCIES
# ==============================================================================


def get_liveness_state(request: Request) -> LivenessState:
    """Return the liveness cell shared with the termination watcher."""
    return request.app.state.liveness


def get_upstream_prober(request: Request) -> UpstreamProber:
    return request.app.state.prober


# ==============================================================================
# HANDLER
# ==============================================================================


def outcome_to_response(outcome: ProbeOutcome) -> PlainTextResponse:
    """Translate a probe classification into the health response."""
    status_code, body = _OUTCOME_RESPONSES[outcome.status]
    return PlainTextResponse(body, status_code=status_code)


async def upstream_health(
    liveness: LivenessState = Depends(get_liveness_state),
    prober: UpstreamProber = Depends(get_upstream_prober),
) -> PlainTextResponse:
    """Report the upstream's health, or unhealthy while terminating.

    Returns:
        PlainTextResponse: ``200 OK`` when the upstream answers below 500,
        ``503`` otherwise.
    """
    if liveness.is_terminating:
        logger.info("Health check skipped, terminating", outcome=TERMINATING_BODY)
        return PlainTextResponse(
            TERMINATING_BODY, status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )

    outcome = await prober.probe()
    logger.info(
        "Upstream health checked",
        url=prober.url,
        outcome=outcome.status.value,
        upstream_status=outcome.status_code,
    )
    return outcome_to_response(outcome)


def build_health_router(path: str) -> APIRouter:
    """Build the router serving the proxied health check at `path`.

    Args:
        path: Configured health check path.

    Returns:
        APIRouter: Router with a single GET route.
    """
    router = APIRouter(tags=["health"])
    router.add_api_route(
        path,
        upstream_health,
        methods=["GET"],
        response_class=PlainTextResponse,
        name="upstream_health",
    )
    return router
