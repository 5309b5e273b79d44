"""Process entry point: serve the sidecar until the termination delay expires.

Load and validate the settings (a configuration error aborts before anything
binds), configure logging, then run uvicorn next to the termination watcher.
Uvicorn's own SIGINT/SIGTERM handling is disabled: the watcher owns those
signals and asks the server to exit once the delay has elapsed.
"""

import asyncio
import contextlib
import math
import sys
from typing import Iterator, Optional

import uvicorn
from pydantic import ValidationError

from app.config import Settings, get_settings
from app.core.logging_config import configure_logging, get_logger
from app.core.termination import (
    SignalTerminationSource,
    TerminationSource,
    TerminationWatcher,
)
from app.main import create_app

logger = get_logger(__name__)


class SidecarServer(uvicorn.Server):
    """Uvicorn server that leaves termination signals to the watcher."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def request_exit(self) -> None:
        """Ask the serve loop to stop and start graceful shutdown."""
        self.should_exit = True


def build_server(settings: Settings, app=None) -> SidecarServer:
    """Build the uvicorn server for the sidecar application.

    Args:
        settings: Validated settings.
        app: Application to serve; built from the settings when omitted.

    Returns:
        SidecarServer: A server ready to ``serve()``.
    """
    timeout = settings.SHUTDOWN_TIMEOUT
    config = uvicorn.Config(
        app if app is not None else create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
        timeout_graceful_shutdown=math.ceil(timeout.total_seconds()) if timeout is not None else None,
    )
    return SidecarServer(config)


async def serve(
    settings: Settings,
    source: Optional[TerminationSource] = None,
    server: Optional[SidecarServer] = None,
) -> None:
    """Serve until the termination watcher requests shutdown.

    Args:
        settings: Validated settings.
        source: Termination trigger; process signals when omitted.
        server: Server to run; built from the settings when omitted.
    """
    server = server if server is not None else build_server(settings)
    source = source if source is not None else SignalTerminationSource()
    watcher = TerminationWatcher(
        state=server.config.app.state.liveness,
        delay=settings.TERMINATION_DELAY,
        on_shutdown=server.request_exit,
        source=source,
    )

    watcher_task = asyncio.create_task(watcher.run(), name="termination-watcher")
    try:
        await server.serve()
    finally:
        if not watcher_task.done():
            watcher_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher_task
        source.close()

    if not watcher.shutdown_requested:
        logger.error("Server stopped before termination was requested")
        raise SystemExit(1)


def main() -> None:
    """Run the sidecar from the environment configuration."""
    try:
        settings = get_settings()
    except ValidationError as exc:
        logger.critical("Invalid configuration", errors=exc.errors(include_url=False))
        sys.exit(1)

    configure_logging(settings)
    asyncio.run(serve(settings))


if __name__ == "__main__":
    main()
