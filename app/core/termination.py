"""Termination watcher for graceful draining.

On the first termination trigger the watcher flips the shared liveness state
to ``TERMINATING`` (so the health endpoint starts failing and load balancers
drain traffic), then schedules a one-shot shutdown after the configured delay.
The delay is never shortened and, once started, never cancelled by requests.

Triggers come from an injected `TerminationSource`: the process signal
subscription in production, a manual trigger in tests.
"""

import asyncio
import signal
from datetime import timedelta
from typing import Callable, Iterable, Optional, Protocol

from app.core.logging_config import get_logger
from app.core.types import LivenessState

logger = get_logger(__name__)

TERMINATION_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class TerminationSource(Protocol):
    """A one-shot source of termination events."""

    async def wait(self) -> str:
        """Block until termination is requested and return the trigger name."""
        ...

    def close(self) -> None:
        """Release any subscription held by the source."""
        ...


class SignalTerminationSource:
    """Subscribe to process termination signals on the running event loop.

    The first signal resolves `wait`. Handlers stay installed afterwards so that
    repeated signals are logged and ignored instead of killing the process
    before the termination delay elapses.

    Args:
        signals: Signals to subscribe to. Defaults to SIGINT and SIGTERM.
    """

    def __init__(self, signals: Iterable[signal.Signals] = TERMINATION_SIGNALS) -> None:
        self.signals = tuple(signals)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._received: Optional[asyncio.Future[str]] = None

    def _on_signal(self, sig: signal.Signals) -> None:
        assert self._received is not None
        if self._received.done():
            logger.info("Already terminating, ignoring signal", signal=sig.name)
            return
        self._received.set_result(sig.name)

    async def wait(self) -> str:
        if self._received is None:
            self._loop = asyncio.get_running_loop()
            self._received = self._loop.create_future()
            for sig in self.signals:
                self._loop.add_signal_handler(sig, self._on_signal, sig)
        return await asyncio.shield(self._received)

    def close(self) -> None:
        if self._loop is None:
            return
        for sig in self.signals:
            self._loop.remove_signal_handler(sig)
        self._loop = None


class ManualTerminationSource:
    """Termination source triggered programmatically.

    Example:
        >>> source = ManualTerminationSource()
        >>> source.trigger("drain")
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    def trigger(self, reason: str = "manual") -> None:
        """Request termination. Only the first reason is kept."""
        if self._reason is None:
            self._reason = reason
        self._event.set()

    async def wait(self) -> str:
        await self._event.wait()
        assert self._reason is not None
        return self._reason

    def close(self) -> None:
        pass


class TerminationWatcher:
    """Drive the ``LIVE -> TERMINATING -> exit`` sequence.

    Args:
        state: Shared liveness cell. The watcher is its only writer.
        delay: Time between the first trigger and the shutdown callback.
        on_shutdown: Called once when the delay expires.
        source: Where termination triggers come from.
    """

    def __init__(
        self,
        state: LivenessState,
        delay: timedelta,
        on_shutdown: Callable[[], None],
        source: TerminationSource,
    ) -> None:
        self.state = state
        self.delay = delay
        self._on_shutdown = on_shutdown
        self._source = source
        self._timer: Optional[asyncio.TimerHandle] = None
        self.shutdown_requested = False

    async def run(self) -> None:
        """Wait for a trigger, start draining, and request shutdown after the delay.

        Runs exactly once. Cancelling the task (only done when the server has
        already exited on its own) tears the pending timer down.
        """
        reason = await self._source.wait()
        logger.info("Caught termination signal", signal=reason)

        if not self.state.mark_terminating():
            # Someone else already drained; the sequence must still end in exit.
            logger.warning("Liveness state was already terminating")
        logger.info("Will return unhealthy responses")

        loop = asyncio.get_running_loop()
        expired: asyncio.Future[None] = loop.create_future()
        delay_seconds = self.delay.total_seconds()
        logger.info("Terminating after delay", delay_seconds=delay_seconds)
        self._timer = loop.call_later(delay_seconds, _resolve, expired)

        try:
            await expired
        except asyncio.CancelledError:
            self._timer.cancel()
            raise

        logger.info("Termination delay expired, shutting down")
        self.shutdown_requested = True
        self._on_shutdown()


def _resolve(future: "asyncio.Future[None]") -> None:
    if not future.done():
        future.set_result(None)
