"""Termination watcher tests.

Drive the watcher with a manual trigger and a real (harmless) signal, and
check the liveness flip, the exact shutdown delay and the one-shot behavior.
"""
import asyncio
import signal
import time
from datetime import timedelta

import pytest

from app.core.termination import (
    ManualTerminationSource,
    SignalTerminationSource,
    TerminationWatcher,
)
from app.core.types import Liveness, LivenessState


class ShutdownRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self) -> None:
        self.calls.append(time.monotonic())


def make_watcher(delay: float):
    state = LivenessState()
    source = ManualTerminationSource()
    shutdown = ShutdownRecorder()
    watcher = TerminationWatcher(
        state=state,
        delay=timedelta(seconds=delay),
        on_shutdown=shutdown,
        source=source,
    )
    return watcher, state, source, shutdown


def test_stays_live_until_triggered():
    async def scenario():
        watcher, state, source, shutdown = make_watcher(delay=0)
        task = asyncio.create_task(watcher.run())
        await asyncio.sleep(0.05)

        assert state.value is Liveness.LIVE
        assert shutdown.calls == []

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())


def test_trigger_flips_state_then_shuts_down_after_delay():
    async def scenario():
        watcher, state, source, shutdown = make_watcher(delay=0.2)
        task = asyncio.create_task(watcher.run())
        await asyncio.sleep(0)

        triggered_at = time.monotonic()
        source.trigger("SIGTERM")
        await asyncio.sleep(0.01)

        assert state.is_terminating
        assert shutdown.calls == []
        assert not watcher.shutdown_requested

        await asyncio.wait_for(task, timeout=2)

        assert len(shutdown.calls) == 1
        assert shutdown.calls[0] - triggered_at >= 0.2
        assert watcher.shutdown_requested

    asyncio.run(scenario())


def test_zero_delay_shuts_down_almost_immediately():
    async def scenario():
        watcher, state, source, shutdown = make_watcher(delay=0)
        source.trigger("SIGINT")

        started = time.monotonic()
        await asyncio.wait_for(watcher.run(), timeout=1)

        assert state.is_terminating
        assert len(shutdown.calls) == 1
        assert shutdown.calls[0] - started < 0.1

    asyncio.run(scenario())


def test_repeated_triggers_do_not_shorten_or_repeat_shutdown():
    async def scenario():
        watcher, state, source, shutdown = make_watcher(delay=0.15)
        task = asyncio.create_task(watcher.run())

        source.trigger("SIGTERM")
        triggered_at = time.monotonic()
        await asyncio.sleep(0.05)
        source.trigger("SIGINT")
        await asyncio.wait_for(task, timeout=2)

        assert len(shutdown.calls) == 1
        assert shutdown.calls[0] - triggered_at >= 0.15
        assert await source.wait() == "SIGTERM"

    asyncio.run(scenario())


def test_already_terminating_state_still_ends_in_shutdown():
    async def scenario():
        watcher, state, source, shutdown = make_watcher(delay=0)
        state.mark_terminating()
        source.trigger()

        await asyncio.wait_for(watcher.run(), timeout=1)

        assert len(shutdown.calls) == 1

    asyncio.run(scenario())


def test_cancelling_during_delay_tears_the_timer_down():
    async def scenario():
        watcher, state, source, shutdown = make_watcher(delay=0.1)
        task = asyncio.create_task(watcher.run())
        source.trigger()
        await asyncio.sleep(0.01)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0.15)

        assert state.is_terminating
        assert shutdown.calls == []

    asyncio.run(scenario())


def test_signal_source_resolves_on_first_signal_and_ignores_the_rest():
    async def scenario():
        source = SignalTerminationSource(signals=(signal.SIGUSR1,))
        waiter = asyncio.create_task(source.wait())
        await asyncio.sleep(0)

        signal.raise_signal(signal.SIGUSR1)
        name = await asyncio.wait_for(waiter, timeout=1)

        # Still subscribed: a second signal must not reach the default handler.
        signal.raise_signal(signal.SIGUSR1)
        await asyncio.sleep(0.01)

        assert await source.wait() == name
        source.close()
        return name

    assert asyncio.run(scenario()) == "SIGUSR1"


def test_signal_source_close_before_wait_is_a_noop():
    SignalTerminationSource().close()
