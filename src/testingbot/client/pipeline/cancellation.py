"""Stop the active runs when the user interrupts a poll."""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from typing import Callable, List, Optional, Tuple

import structlog

from testingbot.client.gateway import ServerGateway
from testingbot.client.pipeline.events import EventBus, ShutdownStarted
from testingbot.client.pipeline.poll import CancellationState
from testingbot.core.exceptions import CancellationError

logger = structlog.get_logger(__name__)


def supported_signals() -> Tuple[signal.Signals, ...]:
    """SIGINT everywhere, SIGTERM only where the OS delivers it."""
    signals = [signal.SIGINT]
    if sys.platform != "win32" and hasattr(signal, "SIGTERM"):
        signals.append(signal.SIGTERM)
    return tuple(signals)


def _force_exit(code: int) -> None:
    sys.stdout.flush()
    sys.stderr.flush()
    os._exit(code)


class CancellationController:
    """Turns interrupt signals into stop requests for the non-terminal runs.

    The first signal marks the invocation as shutting down and stops every
    active run concurrently; once every stop request has settled ``exit`` is
    called with a non-zero code. A second signal calls ``force_exit`` without
    waiting.
    """

    def __init__(
        self,
        gateway: ServerGateway,
        state: CancellationState,
        events: Optional[EventBus] = None,
        exit: Callable[[int], None] = sys.exit,
        force_exit: Callable[[int], None] = _force_exit,
    ) -> None:
        self.gateway = gateway
        self.state = state
        self.events = events or EventBus()
        self.app_id: Optional[int] = None
        self._exit = exit
        self._force_exit = force_exit
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed: List[signal.Signals] = []
        self._fallback_handlers: dict = {}
        self._shutdown_task: Optional[asyncio.Task] = None

    # ──────────────────────────────────────────────────────────────────────────
    # Signal installation
    # ──────────────────────────────────────────────────────────────────────────

    def arm(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Install the handlers. Only armed while a poll is in progress."""
        self._loop = loop or asyncio.get_running_loop()
        for sig in supported_signals():
            try:
                self._loop.add_signal_handler(sig, self.handle_signal)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                self._fallback_handlers[sig] = signal.signal(
                    sig,
                    lambda signum, frame: self._loop.call_soon_threadsafe(
                        self.handle_signal
                    ),
                )
            self._installed.append(sig)

    def disarm(self) -> None:
        """Restore default signal handling."""
        for sig in self._installed:
            if sig in self._fallback_handlers:
                signal.signal(sig, self._fallback_handlers.pop(sig))
            elif self._loop is not None:
                self._loop.remove_signal_handler(sig)
        self._installed = []

    # ──────────────────────────────────────────────────────────────────────────
    # Shutdown
    # ──────────────────────────────────────────────────────────────────────────

    def handle_signal(self) -> None:
        if self.state.is_shutting_down:
            logger.warning("Received second interrupt, forcing exit")
            self._force_exit(1)
            return

        self.state.is_shutting_down = True
        active = tuple(sorted(self.state.active_run_ids))
        self.events.emit(ShutdownStarted(active_run_ids=active))
        logger.warning(
            "Received interrupt, stopping active test runs", runs=len(active)
        )
        loop = self._loop or asyncio.get_event_loop()
        self._shutdown_task = loop.create_task(self._shutdown(active))

    async def _shutdown(self, run_ids: Tuple[int, ...]) -> None:
        await self.stop_active_runs(run_ids)
        self._exit(1)

    async def stop_active_runs(self, run_ids: Tuple[int, ...]) -> None:
        """Issue one stop request per run and wait for all of them to settle."""
        if self.app_id is None or not run_ids:
            return
        await asyncio.gather(*(self._stop(run_id) for run_id in run_ids))

    async def _stop(self, run_id: int) -> None:
        try:
            await self.gateway.stop_run(self.app_id, run_id)
            logger.info("Stopped test run", run_id=run_id)
        except Exception as exc:
            logger.error("Failed to stop test run", run_id=run_id, error=str(exc))

    async def wait_for_shutdown(self) -> None:
        """Used by the poll loop once it sees the shutdown flag.

        Raises:
            CancellationError: always, after the stop requests settled.
        """
        if self._shutdown_task is not None:
            await asyncio.shield(self._shutdown_task)
        raise CancellationError("Test run cancelled by user")
