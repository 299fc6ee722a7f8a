"""Polling state machines for a submitted run set.

``PollSession`` follows the aggregate status of every run until the server
reports completion. ``AssetSync`` waits for one finished run's artifacts to
become downloadable.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, Set

import structlog

from testingbot.client.gateway import ServerGateway
from testingbot.client.models import RunDetails, RunSet
from testingbot.client.pipeline.events import (
    EventBus,
    PollTick,
    RunFinished,
    RunTransition,
)
from testingbot.core.configuration import TestingBotConfig
from testingbot.core.exceptions import ArtifactError, PollingTimeoutError

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


# ──────────────────────────────────────────────────────────────────────────────
# Configuration and State
# ──────────────────────────────────────────────────────────────────────────────


@dataclass
class PollConfig:
    """Global polling knobs.

    Attributes:
        interval: seconds between status requests.
        max_attempts: aggregate poll ceiling (720 x 5s = 1 hour).
        artifact_sync_max_attempts: asset sync ceiling per run (60 x 5s = 5 minutes).
    """

    interval: float = 5.0
    max_attempts: int = 720
    artifact_sync_max_attempts: int = 60

    @classmethod
    def from_defaults(cls, config: Optional[TestingBotConfig] = None) -> "PollConfig":
        config = config or TestingBotConfig()
        return cls(
            interval=config.get_float("polling", "interval"),
            max_attempts=config.get_int("polling", "max_attempts"),
            artifact_sync_max_attempts=config.get_int(
                "polling", "artifact_sync_max_attempts"
            ),
        )


@dataclass
class CancellationState:
    """Shared between the poll loop and the signal handler.

    Process lifetime; the process exits after a shutdown so it is never reset.
    """

    is_shutting_down: bool = False
    active_run_ids: Set[int] = field(default_factory=set)


@dataclass
class PollState:
    """Lives for one PollSession."""

    attempts: int = 0
    start_time: float = field(default_factory=time.monotonic)
    previous_status: Dict[int, str] = field(default_factory=dict)
    finished: Set[int] = field(default_factory=set)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time


# ──────────────────────────────────────────────────────────────────────────────
# PollSession
# ──────────────────────────────────────────────────────────────────────────────


class PollSession:
    """Poll the aggregate status of a run set until it completes.

    Runs move WAITING -> READY -> DONE | FAILED. Every response replaces the
    run set wholesale; transitions are diffed against the previous response
    and terminal transitions are announced exactly once.
    """

    def __init__(
        self,
        gateway: ServerGateway,
        app_id: int,
        events: EventBus,
        config: Optional[PollConfig] = None,
        cancellation: Optional[CancellationState] = None,
        on_shutdown: Optional[Callable[[], Awaitable[None]]] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.app_id = app_id
        self.events = events
        self.config = config or PollConfig()
        self.cancellation = cancellation or CancellationState()
        self.on_shutdown = on_shutdown
        self._sleep = sleep
        self.state = PollState()
        self.last_run_set: Optional[RunSet] = None

    async def run(self) -> RunSet:
        """Poll until the server reports ``completed``.

        Raises:
            PollingTimeoutError: ``completed`` was not seen within max_attempts.
            CancellationError: via ``on_shutdown`` after an interrupt.
        """
        self.state = PollState()
        while True:
            if self.cancellation.is_shutting_down and self.on_shutdown is not None:
                await self.on_shutdown()

            self.state.attempts += 1
            run_set = await self.gateway.get_status(self.app_id)
            self._observe(run_set)

            if run_set.completed:
                logger.debug(
                    "Run set completed",
                    attempts=self.state.attempts,
                    success=run_set.all_passed,
                )
                return run_set

            if self.state.attempts >= self.config.max_attempts:
                raise PollingTimeoutError(
                    f"Test runs did not complete within "
                    f"{int(self.config.max_attempts * self.config.interval)} seconds "
                    f"({self.config.max_attempts} status checks)"
                )

            await self._sleep(self.config.interval)

    def _observe(self, run_set: RunSet) -> None:
        self.last_run_set = run_set
        self.cancellation.active_run_ids = set(run_set.active_run_ids)

        previous = self.state.previous_status
        for run in run_set.runs:
            before = previous.get(run.id)
            if before != run.status:
                self.events.emit(RunTransition(run=run, previous_status=before))
                if run.is_terminal and run.id not in self.state.finished:
                    self.state.finished.add(run.id)
                    self.events.emit(RunFinished(run=run))
            previous[run.id] = run.status

        self.events.emit(
            PollTick(
                run_set=run_set,
                attempt=self.state.attempts,
                elapsed=self.state.elapsed,
            )
        )


# ──────────────────────────────────────────────────────────────────────────────
# AssetSync
# ──────────────────────────────────────────────────────────────────────────────


class AssetSync:
    """Wait for one finished run's artifacts to be synced server side."""

    def __init__(
        self,
        gateway: ServerGateway,
        app_id: int,
        config: Optional[PollConfig] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.app_id = app_id
        self.config = config or PollConfig()
        self._sleep = sleep

    async def wait(self, run_id: int) -> RunDetails:
        """Return the run detail once ``assets_synced`` is set.

        Raises:
            ArtifactError: not synced within artifact_sync_max_attempts.
        """
        attempts = 0
        while True:
            attempts += 1
            details = await self.gateway.get_run_details(self.app_id, run_id)
            if details.assets_synced:
                return details
            if attempts >= self.config.artifact_sync_max_attempts:
                raise ArtifactError(
                    f"Artifacts for run {run_id} were not ready after "
                    f"{int(attempts * self.config.interval)} seconds"
                )
            logger.debug(
                "Waiting for artifacts to sync", run_id=run_id, attempt=attempts
            )
            await self._sleep(self.config.interval)
