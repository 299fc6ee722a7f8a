"""Events emitted by the run lifecycle and consumed by renderers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Union

import structlog

from testingbot.client.models import RunSet, TestRun

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PollTick:
    """One aggregate status response."""

    run_set: RunSet
    attempt: int
    elapsed: float


@dataclass(frozen=True)
class RunTransition:
    """A run changed status since the previous poll."""

    run: TestRun
    previous_status: Optional[str]


@dataclass(frozen=True)
class RunFinished:
    """A run entered DONE or FAILED. Emitted once per run."""

    run: TestRun


@dataclass(frozen=True)
class RealtimeOutput:
    """Raw runner output pushed over the realtime channel."""

    payload: str
    is_error: bool = False


@dataclass(frozen=True)
class ShutdownStarted:
    """The first interrupt signal was received."""

    active_run_ids: tuple


Event = Union[PollTick, RunTransition, RunFinished, RealtimeOutput, ShutdownStarted]
Listener = Callable[[Event], None]


class EventBus:
    """Synchronous fan-out of lifecycle events to listeners."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def emit(self, event: Event) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # a broken display must not change the outcome of a run
                logger.exception("Event listener failed", event=type(event).__name__)
