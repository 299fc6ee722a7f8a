"""Optional push channel streaming runner output while the runs execute."""

from __future__ import annotations

import json
from typing import Any, Optional, Tuple

import socketio
import structlog

from testingbot.client.models import RealtimeChannel
from testingbot.client.pipeline.events import EventBus, RealtimeOutput
from testingbot.core.configuration import TestingBotConfig

logger = structlog.get_logger(__name__)


def parse_payload(message: Any) -> Optional[str]:
    """Extract ``payload`` from an ``{id, payload}`` message, or None."""
    if isinstance(message, (bytes, bytearray)):
        message = message.decode("utf-8", errors="replace")
    if isinstance(message, str):
        try:
            message = json.loads(message)
        except ValueError:
            return None
    if not isinstance(message, dict):
        return None
    payload = message.get("payload")
    if not isinstance(payload, str) or not payload:
        return None
    return payload


class RealtimeSession:
    """Socket.IO client joining the room of one submission.

    Never affects the outcome of a run: every connection or decoding error is
    logged at debug level and dropped.
    """

    def __init__(
        self,
        event_names: Tuple[str, str],
        events: EventBus,
        config: Optional[TestingBotConfig] = None,
        client: Optional[socketio.AsyncClient] = None,
    ) -> None:
        config = config or TestingBotConfig()
        self.data_event, self.error_event = event_names
        self.events = events
        self.timeout = config.get_float("realtime", "timeout")
        self.client = client or socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=config.get_int("realtime", "reconnection_attempts"),
            reconnection_delay=config.get_float("realtime", "reconnection_delay"),
            logger=False,
            engineio_logger=False,
        )
        self.channel: Optional[RealtimeChannel] = None

    async def connect(self, channel: RealtimeChannel) -> None:
        self.channel = channel
        self.client.on("connect", self._on_connect)
        self.client.on(self.data_event, self._on_data)
        self.client.on(self.error_event, self._on_error)
        try:
            await self.client.connect(
                channel.server, transports=["websocket"], wait_timeout=self.timeout
            )
        except Exception as exc:
            logger.debug(
                "Realtime connection failed", server=channel.server, error=str(exc)
            )

    async def disconnect(self) -> None:
        try:
            await self.client.disconnect()
        except Exception as exc:
            logger.debug("Realtime disconnect failed", error=str(exc))

    async def _on_connect(self) -> None:
        if self.channel is None:
            return
        try:
            await self.client.emit("join", self.channel.key)
        except Exception as exc:
            logger.debug("Could not join realtime room", error=str(exc))

    def _forward(self, message: Any, is_error: bool) -> None:
        payload = parse_payload(message)
        if payload is not None:
            self.events.emit(RealtimeOutput(payload=payload, is_error=is_error))

    async def _on_data(self, message: Any) -> None:
        self._forward(message, is_error=False)

    async def _on_error(self, message: Any) -> None:
        self._forward(message, is_error=True)
