"""Tests for the realtime output channel."""

import json
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from testingbot.client.models import RealtimeChannel
from testingbot.client.pipeline.events import Event, EventBus, RealtimeOutput
from testingbot.client.options import MaestroOptions
from testingbot.client.pipeline.realtime import RealtimeSession, parse_payload
from testingbot.client.providers import MaestroProvider


@pytest.mark.parametrize(
    "message, expected",
    [
        ({"id": 1, "payload": "line\n"}, "line\n"),
        (json.dumps({"id": 1, "payload": "text"}), "text"),
        (b'{"payload": "bytes"}', "bytes"),
        ({"id": 1, "payload": ""}, None),
        ({"id": 1}, None),
        ("not json", None),
        (["payload"], None),
    ],
)
def test_parse_payload(message, expected) -> None:
    assert parse_payload(message) == expected


@pytest.fixture
def client() -> MagicMock:
    sio = MagicMock()
    sio.connect = AsyncMock()
    sio.disconnect = AsyncMock()
    sio.emit = AsyncMock()
    return sio


@pytest.fixture
def recorded() -> List[Event]:
    return []


@pytest.fixture
def realtime(client, recorded) -> RealtimeSession:
    events = EventBus()
    events.subscribe(recorded.append)
    strategy = MaestroProvider(MaestroOptions(app="app.apk", flows=["flows"]))
    return RealtimeSession(strategy.realtime_events, events, client=client)


class TestRealtimeSession:
    def test_event_names(self, realtime) -> None:
        assert realtime.data_event == "maestro_data"
        assert realtime.error_event == "maestro_error"

    @pytest.mark.asyncio
    async def test_connect_registers_and_joins(self, realtime, client) -> None:
        await realtime.connect(RealtimeChannel("https://hub", "room-1"))

        registered = [c.args[0] for c in client.on.call_args_list]
        assert registered == ["connect", "maestro_data", "maestro_error"]
        client.connect.assert_awaited_once()
        assert client.connect.await_args.args == ("https://hub",)
        assert client.connect.await_args.kwargs["transports"] == ["websocket"]

        await realtime._on_connect()
        client.emit.assert_awaited_once_with("join", "room-1")

    @pytest.mark.asyncio
    async def test_connection_failure_is_swallowed(self, realtime, client) -> None:
        client.connect.side_effect = ConnectionError("refused")

        await realtime.connect(RealtimeChannel("https://hub", "room-1"))
        await realtime.disconnect()

        client.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_forwards_output(self, realtime, recorded) -> None:
        await realtime._on_data({"id": 1, "payload": "hello\n"})
        await realtime._on_error({"id": 1, "payload": "oops\n"})
        await realtime._on_data({"id": 1})

        assert recorded == [
            RealtimeOutput(payload="hello\n"),
            RealtimeOutput(payload="oops\n", is_error=True),
        ]
