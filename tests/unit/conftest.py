"""Unit test configuration.

Unit tests in this directory:
- Do NOT require network access or TestingBot credentials
- Use mocking for the HTTP gateway and the realtime client
- Focus on testing logic in isolation

Run with: pytest tests/unit/ -x
"""

from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from testingbot.client.gateway import ServerGateway
from testingbot.client.models import RunSet
from testingbot.core.requester import Requester


def run_payload(
    run_id: int,
    status: str = "DONE",
    success: int = 1,
    report: Optional[str] = None,
    flows: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Wire shape of one run inside the aggregate status response."""
    payload: Dict[str, Any] = {
        "id": run_id,
        "status": status,
        "success": success,
        "capabilities": {
            "deviceName": "Pixel 8",
            "platformName": "Android",
            "version": "14",
        },
    }
    if report is not None:
        payload["report"] = report
    if flows is not None:
        payload["flows"] = flows
    return payload


def run_set(*runs: Dict[str, Any], completed: bool = True) -> RunSet:
    return RunSet.from_wire(
        {
            "runs": list(runs),
            "completed": completed,
            "success": all(r["success"] == 1 for r in runs),
        }
    )


@pytest.fixture
def mock_requester() -> MagicMock:
    """Create a mock Requester with async methods."""
    requester = MagicMock(spec=Requester)
    requester.send_request_async = AsyncMock()
    requester.download_async = AsyncMock()
    return requester


@pytest.fixture
def gateway(mock_requester: MagicMock) -> ServerGateway:
    """A real ServerGateway over a mocked requester."""
    gw = ServerGateway(requester=mock_requester)
    session = MagicMock()
    session.closed = False
    gw.set_session(session)
    return gw


@pytest.fixture
def mock_gateway() -> MagicMock:
    """A fully mocked gateway for pipeline stage tests."""
    gw = MagicMock(spec=ServerGateway)
    gw.lookup_checksum = AsyncMock()
    gw.upload_file = AsyncMock()
    gw.submit_run = AsyncMock()
    gw.get_status = AsyncMock()
    gw.get_run_details = AsyncMock()
    gw.get_report = AsyncMock()
    gw.stop_run = AsyncMock()
    gw.download = AsyncMock()
    return gw


@pytest.fixture
def make_run() -> Any:
    """Factory for the wire shape of one run."""
    return run_payload


@pytest.fixture
def make_run_set() -> Any:
    """Factory for a parsed aggregate status response."""
    return run_set
