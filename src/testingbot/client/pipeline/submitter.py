"""Create the runs for an uploaded app."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog

from testingbot.client.gateway import ServerGateway
from testingbot.client.models import RealtimeChannel, SubmissionResult
from testingbot.core.error_helpers import describe_status_code, extract_error_message
from testingbot.core.exceptions import RequestError, SubmissionError

logger = structlog.get_logger(__name__)


def build_run_body(
    capabilities: List[Dict[str, Any]],
    options_key: Optional[str] = None,
    options: Optional[Dict[str, Any]] = None,
    shard_split: Optional[int] = None,
    metadata: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Request body for run creation. Empty option containers are left out."""
    body: Dict[str, Any] = {"capabilities": capabilities}
    if options_key and options:
        body[options_key] = options
    if shard_split:
        body["shardSplit"] = shard_split
    if metadata:
        body["metadata"] = metadata
    return body


class RunSubmitter:
    """Submit a run request and capture the optional realtime channel."""

    def __init__(self, gateway: ServerGateway) -> None:
        self.gateway = gateway

    async def submit(self, app_id: int, body: Dict[str, Any]) -> SubmissionResult:
        """Create the runs.

        Raises:
            SubmissionError: transport failure or ``success: false``; the
                server's ``errors``/``error`` value is kept as the cause.
        """
        try:
            response = await self.gateway.submit_run(app_id, body)
        except RequestError as exc:
            detail = extract_error_message(exc)
            if exc.status_code is not None and exc.status_code != 429:
                detail = describe_status_code(
                    exc.status_code, extract_error_message(exc.content)
                )
            raise SubmissionError(
                f"Failed to start test run: {detail}", cause=exc
            ) from exc

        if response.get("success") is False:
            cause = response.get("errors") or response.get("error")
            detail = extract_error_message(cause) or "Unknown error"
            raise SubmissionError(f"Failed to start test run: {detail}", cause=cause)

        channel = None
        if response.get("update_server") and response.get("update_key"):
            channel = RealtimeChannel(
                server=response["update_server"], key=response["update_key"]
            )
        logger.info("Test run started", app_id=app_id)
        return SubmissionResult(channel=channel, raw=response)
