"""ServerGateway: HTTP communication with the app-automate API of one product.

All routes used by a run live here, each returning a typed response, so the
pipeline stages can be tested against a mocked gateway.
"""

from __future__ import annotations

import io
import os
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Dict, Optional

import aiohttp
import structlog

from testingbot.client.models import RunDetails, RunSet
from testingbot.core.constants import ReportFormat
from testingbot.core.exceptions import InvalidResponse
from testingbot.core.requester import Requester

logger = structlog.get_logger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Response Dataclasses
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ChecksumResponse:
    """Response from the checksum lookup."""

    app_exists: bool
    app_id: Optional[int] = None


@dataclass(frozen=True)
class UploadResponse:
    """Response from a multipart upload."""

    app_id: Optional[int]
    error: Optional[str] = None


class ProgressReader(io.BufferedReader):
    """Binary file that reports every chunk the multipart writer reads."""

    def __init__(self, path: str, callback: Callable[[int], None]) -> None:
        super().__init__(io.FileIO(path, "rb"))
        self._callback = callback

    def read(self, size: Optional[int] = -1) -> bytes:
        chunk = super().read(size)
        if chunk:
            self._callback(len(chunk))
        return chunk


def _open_for_upload(path: str, progress: Optional[Callable[[int], None]]) -> BinaryIO:
    if progress is None:
        return open(path, "rb")
    return ProgressReader(path, progress)


# ──────────────────────────────────────────────────────────────────────────────
# ServerGateway
# ──────────────────────────────────────────────────────────────────────────────


class ServerGateway:
    """HTTP communication with one product endpoint.

    Usage:
        async with ServerGateway(requester) as gateway:
            run_set = await gateway.get_status(app_id)
    """

    def __init__(self, requester: Requester) -> None:
        self.requester = requester
        self._session: Optional[aiohttp.ClientSession] = None
        self._owns_session: bool = False

    async def __aenter__(self) -> "ServerGateway":
        """Async context manager entry - creates session."""
        self._session = aiohttp.ClientSession()
        self._owns_session = True
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        """Async context manager exit - closes session if we own it."""
        await self.close()

    def set_session(self, session: aiohttp.ClientSession) -> None:
        """Set an external session (gateway will not close it)."""
        self._session = session
        self._owns_session = False

    async def close(self) -> None:
        """Close the session if we own it."""
        session = self._session
        if self._owns_session and session is not None and not session.closed:
            await session.close()
        self._session = None
        self._owns_session = False

    def url_for(self, app_route: str) -> str:
        """Absolute URL of a route, for error messages."""
        return self.requester.url_for(app_route)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _request(
        self,
        app_route: str,
        message: Any,
        request_type: str,
        tenacious: bool = True,
    ) -> tuple:
        session = await self._ensure_session()
        return await self.requester.send_request_async(
            session=session,
            app_route=app_route,
            message=message,
            request_type=request_type,
            tenacious=tenacious,
        )

    @staticmethod
    def _expect_dict(response: Any, app_route: str) -> Dict[str, Any]:
        if not isinstance(response, dict):
            raise InvalidResponse(
                f"Unexpected response from {app_route}: {response!r}", content=response
            )
        return response

    # ──────────────────────────────────────────────────────────────────────────
    # Upload Operations
    # ──────────────────────────────────────────────────────────────────────────

    async def lookup_checksum(self, checksum: str) -> ChecksumResponse:
        """Ask whether an app with this content checksum was uploaded before."""
        _, response = await self._request(
            app_route="/app/checksum",
            message={"checksum": checksum},
            request_type="post",
            tenacious=False,
        )
        response = self._expect_dict(response, "/app/checksum")
        return ChecksumResponse(
            app_exists=bool(response.get("app_exists")),
            app_id=response.get("id"),
        )

    async def upload_file(
        self,
        app_route: str,
        file_path: str,
        content_type: str,
        checksum: Optional[str] = None,
        progress: Optional[Callable[[int], None]] = None,
    ) -> UploadResponse:
        """Multipart upload of ``file_path``. Attempted once.

        ``progress`` receives the size of every chunk read from the file.
        """
        with _open_for_upload(file_path, progress) as f:
            form = aiohttp.FormData()
            form.add_field(
                "file",
                f,
                filename=os.path.basename(file_path),
                content_type=content_type,
            )
            if checksum:
                form.add_field("checksum", checksum)
            _, response = await self._request(
                app_route=app_route,
                message=form,
                request_type="post",
                tenacious=False,
            )

        response = response if isinstance(response, dict) else {}
        return UploadResponse(app_id=response.get("id"), error=response.get("error"))

    # ──────────────────────────────────────────────────────────────────────────
    # Run Operations
    # ──────────────────────────────────────────────────────────────────────────

    async def submit_run(self, app_id: int, body: Dict[str, Any]) -> Dict[str, Any]:
        """Create the runs for an uploaded app. Attempted once."""
        app_route = f"/{app_id}/run"
        _, response = await self._request(
            app_route=app_route,
            message=body,
            request_type="post",
            tenacious=False,
        )
        return self._expect_dict(response, app_route)

    async def get_status(self, app_id: int) -> RunSet:
        """Aggregate status of every run for the app."""
        app_route = f"/{app_id}"
        _, response = await self._request(
            app_route=app_route, message={}, request_type="get"
        )
        return RunSet.from_wire(self._expect_dict(response, app_route))

    async def get_run_details(self, app_id: int, run_id: int) -> RunDetails:
        """Detail of one run, including asset sync state."""
        app_route = f"/{app_id}/{run_id}"
        _, response = await self._request(
            app_route=app_route, message={}, request_type="get"
        )
        return RunDetails.from_wire(self._expect_dict(response, app_route))

    async def get_report(self, app_id: int, run_id: int, report_format: str) -> str:
        """Rendered report body for one run."""
        route_name = ReportFormat.ROUTES[report_format]
        app_route = f"/{app_id}/{run_id}/{route_name}"
        _, response = await self._request(
            app_route=app_route, message={}, request_type="get"
        )
        if isinstance(response, dict):
            body = response.get(route_name)
            if body is None:
                raise InvalidResponse(
                    f"No {report_format} report returned for run {run_id}",
                    content=response,
                )
            return str(body)
        if isinstance(response, (bytes, bytearray)):
            return response.decode("utf-8", errors="replace")
        return str(response)

    async def stop_run(self, app_id: int, run_id: int) -> None:
        """Stop one run. Attempted once."""
        await self._request(
            app_route=f"/{app_id}/{run_id}/stop",
            message={},
            request_type="post",
            tenacious=False,
        )

    async def download(self, url: str) -> bytes:
        """Fetch an artifact URL, retrying everything but client errors."""
        session = await self._ensure_session()
        return await self.requester.download_async(session, url)
