"""Upload app binaries and test bundles, skipping apps the server already has."""

from __future__ import annotations

import base64
import hashlib
import os
import sys
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import aiohttp
import click
import structlog

from testingbot.client.gateway import ServerGateway
from testingbot.core.constants import ContentType
from testingbot.core.error_helpers import (
    describe_network_error,
    describe_status_code,
    extract_error_message,
)
from testingbot.core.exceptions import RequestError, UploadError

logger = structlog.get_logger(__name__)

CHUNK_SIZE = 1024 * 1024


def calculate_checksum(file_path: str) -> str:
    """Base64 encoded MD5 of the file content."""
    digest = hashlib.md5()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return base64.b64encode(digest.digest()).decode("ascii")


def format_file_size(size: float) -> str:
    if size < 1024:
        return f"{int(size)} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


class ChecksumUploader:
    """Upload binaries through the gateway with content-hash deduplication."""

    def __init__(
        self, gateway: ServerGateway, dedup: bool = True, show_progress: bool = False
    ) -> None:
        self.gateway = gateway
        self.dedup = dedup
        self.show_progress = show_progress

    async def upload_app(self, path: str) -> int:
        """Upload the app under test and return its app id.

        The checksum lookup is best effort: if it fails the binary is
        uploaded normally.
        """
        checksum: Optional[str] = None
        if self.dedup:
            checksum = calculate_checksum(path)
            app_id = await self._existing_app(checksum)
            if app_id is not None:
                logger.info("App already uploaded, skipping upload", app_id=app_id)
                return app_id

        return await self._upload(
            "/app", path, ContentType.for_app(path), checksum=checksum
        )

    async def upload_bundle(
        self, app_id: int, path: str, content_type: str = ContentType.ZIP
    ) -> None:
        """Upload the flow archive or test binary for ``app_id``."""
        await self._upload(f"/{app_id}/tests", path, content_type)

    async def _existing_app(self, checksum: str) -> Optional[int]:
        try:
            response = await self.gateway.lookup_checksum(checksum)
        except Exception as exc:
            logger.debug("Checksum lookup failed, uploading", error=str(exc))
            return None
        if response.app_exists and response.app_id is not None:
            return response.app_id
        return None

    async def _upload(
        self,
        app_route: str,
        path: str,
        content_type: str,
        checksum: Optional[str] = None,
    ) -> int:
        if not os.path.isfile(path) or not os.access(path, os.R_OK):
            raise UploadError(f"File not found or not readable: {path}")

        try:
            with self._progress(path) as progress:
                response = await self.gateway.upload_file(
                    app_route, path, content_type, checksum=checksum, progress=progress
                )
        except RequestError as exc:
            if exc.status_code is not None:
                message = describe_status_code(
                    exc.status_code, extract_error_message(exc.content)
                )
            else:
                message = describe_network_error(exc, self.gateway.url_for(app_route))
            raise UploadError(f"Upload failed: {message}", cause=exc) from exc
        except aiohttp.ClientError as exc:
            message = describe_network_error(exc, self.gateway.url_for(app_route))
            raise UploadError(f"Upload failed: {message}", cause=exc) from exc
        except OSError as exc:
            raise UploadError(f"Upload failed: {exc}", cause=exc) from exc

        if response.app_id is None:
            raise UploadError(
                f"Upload failed: {response.error or 'Unknown error'}",
                cause=response.error,
            )
        return response.app_id

    @contextmanager
    def _progress(self, path: str) -> Iterator[Optional[Callable[[int], None]]]:
        """Yield a callback advancing a progress bar by bytes sent, or None."""
        size = os.path.getsize(path)
        label = f"Uploading {os.path.basename(path)} ({format_file_size(size)})"
        if not self.show_progress:
            logger.info(label)
            yield None
            return

        with click.progressbar(
            length=size, label=label, file=sys.stderr, show_pos=False
        ) as bar:
            yield bar.update
