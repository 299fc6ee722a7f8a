"""Download reports and run artifacts once the run set has completed.

Every run is processed in isolation: a failure is logged for that run and
never changes the result of the invocation.
"""

from __future__ import annotations

import asyncio
import os
import re
import shutil
import tempfile
import time
import zipfile
from datetime import datetime
from typing import List, Optional, Sequence
from urllib.parse import urlparse

import structlog

from testingbot.client.gateway import ServerGateway
from testingbot.client.models import Assets, TestRun
from testingbot.client.pipeline.poll import AssetSync
from testingbot.core.constants import ArtifactDownloadMode, ReportFormat

logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def report_filename(run_id: int, report_format: str) -> str:
    return f"report_run_{run_id}.{ReportFormat.EXTENSIONS[report_format]}"


def sanitize_label(label: str) -> str:
    return _UNSAFE_CHARS.sub("_", label)


def artifact_zip_name(label: Optional[str], now: Optional[datetime] = None) -> str:
    """Zip file name from the build or run name, else a timestamp."""
    if label:
        return f"{sanitize_label(label)}.zip"
    now = now or datetime.now()
    stamp = sanitize_label(now.isoformat(timespec="seconds"))
    return f"maestro_artifacts_{stamp}.zip"


def unique_path(directory: str, filename: str) -> str:
    """Append ``_<epoch>`` to the stem when ``filename`` already exists."""
    path = os.path.join(directory, filename)
    if not os.path.exists(path):
        return path
    stem, ext = os.path.splitext(filename)
    return os.path.join(directory, f"{stem}_{int(time.time())}{ext}")


def _extension(url: str, default: str) -> str:
    ext = os.path.splitext(urlparse(url).path)[1]
    return ext if ext else default


def _discard(path: str) -> None:
    try:
        os.unlink(path)
    except OSError:
        pass


def select_runs(runs: Sequence[TestRun], mode: Optional[str]) -> List[TestRun]:
    if mode == ArtifactDownloadMode.FAILED:
        return [run for run in runs if not run.passed]
    return list(runs)


class ArtifactFetcher:
    """Fetch reports and artifacts for a finished run set."""

    def __init__(self, gateway: ServerGateway, asset_sync: AssetSync) -> None:
        self.gateway = gateway
        self.asset_sync = asset_sync

    # ──────────────────────────────────────────────────────────────────────────
    # Reports
    # ──────────────────────────────────────────────────────────────────────────

    async def fetch_reports(
        self,
        app_id: int,
        runs: Sequence[TestRun],
        report_format: str,
        output_dir: str,
    ) -> List[str]:
        """Write one ``report_run_<id>`` file per run and return their paths."""
        paths = []
        for run in runs:
            try:
                body = await self.gateway.get_report(app_id, run.id, report_format)
            except Exception as exc:
                logger.error("Failed to fetch report", run_id=run.id, error=str(exc))
                continue
            path = os.path.join(output_dir, report_filename(run.id, report_format))
            try:
                with open(path, "w", encoding="utf-8") as f:
                    f.write(body)
            except OSError as exc:
                logger.error("Failed to write report", run_id=run.id, error=str(exc))
                continue
            logger.info("Saved report", run_id=run.id, path=path)
            paths.append(path)
        return paths

    # ──────────────────────────────────────────────────────────────────────────
    # Artifacts
    # ──────────────────────────────────────────────────────────────────────────

    async def fetch_artifacts(
        self,
        app_id: int,
        runs: Sequence[TestRun],
        mode: Optional[str] = ArtifactDownloadMode.ALL,
        output_dir: Optional[str] = None,
        label: Optional[str] = None,
        report_paths: Sequence[str] = (),
    ) -> Optional[str]:
        """Bundle logs, video and screenshots of every selected run into one zip.

        Returns the zip path, or None when there was nothing to bundle.
        """
        selected = select_runs(runs, mode)
        if not selected:
            logger.info("No test runs to download artifacts for")
            return None

        output_dir = output_dir or os.getcwd()
        staging = tempfile.mkdtemp(prefix="testingbot-artifacts-")
        try:
            counts = await asyncio.gather(
                *(self._fetch_run(app_id, run, staging) for run in selected)
            )
            downloaded = sum(counts)

            for report in report_paths:
                try:
                    shutil.copy(report, os.path.join(staging, os.path.basename(report)))
                except OSError as exc:
                    logger.error("Failed to add report", path=report, error=str(exc))
                    continue
                downloaded += 1

            if not downloaded:
                logger.warning("No artifacts were downloaded")
                return None

            zip_path = unique_path(output_dir, artifact_zip_name(label))
            try:
                self._zip_tree(staging, zip_path)
            except OSError as exc:
                _discard(zip_path)
                logger.error(
                    "Failed to bundle artifacts", path=zip_path, error=str(exc)
                )
                return None
            logger.info("Saved artifacts", path=zip_path)
            return zip_path
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    async def _fetch_run(self, app_id: int, run: TestRun, staging: str) -> int:
        try:
            details = await self.asset_sync.wait(run.id)
        except Exception as exc:
            logger.error("Artifacts unavailable", run_id=run.id, error=str(exc))
            return 0

        run_dir = os.path.join(staging, f"run_{run.id}")
        os.makedirs(run_dir, exist_ok=True)
        targets = self._targets(details.assets, run_dir)
        results = await asyncio.gather(
            *(self._download(run.id, url, path) for url, path in targets)
        )
        return sum(results)

    @staticmethod
    def _targets(assets: Assets, run_dir: str) -> List[tuple]:
        targets = []
        for name, url in assets.logs.items():
            filename = sanitize_label(name) + _extension(url, ".txt")
            targets.append((url, os.path.join(run_dir, "logs", filename)))
        if assets.video:
            filename = "video" + _extension(assets.video, ".mp4")
            targets.append((assets.video, os.path.join(run_dir, filename)))
        for i, url in enumerate(assets.screenshots):
            filename = f"screenshot_{i}" + _extension(url, ".png")
            targets.append((url, os.path.join(run_dir, "screenshots", filename)))
        return targets

    async def _download(self, run_id: int, url: str, path: str) -> int:
        try:
            content = await self.gateway.download(url)
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(content)
        except Exception as exc:
            logger.error(
                "Failed to download artifact", run_id=run_id, url=url, error=str(exc)
            )
            return 0
        return 1

    @staticmethod
    def _zip_tree(root: str, zip_path: str) -> None:
        with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as archive:
            for dirpath, _, filenames in os.walk(root):
                for filename in sorted(filenames):
                    full = os.path.join(dirpath, filename)
                    arcname = os.path.relpath(full, root).replace(os.sep, "/")
                    archive.write(full, arcname)
