"""Detect the target platform of an app binary from its content."""

from __future__ import annotations

import os
import zipfile
from typing import Optional

import structlog

from testingbot.core.constants import Platform

logger = structlog.get_logger(__name__)

ZIP_MAGIC = b"PK\x03\x04"
ANDROID_MARKERS = ("AndroidManifest.xml", "classes.dex")


def _is_zip(path: str) -> bool:
    try:
        with open(path, "rb") as f:
            return f.read(len(ZIP_MAGIC)) == ZIP_MAGIC
    except OSError:
        return False


def detect_platform(path: str) -> Optional[str]:
    """Return Android or iOS from the file's magic bytes, or None if unknown.

    APKs are zips carrying an Android manifest and APK sets are zips of
    APKs; any other zip (IPA, zipped .app) is treated as iOS. ``.app``
    bundles are directories and yield None, leaving the caller to fall back
    to the extension.
    """
    if not os.path.isfile(path) or not _is_zip(path):
        return None

    try:
        with zipfile.ZipFile(path) as archive:
            names = archive.namelist()
    except (zipfile.BadZipFile, OSError) as exc:
        logger.debug("Could not inspect app archive", path=path, error=str(exc))
        return None

    if any(
        os.path.basename(n) in ANDROID_MARKERS or n.lower().endswith(".apk")
        for n in names
    ):
        return Platform.ANDROID
    return Platform.IOS
