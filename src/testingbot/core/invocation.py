"""Per-invocation state for notices that are shown at most once."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import structlog

from testingbot.core import __version__
from testingbot.core.constants import WILDCARD_DEVICE

logger = structlog.get_logger(__name__)

UPGRADE_COMMAND = "pip install --upgrade testingbot-cli"


def _version_parts(version: str) -> List[int]:
    parts = []
    for piece in version.strip().split("."):
        digits = "".join(ch for ch in piece if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return parts


def compare_versions(v1: str, v2: str) -> int:
    """Compare dotted versions. Returns -1, 0 or 1."""
    parts1 = _version_parts(v1)
    parts2 = _version_parts(v2)
    for i in range(max(len(parts1), len(parts2))):
        p1 = parts1[i] if i < len(parts1) else 0
        p2 = parts2[i] if i < len(parts2) else 0
        if p1 < p2:
            return -1
        if p1 > p2:
            return 1
    return 0


def is_wildcard_device(device: Optional[str]) -> bool:
    """True when the device name lets the server pick any device."""
    if not device or device == WILDCARD_DEVICE:
        return True
    return "*" in device or "?" in device


@dataclass
class InvocationState:
    """Flags that live for exactly one CLI invocation."""

    current_version: str = __version__
    version_notice_shown: bool = False
    performance_tip_shown: bool = False

    def check_for_update(self, latest: Optional[str]) -> bool:
        """Warn once if the server reports a newer CLI release."""
        if not latest or self.version_notice_shown:
            return False
        if compare_versions(self.current_version, latest) >= 0:
            return False

        self.version_notice_shown = True
        logger.warning(
            "Update available",
            current_version=self.current_version,
            latest_version=latest,
            upgrade=UPGRADE_COMMAND,
        )
        return True

    def show_real_device_tip(
        self,
        real_device: bool,
        device: Optional[str],
        flow_count: int,
        shard_split: Optional[int],
    ) -> bool:
        """Suggest --shard-split once for many flows pinned to one real device."""
        if self.performance_tip_shown:
            return False
        if not real_device or is_wildcard_device(device):
            return False
        if flow_count <= 2 or shard_split:
            return False

        self.performance_tip_shown = True
        logger.info(
            "Each flow runs in its own session on a real device; running "
            f"{flow_count} flows on a single device serializes them. Use "
            "--shard-split to group flows into fewer sessions, or a wildcard "
            "device name to spread them over more devices.",
            device=device,
            flow_count=flow_count,
        )
        return True
