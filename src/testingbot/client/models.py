"""Typed views of the run payloads returned by the server.

Every poll replaces these objects wholesale; nothing mutates them in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from testingbot.core.constants import RunStatus


@dataclass(frozen=True)
class FlowInfo:
    """One flow (or test) inside a run."""

    id: int
    name: str
    status: str
    success: Optional[int] = None
    requested_at: Optional[str] = None
    completed_at: Optional[str] = None
    error_messages: Tuple[str, ...] = ()

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> FlowInfo:
        errors = data.get("error_messages") or ()
        if isinstance(errors, str):
            errors = (errors,)
        return cls(
            id=data.get("id", 0),
            name=data.get("name") or "",
            status=data.get("status") or RunStatus.WAITING,
            success=data.get("success"),
            requested_at=data.get("requested_at"),
            completed_at=data.get("completed_at"),
            error_messages=tuple(str(e) for e in errors),
        )


@dataclass(frozen=True)
class TestRun:
    """A single run on one device."""

    __test__ = False

    id: int
    status: str
    capabilities: Dict[str, Any] = field(default_factory=dict)
    success: int = 0
    report: Optional[str] = None
    flows: Tuple[FlowInfo, ...] = ()

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> TestRun:
        return cls(
            id=data["id"],
            status=data.get("status") or RunStatus.WAITING,
            capabilities=dict(data.get("capabilities") or {}),
            success=int(data.get("success") or 0),
            report=data.get("report"),
            flows=tuple(FlowInfo.from_wire(f) for f in data.get("flows") or ()),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in RunStatus.TERMINAL

    @property
    def passed(self) -> bool:
        return self.success == 1

    @property
    def device_label(self) -> str:
        caps = self.capabilities
        name = caps.get("deviceName") or "unknown device"
        suffix = " ".join(
            str(p) for p in (caps.get("platformName"), caps.get("version")) if p
        )
        return f"{name} ({suffix})" if suffix else name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "capabilities": dict(self.capabilities),
            "success": self.success,
            "report": self.report,
        }


@dataclass(frozen=True)
class RunSet:
    """Aggregate status of all runs created by one submission."""

    runs: Tuple[TestRun, ...]
    success: bool
    completed: bool

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> RunSet:
        runs = tuple(TestRun.from_wire(r) for r in data.get("runs") or ())
        return cls(
            runs=runs,
            success=bool(data.get("success")),
            completed=bool(data.get("completed")),
        )

    @property
    def active_run_ids(self) -> List[int]:
        return [run.id for run in self.runs if not run.is_terminal]

    @property
    def failed_runs(self) -> List[TestRun]:
        return [run for run in self.runs if not run.passed]

    @property
    def all_passed(self) -> bool:
        """Logical AND over every run's success flag."""
        return bool(self.runs) and all(run.passed for run in self.runs)


@dataclass(frozen=True)
class Assets:
    """Downloadable artifacts of a finished run."""

    logs: Dict[str, str] = field(default_factory=dict)
    video: Optional[str] = None
    screenshots: Tuple[str, ...] = ()

    @classmethod
    def from_wire(cls, data: Optional[Dict[str, Any]]) -> Assets:
        if not data:
            return cls()
        logs = data.get("logs") or {}
        # older servers send a plain list of URLs
        if isinstance(logs, list):
            logs = {f"log_{i}": url for i, url in enumerate(logs)}
        video = data.get("video")
        return cls(
            logs={str(k): v for k, v in logs.items() if v},
            video=video if isinstance(video, str) and video else None,
            screenshots=tuple(s for s in data.get("screenshots") or () if s),
        )


@dataclass(frozen=True)
class RunDetails:
    """Single-run detail used while waiting for asset sync."""

    id: int
    status: str
    success: int = 0
    assets_synced: bool = False
    assets: Assets = field(default_factory=Assets)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> RunDetails:
        return cls(
            id=data.get("id", 0),
            status=data.get("status") or RunStatus.WAITING,
            success=int(data.get("success") or 0),
            assets_synced=bool(data.get("assets_synced")),
            assets=Assets.from_wire(data.get("assets")),
        )


@dataclass(frozen=True)
class RealtimeChannel:
    """Push channel descriptor returned on submission."""

    server: str
    key: str


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of creating the runs."""

    channel: Optional[RealtimeChannel] = None
    raw: Dict[str, Any] = field(default_factory=dict)
