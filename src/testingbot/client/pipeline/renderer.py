"""Console rendering of lifecycle events.

The renderer only listens to the EventBus; nothing in the pipeline writes to
the terminal directly.
"""

from __future__ import annotations

import shutil
import sys
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import click
from tabulate import tabulate

from testingbot.client.models import FlowInfo, TestRun
from testingbot.client.pipeline.events import (
    Event,
    PollTick,
    RealtimeOutput,
    RunFinished,
    ShutdownStarted,
)
from testingbot.core.constants import RunStatus

DEFAULT_TERMINAL_ROWS = 24
RESERVED_ROWS = 6
MIN_TABLE_ROWS = 5

# display status -> click color
STATUS_COLORS: Dict[str, str] = {
    "WAITING": "white",
    "RUNNING": "blue",
    "PASSED": "green",
    "FAILED": "red",
}


def clear_line() -> str:
    """Control sequence that erases the live status line."""
    if sys.platform == "win32":
        width = shutil.get_terminal_size().columns
        return "\r" + " " * max(width - 1, 0) + "\r"
    return "\r\x1b[K"


# ──────────────────────────────────────────────────────────────────────────────
# Flow table helpers
# ──────────────────────────────────────────────────────────────────────────────


def flow_status_display(flow: FlowInfo) -> Tuple[str, Optional[str]]:
    """Map a server flow status to (label, color). Unknown statuses are uncolored."""
    if flow.status == RunStatus.WAITING:
        label = "WAITING"
    elif flow.status == RunStatus.READY:
        label = "RUNNING"
    elif flow.status == RunStatus.DONE:
        label = "PASSED" if flow.success == 1 else "FAILED"
    elif flow.status == RunStatus.FAILED:
        label = "FAILED"
    else:
        return flow.status, None
    return label, STATUS_COLORS[label]


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_elapsed(seconds: float) -> str:
    seconds = max(int(seconds), 0)
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}m {secs}s" if minutes else f"{secs}s"


def flow_duration(flow: FlowInfo, now: Optional[datetime] = None) -> str:
    """``-`` until the flow started, then elapsed time up to completion or now."""
    if not flow.requested_at:
        return "-"
    start = _parse_timestamp(flow.requested_at)
    if start is None:
        return "-"
    end = _parse_timestamp(flow.completed_at) if flow.completed_at else None
    end = end or now or datetime.now(timezone.utc)
    return format_elapsed((end - start).total_seconds())


def terminal_rows() -> int:
    try:
        rows = shutil.get_terminal_size((0, 0)).lines
    except OSError:
        rows = 0
    return rows or DEFAULT_TERMINAL_ROWS


def max_displayable_rows(rows: Optional[int] = None) -> int:
    rows = rows if rows is not None else terminal_rows()
    return max(rows - RESERVED_ROWS, MIN_TABLE_ROWS)


def remaining_summary(flows: Sequence[FlowInfo]) -> str:
    """``... and N more (a waiting, b running)`` listing non-zero counts only."""
    counts = Counter(flow_status_display(f)[0] for f in flows)
    parts = [
        f"{counts[label]} {label.lower()}"
        for label in ("WAITING", "RUNNING", "PASSED", "FAILED")
        if counts[label]
    ]
    summary = f"... and {len(flows)} more"
    return f"{summary} ({', '.join(parts)})" if parts else summary


def render_flow_table(
    flows: Sequence[FlowInfo],
    rows: Optional[int] = None,
    now: Optional[datetime] = None,
    color: bool = True,
) -> List[str]:
    """Lines of the flow table, header included."""
    if not flows:
        return []

    has_failures = any(flow_status_display(f)[0] == "FAILED" for f in flows)
    headers = ["Flow", "Duration", "Status"]
    if has_failures:
        headers.append("Fail reason")

    limit = max_displayable_rows(rows)
    shown = flows[:limit]
    table = []
    for flow in shown:
        label, fg = flow_status_display(flow)
        status = click.style(label, fg=fg) if color and fg else label
        row = [flow.name, flow_duration(flow, now), status]
        if has_failures:
            # one line per error message
            errors = flow.error_messages if label == "FAILED" else ()
            row.append("\n".join(errors))
        table.append(row)

    rendered = tabulate(
        table, headers=headers, tablefmt="simple", disable_numparse=True
    )
    lines = [line.rstrip() for line in rendered.splitlines()]
    if len(flows) > len(shown):
        lines.append(remaining_summary(flows[len(shown):]))
    return lines


# ──────────────────────────────────────────────────────────────────────────────
# ConsoleRenderer
# ──────────────────────────────────────────────────────────────────────────────


class ConsoleRenderer:
    """Draws run progress on the terminal from lifecycle events.

    Transient statuses share one line that is redrawn in place; terminal
    statuses are printed once per run.
    """

    def __init__(self, quiet: bool = False, color: Optional[bool] = None) -> None:
        self.quiet = quiet
        self.color = sys.stdout.isatty() if color is None else color
        self.line_active = False
        self._table_height = 0

    def __call__(self, event: Event) -> None:
        if isinstance(event, RealtimeOutput):
            self.on_realtime_output(event)
        elif self.quiet:
            return
        elif isinstance(event, PollTick):
            self.on_poll_tick(event)
        elif isinstance(event, RunFinished):
            self.on_run_finished(event.run)
        elif isinstance(event, ShutdownStarted):
            self.clear()

    def clear(self) -> None:
        if self.line_active:
            click.echo(clear_line(), nl=False)
            self.line_active = False

    def on_realtime_output(self, event: RealtimeOutput) -> None:
        self.clear()
        click.echo(event.payload, nl=False, err=event.is_error)
        # the next table starts below this output instead of overwriting it
        self._table_height = 0

    def on_poll_tick(self, tick: PollTick) -> None:
        flows = [flow for run in tick.run_set.runs for flow in run.flows]
        if flows and self.color:
            self._redraw_table(flows)
            return

        transient = [run for run in tick.run_set.runs if not run.is_terminal]
        if not transient:
            self.clear()
            return
        counts = Counter(run.status for run in transient)
        if counts[RunStatus.READY]:
            text = f"Running {counts[RunStatus.READY]} test run(s)"
            if counts[RunStatus.WAITING]:
                text += f", {counts[RunStatus.WAITING]} waiting"
        else:
            text = f"Waiting for {counts[RunStatus.WAITING]} test run(s) to start"
        elapsed = format_elapsed(tick.elapsed)
        click.echo(f"{clear_line()}{text}... ({elapsed})", nl=False)
        self.line_active = True

    def _redraw_table(self, flows: List[FlowInfo]) -> None:
        self.clear()
        if self._table_height:
            # move the cursor up over the previous table and erase it
            click.echo(f"\x1b[{self._table_height}A\x1b[J", nl=False)
        lines = render_flow_table(flows, color=self.color)
        for line in lines:
            click.echo(line)
        self._table_height = len(lines)

    def _styled(self, text: str, fg: str) -> str:
        return click.style(text, fg=fg) if self.color else text

    def on_run_finished(self, run: TestRun) -> None:
        self.clear()
        if run.flows and self.color:
            # the table already shows the outcome of every flow
            return
        if run.passed:
            mark = self._styled("✓", "green")
            click.echo(f"{mark} Run {run.id} on {run.device_label} passed")
        else:
            mark = self._styled("✗", "red")
            click.echo(f"{mark} Run {run.id} on {run.device_label} failed")

    def summary(self, runs: Sequence[TestRun], success: bool) -> None:
        """Final outcome, with the report reference of every failing run."""
        self.clear()
        if success:
            click.echo(self._styled("All test runs passed", "green"))
            return
        failed = [run for run in runs if not run.passed]
        click.echo(self._styled(f"{len(failed)} test run(s) failed", "red"), err=True)
        for run in failed:
            line = f"  Run {run.id} on {run.device_label}"
            if run.report:
                line += f": {run.report}"
            click.echo(line, err=True)
