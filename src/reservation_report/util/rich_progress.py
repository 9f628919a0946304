from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from ..reconcile.model import ReservationReport
from ..util.time import to_iso


class RunProgress:
    """
    Progress bar over account/region pairs. Disabled instances are no-ops so
    callers never need to branch on whether a terminal is attached.
    """

    def __init__(self, *, enabled: bool, console: Optional[Console] = None) -> None:
        self._console = console or Console(stderr=True)
        self._enabled = bool(enabled and self._console.is_terminal)
        self._progress: Optional[Progress] = None
        self._task: Optional[Any] = None
        self._failed = 0
        self._started = False
        if self._enabled:
            self._progress = Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TextColumn("{task.fields[last]}", justify="left"),
                TimeElapsedColumn(),
                console=self._console,
                transient=True,
            )

    def __enter__(self) -> RunProgress:
        if self._enabled and self._progress and not self._started:
            self._progress.start()
            self._started = True
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        if self._enabled and self._progress and self._started:
            self._progress.stop()
            self._started = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def start_collection(self, total: int) -> None:
        if not self._enabled or not self._progress:
            return
        self._failed = 0
        self._task = self._progress.add_task("Collecting", total=total, last="")

    def advance_collection(self, label: str, *, failed: bool = False) -> None:
        if not self._enabled or not self._progress or self._task is None:
            return
        if failed:
            self._failed += 1
        last = f"{label} (failed: {self._failed})" if self._failed else label
        self._progress.update(self._task, advance=1, last=last)


def render_report_table(
    report: ReservationReport,
    *,
    console: Optional[Console] = None,
    limit: Optional[int] = None,
) -> None:
    table = Table(
        title=f"Reservations {to_iso(report.start, seconds=True)} .. {to_iso(report.end, seconds=True)}",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Zone", style="cyan")
    table.add_column("OS")
    table.add_column("Instance type")
    table.add_column("Reserved", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Unused", justify="right", style="yellow")
    table.add_column("Uncovered", justify="right", style="red")
    rows = report.reservations if limit is None else report.reservations[:limit]
    for d in rows:
        table.add_row(
            d.zone,
            d.os.value,
            d.instance_type,
            str(d.reserved),
            str(d.used),
            str(d.unused) if d.unused else "",
            str(d.uncovered) if d.uncovered else "",
        )
    (console or Console()).print(table)


def render_run_summary_table(
    *,
    status: str,
    totals: Dict[str, int],
    stats: Dict[str, Any],
    accounts: Sequence[str],
    outdir: str,
    console: Optional[Console] = None,
) -> None:
    table = Table(title="Run Summary", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Status", status)
    table.add_row("Accounts in scope", ", ".join(accounts))
    table.add_row("Account/regions", f"{stats.get('pairs_ok', 0)}/{stats.get('pairs_total', 0)} ok")
    table.add_row("Reservation keys", str(totals.get("keys", 0)))
    table.add_row("Reserved", str(totals.get("reserved", 0)))
    table.add_row("Used", str(totals.get("used", 0)))
    table.add_row("Unused reservations", str(totals.get("unused", 0)))
    table.add_row("Uncovered instances", str(totals.get("uncovered", 0)))
    for failure in stats.get("failures") or []:
        table.add_row("Failed", f"{failure['account']}:{failure['region']} {failure['errorType']}")
    table.add_row("Output dir", outdir)
    (console or Console()).print(table)
