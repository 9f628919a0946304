from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from ..reconcile.model import ReservationReport
from ..util.serialization import stable_json_dumps


def write_report_json(report: ReservationReport, path: Path) -> None:
    """
    Write the persisted report layout with stable key ordering.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(stable_json_dumps(report.to_dict(), indent=2) + "\n", encoding="utf-8")


def write_run_summary(summary: Dict[str, Any], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(stable_json_dumps(summary, indent=2) + "\n", encoding="utf-8")
