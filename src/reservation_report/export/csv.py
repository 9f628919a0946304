from __future__ import annotations

import csv
from pathlib import Path

from ..reconcile.model import ReservationReport
from .rows import REPORT_FIELDS, iter_report_rows


def write_csv(report: ReservationReport, path: Path) -> None:
    """
    Write one CSV row per reservation bucket, header first, in report order.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=REPORT_FIELDS)
        writer.writeheader()
        for row in iter_report_rows(report):
            writer.writerow(row)
