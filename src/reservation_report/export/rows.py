from __future__ import annotations

from typing import Any, Dict, Iterator, List

from ..reconcile.model import ReservationReport

REPORT_FIELDS: List[str] = ["zone", "os", "instanceType", "reserved", "used", "unused", "uncovered"]


def iter_report_rows(report: ReservationReport) -> Iterator[Dict[str, Any]]:
    """
    Flat rows in report order (sorted by zone, os, instance type) with derived utilization columns.
    """
    for detail in report.reservations:
        row = detail.to_dict()
        row["unused"] = detail.unused
        row["uncovered"] = detail.uncovered
        yield {field: row[field] for field in REPORT_FIELDS}
