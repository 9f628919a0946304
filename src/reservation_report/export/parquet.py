from __future__ import annotations

from pathlib import Path
from typing import Any

from ..logging import get_logger
from ..reconcile.model import ReservationReport
from ..util.time import to_iso
from .rows import iter_report_rows

LOG = get_logger(__name__)


class ParquetNotAvailable(RuntimeError):
    pass


def _require_pyarrow():
    try:
        import pyarrow as pa  # type: ignore
        import pyarrow.parquet as pq  # type: ignore
    except ImportError as e:  # pragma: no cover
        raise ParquetNotAvailable(
            "pyarrow is required for Parquet export. Install with: pip install .[parquet]"
        ) from e
    return pa, pq


def _report_schema(pa: Any, report: ReservationReport) -> Any:
    # Run window is stored as schema metadata.
    return pa.schema(
        [
            pa.field("zone", pa.string(), nullable=False),
            pa.field("os", pa.string(), nullable=False),
            pa.field("instanceType", pa.string(), nullable=False),
            pa.field("reserved", pa.int64(), nullable=False),
            pa.field("used", pa.int64(), nullable=False),
            pa.field("unused", pa.int64(), nullable=False),
            pa.field("uncovered", pa.int64(), nullable=False),
        ],
        metadata={"report_start": to_iso(report.start), "report_end": to_iso(report.end)},
    )


def write_parquet(report: ReservationReport, path: Path) -> None:
    """
    Write the report rows to a single Parquet file using pyarrow.
    """
    pa, pq = _require_pyarrow()
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = list(iter_report_rows(report))
    table = pa.Table.from_pylist(rows, schema=_report_schema(pa, report))
    pq.write_table(table, path)
    LOG.debug("Parquet written", extra={"step": "export", "phase": "complete", "artifact": "parquet", "rows": len(rows)})
