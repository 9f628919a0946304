from __future__ import annotations

from typing import Optional

from ..cache.base import ProviderCache
from ..logging import get_logger
from ..util.errors import PublishError
from .model import CacheData, CacheResult, ReservationReport

LOG = get_logger(__name__)

RESERVATION_REPORTS_NAMESPACE = "reservation-reports"
LATEST_ID = "latest"
REPORT_ATTRIBUTE = "report"


def build_cache_result(report: ReservationReport) -> CacheResult:
    """
    Wrap the report in the single 'latest' entry of the reservation-reports namespace.
    """
    entry = CacheData(id=LATEST_ID, attributes={REPORT_ATTRIBUTE: report}, relationships={})
    return {RESERVATION_REPORTS_NAMESPACE: [entry]}


def publish_cache_result(cache: ProviderCache, result: CacheResult) -> None:
    """
    Authoritatively replace each namespace in result with its entries.
    """
    for namespace, entries in result.items():
        try:
            cache.replace_namespace(namespace, entries)
        except Exception as e:
            raise PublishError(f"Failed to publish namespace {namespace}: {e}") from e
        LOG.info(
            "Published cache namespace",
            extra={"step": "publish", "phase": "complete", "namespace": namespace, "entries": len(entries)},
        )


def publish(cache: ProviderCache, report: ReservationReport) -> CacheResult:
    result = build_cache_result(report)
    publish_cache_result(cache, result)
    return result


def latest_report(cache: ProviderCache) -> Optional[ReservationReport]:
    entry = cache.get(RESERVATION_REPORTS_NAMESPACE, LATEST_ID)
    if entry is None:
        return None
    report = entry.attributes.get(REPORT_ATTRIBUTE)
    return report if isinstance(report, ReservationReport) else None
