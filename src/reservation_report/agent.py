from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from time import perf_counter
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from .aws.accounts import Account, account_region_pairs
from .aws.regions import list_enabled_regions
from .cache.base import AgentDataType, Authority, ProviderCache
from .logging import get_logger
from .reconcile.aggregate import ReservationAggregator
from .reconcile.collectors import collect_reservations, collect_usage, fold_reservations, fold_usage
from .reconcile.model import CacheResult, ReservationReport
from .reconcile.publish import RESERVATION_REPORTS_NAMESPACE, build_cache_result, publish_cache_result
from .util.concurrency import parallel_map_ordered
from .util.errors import AuthResolutionError, AWSClientError, PaginationExhaustedError, PublishError
from .util.pagination import DEFAULT_MAX_PAGES
from .util.time import utc_now
from .util.timing import StepTimers, log_event

LOG = get_logger(__name__)

PROVIDER_NAME = "aws"
DEFAULT_WORKERS = 4
ALL_REGIONS = "*"

# Failures that only cost the affected account/region its contribution.
COLLECTOR_ERRORS: Tuple[type[BaseException], ...] = (
    AWSClientError,
    AuthResolutionError,
    PaginationExhaustedError,
    ClientError,
    BotoCoreError,
)


class ClientFactory(Protocol):
    def get(self, account: Account, region: str) -> Any:
        ...

    def discovery_region(self, account: Account) -> str:
        ...


class CollectionProgress(Protocol):
    def start_collection(self, total: int) -> None:
        ...

    def advance_collection(self, label: str, *, failed: bool = False) -> None:
        ...


@dataclass(frozen=True)
class CollectionFailure:
    account: str
    region: str
    error: str
    error_type: str

    def to_dict(self) -> dict:
        return {
            "account": self.account,
            "region": self.region,
            "error": self.error,
            "errorType": self.error_type,
        }


@dataclass
class PairOutcome:
    account: str
    region: str
    aggregator: Optional[ReservationAggregator] = None
    reservation_records: int = 0
    instances: int = 0
    duration_ms: int = 0
    failure: Optional[CollectionFailure] = None


@dataclass
class RunStats:
    pairs_total: int = 0
    pairs_ok: int = 0
    reservation_records: int = 0
    instances: int = 0
    failures: List[CollectionFailure] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "pairs_total": self.pairs_total,
            "pairs_ok": self.pairs_ok,
            "pairs_failed": len(self.failures),
            "reservation_records": self.reservation_records,
            "instances": self.instances,
            "failures": [f.to_dict() for f in self.failures],
        }


def _failure(account: str, region: str, exc: BaseException) -> CollectionFailure:
    return CollectionFailure(account=account, region=region, error=str(exc), error_type=type(exc).__name__)


class ReservationReportCachingAgent:
    """
    Reconciles reserved EC2 capacity against running instances for every
    configured account and region, producing one authoritative snapshot in the
    reservation-reports namespace per run.
    """

    PROVIDED_DATA_TYPES: Tuple[AgentDataType, ...] = (
        AgentDataType(RESERVATION_REPORTS_NAMESPACE, Authority.AUTHORITATIVE),
    )

    def __init__(
        self,
        client_factory: ClientFactory,
        accounts: Sequence[Account],
        *,
        workers: int = DEFAULT_WORKERS,
        max_pages: Optional[int] = DEFAULT_MAX_PAGES,
        clock: Callable[[], datetime] = utc_now,
        progress: Optional[CollectionProgress] = None,
    ) -> None:
        self.client_factory = client_factory
        self.accounts = list(accounts)
        self.workers = max(1, int(workers))
        self.max_pages = max_pages
        self.clock = clock
        self.progress = progress
        self.last_report: Optional[ReservationReport] = None
        self.last_stats: RunStats = RunStats()

    @property
    def provider_name(self) -> str:
        return PROVIDER_NAME

    @property
    def agent_type(self) -> str:
        return type(self).__name__

    @property
    def provided_data_types(self) -> Tuple[AgentDataType, ...]:
        return self.PROVIDED_DATA_TYPES

    @property
    def last_failures(self) -> List[CollectionFailure]:
        return list(self.last_stats.failures)

    def _resolve_regions(self, stats: RunStats) -> List[Account]:
        """
        Fill in regions for accounts configured without any by asking EC2 which are enabled.
        """
        resolved: List[Account] = []
        for account in self.accounts:
            if account.regions:
                resolved.append(account)
                continue
            try:
                region = self.client_factory.discovery_region(account)
                regions = list_enabled_regions(self.client_factory.get(account, region))
            except COLLECTOR_ERRORS as e:
                LOG.warning(
                    "Region discovery failed; skipping account",
                    extra={"step": "regions", "phase": "warning", "account": account.name, "error": str(e)},
                )
                stats.failures.append(_failure(account.name, ALL_REGIONS, e))
                continue
            LOG.info(
                "Discovered enabled regions",
                extra={"step": "regions", "phase": "complete", "account": account.name, "count": len(regions)},
            )
            resolved.append(account.with_regions(regions))
        return resolved

    def collect_pair(self, pair: Tuple[Account, str]) -> PairOutcome:
        """
        Collect one account/region into a private aggregator. Collector failures are
        captured on the outcome; anything else propagates and fails the run.
        """
        account, region = pair
        outcome = PairOutcome(account=account.name, region=region)
        context = f"({account.name}:{region})"
        started = perf_counter()
        LOG.info(
            "Fetching reservation report",
            extra={"step": "collect", "phase": "start", "account": account.name, "region": region},
        )
        local = ReservationAggregator()
        try:
            ec2 = self.client_factory.get(account, region)
            outcome.reservation_records = fold_reservations(collect_reservations(ec2, context=context), local)
            outcome.instances = fold_usage(collect_usage(ec2, max_pages=self.max_pages, context=context), local)
        except COLLECTOR_ERRORS as e:
            outcome.failure = _failure(account.name, region, e)
        outcome.duration_ms = int((perf_counter() - started) * 1000)
        if outcome.failure is not None:
            LOG.warning(
                "Collection failed; omitting account/region from report",
                extra={
                    "step": "collect",
                    "phase": "warning",
                    "account": account.name,
                    "region": region,
                    "error": outcome.failure.error,
                    "error_type": outcome.failure.error_type,
                    "duration_ms": outcome.duration_ms,
                },
            )
            return outcome
        outcome.aggregator = local
        LOG.info(
            "Collected reservations and usage",
            extra={
                "step": "collect",
                "phase": "complete",
                "account": account.name,
                "region": region,
                "reservation_records": outcome.reservation_records,
                "instances": outcome.instances,
                "keys": len(local),
                "duration_ms": outcome.duration_ms,
            },
        )
        return outcome

    def _on_pair_done(self, pair: Tuple[Account, str], outcome: PairOutcome) -> None:
        if self.progress is not None:
            self.progress.advance_collection(f"{outcome.account}:{outcome.region}", failed=outcome.failure is not None)

    def load_data(self) -> CacheResult:
        """
        Run one reconciliation and return the cache result holding the 'latest' report.
        Always yields exactly one entry, even if every account/region failed.
        """
        timers = StepTimers()
        stats = RunStats()
        start = self.clock()
        log_event(
            LOG,
            logging.INFO,
            "Reservation report run started",
            step="run",
            phase="start",
            timers=timers,
            accounts=len(self.accounts),
        )

        accounts = self._resolve_regions(stats)
        pairs = account_region_pairs(accounts)
        stats.pairs_total = len(pairs)
        if self.progress is not None:
            self.progress.start_collection(len(pairs))
        outcomes = parallel_map_ordered(self.collect_pair, pairs, max_workers=self.workers, on_done=self._on_pair_done)

        try:
            merged = ReservationAggregator()
            for outcome in outcomes:
                if outcome.failure is not None:
                    stats.failures.append(outcome.failure)
                    continue
                if outcome.aggregator is not None:
                    merged.merge(outcome.aggregator)
                stats.pairs_ok += 1
                stats.reservation_records += outcome.reservation_records
                stats.instances += outcome.instances
            end = self.clock()
            report = ReservationReport.build(start=start, end=end, details=merged.details())
            result = build_cache_result(report)
        except Exception as e:
            log_event(LOG, logging.ERROR, "Failed to assemble report", step="run", phase="error", timers=timers)
            raise PublishError(f"Failed to assemble reservation report: {e}") from e

        self.last_report = report
        self.last_stats = stats
        totals = report.totals()
        log_event(
            LOG,
            logging.WARNING if stats.failures else logging.INFO,
            "Reservation report run complete",
            step="run",
            phase="warning" if stats.failures else "complete",
            timers=timers,
            pairs_total=stats.pairs_total,
            pairs_ok=stats.pairs_ok,
            pairs_failed=len(stats.failures),
            keys=totals["keys"],
            reserved=totals["reserved"],
            used=totals["used"],
        )
        return result

    def run(self, cache: ProviderCache) -> CacheResult:
        """
        load_data followed by the authoritative publish of its result.
        """
        result = self.load_data()
        publish_cache_result(cache, result)
        return result
