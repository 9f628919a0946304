from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from ..util.errors import map_aws_error
from ..util.pagination import DEFAULT_MAX_PAGES, paginate
from .aggregate import ReservationAggregator
from .classify import classify, classify_platform
from .model import ReservationKey

# Fixed query constraints; reservations outside them never reach the report.
RESERVATION_OFFERING_TYPE = "Heavy Utilization"
RESERVATION_FILTERS: List[Dict[str, Any]] = [{"Name": "state", "Values": ["active"]}]
NON_TERMINAL_STATES: Tuple[str, ...] = ("pending", "running", "shutting-down", "stopping", "stopped")
INSTANCE_FILTERS: List[Dict[str, Any]] = [{"Name": "instance-state-name", "Values": list(NON_TERMINAL_STATES)}]


@dataclass(frozen=True)
class ReservationRecord:
    availability_zone: str
    product_description: str
    instance_type: str
    count: int


@dataclass(frozen=True)
class UsageRecord:
    availability_zone: str
    platform: Optional[str]
    instance_type: str


def collect_reservations(ec2: Any, *, context: str = "") -> Iterator[ReservationRecord]:
    """
    Yield active heavy-utilization reserved instances visible to the EC2 client.
    DescribeReservedInstances is not paginated and returns the complete set in one call.
    """
    try:
        resp = ec2.describe_reserved_instances(
            OfferingType=RESERVATION_OFFERING_TYPE,
            Filters=RESERVATION_FILTERS,
        )
    except Exception as e:
        mapped = map_aws_error(e, f"AWS error while describing reserved instances {context}".rstrip())
        if mapped:
            raise mapped from e
        raise
    for item in resp.get("ReservedInstances") or []:
        yield ReservationRecord(
            availability_zone=str(item.get("AvailabilityZone") or ""),
            product_description=str(item.get("ProductDescription") or ""),
            instance_type=str(item.get("InstanceType") or ""),
            count=int(item.get("InstanceCount") or 0),
        )


def collect_usage(
    ec2: Any,
    *,
    max_pages: Optional[int] = DEFAULT_MAX_PAGES,
    context: str = "",
) -> Iterator[UsageRecord]:
    """
    Yield every instance in a non-terminal state, following NextToken until the
    provider stops returning one. Raises PaginationExhaustedError after max_pages requests.
    """

    def fetch(token: Optional[str]) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        kwargs: Dict[str, Any] = {"Filters": INSTANCE_FILTERS}
        if token:
            kwargs["NextToken"] = token
        try:
            resp = ec2.describe_instances(**kwargs)
        except Exception as e:
            mapped = map_aws_error(e, f"AWS error while describing instances {context}".rstrip())
            if mapped:
                raise mapped from e
            raise
        instances: List[Dict[str, Any]] = []
        for group in resp.get("Reservations") or []:
            instances.extend(group.get("Instances") or [])
        return instances, resp.get("NextToken")

    for inst in paginate(fetch, max_pages=max_pages):
        placement = inst.get("Placement") or {}
        yield UsageRecord(
            availability_zone=str(placement.get("AvailabilityZone") or ""),
            platform=inst.get("Platform"),
            instance_type=str(inst.get("InstanceType") or ""),
        )


def fold_reservations(records: Iterable[ReservationRecord], aggregator: ReservationAggregator) -> int:
    """
    Add each record's count to its bucket's reserved counter. Returns the number of records folded.
    """
    folded = 0
    for rec in records:
        key = ReservationKey(rec.availability_zone, classify(rec.product_description), rec.instance_type)
        aggregator.add_reserved(key, rec.count)
        folded += 1
    return folded


def fold_usage(records: Iterable[UsageRecord], aggregator: ReservationAggregator) -> int:
    """
    Increment the used counter of each instance's bucket by one. Returns the number of instances folded.
    """
    folded = 0
    for rec in records:
        key = ReservationKey(rec.availability_zone, classify_platform(rec.platform), rec.instance_type)
        aggregator.add_used(key)
        folded += 1
    return folded
