from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..util.time import parse_iso, to_iso

KEY_SEPARATOR = ":"


class OsCategory(str, Enum):
    LINUX = "LINUX"
    WINDOWS = "WINDOWS"
    RHEL = "RHEL"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True, order=True)
class ReservationKey:
    """
    Identity of one reconciliation bucket. Field order (zone, os, type) is also
    the order of the delimited string form.
    """

    availability_zone: str
    os: OsCategory
    instance_type: str

    def to_string(self) -> str:
        return KEY_SEPARATOR.join((self.availability_zone, self.os.value, self.instance_type))

    @classmethod
    def parse(cls, text: str) -> ReservationKey:
        parts = text.split(KEY_SEPARATOR)
        if len(parts) != 3:
            raise ValueError(f"Malformed reservation key: {text!r}")
        zone, os_name, instance_type = parts
        return cls(zone, OsCategory(os_name.strip().upper()), instance_type)


class _Bucket:
    """Derived values shared by the mutable accumulator and the published row."""

    zone: str
    os: OsCategory
    instance_type: str
    reserved: int
    used: int

    @property
    def key(self) -> ReservationKey:
        return ReservationKey(self.zone, self.os, self.instance_type)

    @property
    def unused(self) -> int:
        return max(self.reserved - self.used, 0)

    @property
    def uncovered(self) -> int:
        return max(self.used - self.reserved, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zone": self.zone,
            "os": self.os.value,
            "instanceType": self.instance_type,
            "reserved": self.reserved,
            "used": self.used,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Any:
        return cls(  # type: ignore[call-arg]
            zone=str(data["zone"]),
            os=OsCategory(str(data["os"])),
            instance_type=str(data["instanceType"]),
            reserved=int(data.get("reserved") or 0),
            used=int(data.get("used") or 0),
        )


@dataclass
class ReservationDetail(_Bucket):
    zone: str
    os: OsCategory
    instance_type: str
    reserved: int = 0
    used: int = 0

    @classmethod
    def for_key(cls, key: ReservationKey) -> ReservationDetail:
        return cls(zone=key.availability_zone, os=key.os, instance_type=key.instance_type)

    def add_reserved(self, count: int) -> None:
        if count < 0:
            raise ValueError(f"Reserved count must be >= 0, got {count}")
        self.reserved += count

    def add_used(self, count: int = 1) -> None:
        if count < 0:
            raise ValueError(f"Used count must be >= 0, got {count}")
        self.used += count

    def copy(self) -> ReservationDetail:
        return ReservationDetail(self.zone, self.os, self.instance_type, self.reserved, self.used)

    def freeze(self) -> ReservationRow:
        return ReservationRow(self.zone, self.os, self.instance_type, self.reserved, self.used)


@dataclass(frozen=True)
class ReservationRow(_Bucket):
    """One bucket of a published report. Read-only."""

    zone: str
    os: OsCategory
    instance_type: str
    reserved: int = 0
    used: int = 0


@dataclass(frozen=True)
class ReservationReport:
    start: datetime
    end: datetime
    reservations: Tuple[ReservationRow, ...] = ()

    @classmethod
    def build(
        cls,
        start: datetime,
        end: datetime,
        details: Iterable[ReservationDetail | ReservationRow],
    ) -> ReservationReport:
        """
        Freeze a set of buckets into a report. Buckets are converted to read-only rows
        and sorted by key, so neither the aggregator nor any holder of the report can
        change what was published.
        """
        rows = (d if isinstance(d, ReservationRow) else d.freeze() for d in details)
        return cls(start=start, end=end, reservations=tuple(sorted(rows, key=lambda r: r.key)))

    def find(self, key: ReservationKey) -> Optional[ReservationRow]:
        for row in self.reservations:
            if row.key == key:
                return row
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": to_iso(self.start),
            "end": to_iso(self.end),
            "reservations": [d.to_dict() for d in self.reservations],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ReservationReport:
        return cls.build(
            start=parse_iso(str(data["start"])),
            end=parse_iso(str(data["end"])),
            details=[ReservationRow.from_dict(d) for d in data.get("reservations") or []],
        )

    def totals(self) -> Dict[str, int]:
        reserved = sum(d.reserved for d in self.reservations)
        used = sum(d.used for d in self.reservations)
        return {
            "keys": len(self.reservations),
            "reserved": reserved,
            "used": used,
            "unused": sum(d.unused for d in self.reservations),
            "uncovered": sum(d.uncovered for d in self.reservations),
        }


@dataclass
class CacheData:
    """A single cache entry: identity, attributes and (unused here) relationships."""

    id: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    relationships: Dict[str, List[str]] = field(default_factory=dict)
    ttl_seconds: int = -1


CacheResult = Dict[str, List[CacheData]]
