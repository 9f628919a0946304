from __future__ import annotations

import threading
from typing import Dict, Iterator, List

from .model import ReservationDetail, ReservationKey


class ReservationAggregator:
    """
    Mapping from ReservationKey to its ReservationDetail bucket.

    Buckets are created explicitly by get_or_create (zero counters) and never
    removed. Every read and write takes the same lock, so one aggregator can be
    shared between threads; the agent instead gives each account/region worker
    its own aggregator and merges them once the worker has finished.
    """

    def __init__(self) -> None:
        self._details: Dict[ReservationKey, ReservationDetail] = {}
        self._lock = threading.Lock()

    def _get_or_create_locked(self, key: ReservationKey) -> ReservationDetail:
        detail = self._details.get(key)
        if detail is None:
            detail = ReservationDetail.for_key(key)
            self._details[key] = detail
        return detail

    def get_or_create(self, key: ReservationKey) -> ReservationDetail:
        with self._lock:
            return self._get_or_create_locked(key)

    def add_reserved(self, key: ReservationKey, count: int) -> None:
        with self._lock:
            self._get_or_create_locked(key).add_reserved(count)

    def add_used(self, key: ReservationKey, count: int = 1) -> None:
        with self._lock:
            self._get_or_create_locked(key).add_used(count)

    def merge(self, other: ReservationAggregator) -> None:
        """
        Add every bucket of other into this aggregator.
        """
        if other is self:
            raise ValueError("Cannot merge an aggregator into itself")
        incoming = other.details()
        with self._lock:
            for detail in incoming:
                bucket = self._get_or_create_locked(detail.key)
                bucket.add_reserved(detail.reserved)
                bucket.add_used(detail.used)

    def details(self) -> List[ReservationDetail]:
        """
        Return copies of all buckets sorted by key.
        """
        with self._lock:
            return [self._details[k].copy() for k in sorted(self._details)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._details)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._details

    def __iter__(self) -> Iterator[ReservationDetail]:
        return iter(self.details())
