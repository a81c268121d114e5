"""Bounded, time-expiring in-memory store of station records.

This is the only component allowed to mutate the aggregator's records.
Three structures are kept in lockstep under one lock:

- ``_by_id``: station id -> current record
- ``_last_seen_at``: station id -> wall-clock instant of the last PUT
- ``_recency``: min-heap of ``(logical_timestamp, station_id)``
"""

from __future__ import annotations

import heapq
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from weatheragg._constants import EXPIRY_SECONDS, MAX_STORED_STATIONS
from weatheragg.clock import LamportClock
from weatheragg.models import StationRecord

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class UpsertResult:
    """Outcome of :meth:`WeatherStore.upsert`."""

    created: bool
    record: StationRecord
    evicted: str | None = None


class WeatherStore:
    """Authoritative table of the latest reading per station.

    Records are stamped from the aggregator's :class:`LamportClock` inside
    the store lock, so merge order and logical order always agree and no
    two merges share a timestamp.
    """

    def __init__(
        self,
        clock: LamportClock,
        *,
        capacity: int = MAX_STORED_STATIONS,
        expiry: timedelta = timedelta(seconds=EXPIRY_SECONDS),
        wall_clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._clock = clock
        self._capacity = capacity
        self._expiry = expiry
        self._wall_clock = wall_clock
        self._lock = threading.Lock()
        self._by_id: dict[str, StationRecord] = {}
        self._last_seen_at: dict[str, datetime] = {}
        self._recency: list[tuple[int, str]] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _discard(self, station_id: str) -> None:
        """Drop *station_id* from all three structures. Caller holds the lock."""
        self._by_id.pop(station_id, None)
        self._last_seen_at.pop(station_id, None)
        before = len(self._recency)
        self._recency = [entry for entry in self._recency if entry[1] != station_id]
        if len(self._recency) != before:
            heapq.heapify(self._recency)

    def _evict_oldest(self) -> str | None:
        """Evict the smallest logical timestamp while over capacity."""
        evicted: str | None = None
        while len(self._recency) > self._capacity:
            _, station_id = heapq.heappop(self._recency)
            self._by_id.pop(station_id, None)
            self._last_seen_at.pop(station_id, None)
            evicted = station_id
        return evicted

    def upsert(self, candidate: StationRecord) -> UpsertResult:
        """Stamp and merge *candidate*, replacing any record for its station."""
        with self._lock:
            station_id = candidate.station_id
            created = station_id not in self._by_id
            if not created:
                self._discard(station_id)

            record = candidate.stamped(self._clock.tick())
            self._by_id[station_id] = record
            self._last_seen_at[station_id] = self._wall_clock()
            heapq.heappush(self._recency, (record.logical_timestamp, station_id))

            evicted = self._evict_oldest()

        if evicted is not None:
            _logger.info("Evicted oldest station %s (capacity %d)", evicted, self._capacity)
        return UpsertResult(created=created, record=record, evicted=evicted)

    def expire_older_than(self, threshold: datetime) -> list[str]:
        """Remove every station last seen strictly before *threshold*."""
        with self._lock:
            expired = [sid for sid, seen in self._last_seen_at.items() if seen < threshold]
            for station_id in expired:
                self._discard(station_id)

        for station_id in expired:
            _logger.info("Removed expired data for station: %s", station_id)
        return expired

    def expire_stale(self, now: datetime | None = None) -> list[str]:
        """Expire stations older than the configured window relative to *now*."""
        reference = now if now is not None else self._wall_clock()
        return self.expire_older_than(reference - self._expiry)

    def restore(self, records: Iterable[StationRecord]) -> int:
        """Rehydrate from persisted records, keeping their timestamps.

        Every restored station is treated as just seen. Duplicate ids keep
        the highest timestamp; the capacity bound is enforced afterwards.
        """
        now = self._wall_clock()
        with self._lock:
            for record in records:
                existing = self._by_id.get(record.station_id)
                if existing is not None:
                    if existing.logical_timestamp >= record.logical_timestamp:
                        continue
                    self._discard(record.station_id)
                self._by_id[record.station_id] = record
                self._last_seen_at[record.station_id] = now
                heapq.heappush(self._recency, (record.logical_timestamp, record.station_id))
            self._evict_oldest()
            return len(self._by_id)

    def clear(self) -> None:
        """Forget every station."""
        with self._lock:
            self._by_id.clear()
            self._last_seen_at.clear()
            self._recency.clear()
        _logger.info("All data cleared from store")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, station_id: str) -> StationRecord | None:
        with self._lock:
            return self._by_id.get(station_id)

    def last_seen(self, station_id: str) -> datetime | None:
        with self._lock:
            return self._last_seen_at.get(station_id)

    def snapshot_by_recency_desc(self) -> list[StationRecord]:
        """Point-in-time copy of all records, newest logical timestamp first."""
        with self._lock:
            ordered = sorted(self._recency, reverse=True)
            return [self._by_id[station_id] for _, station_id in ordered]

    def max_logical_timestamp(self) -> int:
        with self._lock:
            return max((ts for ts, _ in self._recency), default=0)
