"""Request dispatch for the aggregation server.

Routes:

- ``GET /weather.json``           all stations, newest first (204 when empty)
- ``GET /weather.json?id=<id>``   one station (404 when unknown)
- ``PUT /weather.json``           merge one record (201 new, 200 update,
  204 empty body, 500 undecodable body)

Anything else is answered with 400.
"""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import parse_qs, urlsplit

from weatheragg._constants import WEATHER_PATH
from weatheragg.clock import LamportClock
from weatheragg.codec import decode_record, encode_record, encode_records
from weatheragg.exceptions import PersistenceError, RecordDecodeError
from weatheragg.persistence import SnapshotFile
from weatheragg.protocol import Request, Response
from weatheragg.store import WeatherStore

_logger = logging.getLogger(__name__)


class RequestHandler:
    """Turns a parsed :class:`Request` into a :class:`Response`.

    The clock advances once when a request is dispatched (then merges the
    peer's value, if any) and once more when the response is built; the
    latter is the value advertised in ``Lamport-Clock``.
    """

    def __init__(
        self,
        store: WeatherStore,
        clock: LamportClock,
        snapshot: SnapshotFile | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._snapshot = snapshot

    @property
    def store(self) -> WeatherStore:
        return self._store

    def _respond(self, status: int, body: str = "") -> Response:
        response = Response(status=status, lamport_clock=self._clock.tick(), body=body)
        _logger.debug("Sending %s with Lamport clock %d", response.status_line, response.lamport_clock)
        return response

    def bad_request(self, message: str = "Invalid request") -> Response:
        return self._respond(400, message)

    def server_error(self, message: str) -> Response:
        return self._respond(500, message)

    async def persist(self) -> None:
        """Flush the store to disk without blocking the event loop.

        Failures are logged; the in-memory store stays authoritative.
        """
        if self._snapshot is None:
            return
        snapshot = self._snapshot
        loop = asyncio.get_running_loop()
        try:
            count = await loop.run_in_executor(None, snapshot.save, self._store.snapshot_by_recency_desc)
        except PersistenceError as exc:
            _logger.error("%s", exc)
            return
        _logger.debug("Persisted %d station(s)", count)

    async def expire(self) -> list[str]:
        """Run the expiry sweep and persist when it removed anything."""
        removed = self._store.expire_stale()
        if removed:
            await self.persist()
        return removed

    async def handle(self, request: Request) -> Response:
        self._clock.tick()
        remote = request.lamport_clock
        if remote is not None:
            self._clock.observe(remote)

        target = urlsplit(request.path)
        if target.path != WEATHER_PATH:
            _logger.info("Rejecting %s %s: unknown path", request.method, request.path)
            return self.bad_request()
        if request.method == "GET":
            return await self._handle_get(target.query)
        if request.method == "PUT":
            return await self._handle_put(request)
        _logger.info("Rejecting %s %s: unsupported method", request.method, request.path)
        return self.bad_request()

    async def _handle_get(self, query: str) -> Response:
        await self.expire()

        station_ids = parse_qs(query).get("id")
        if station_ids:
            station_id = station_ids[0]
            record = self._store.get(station_id)
            if record is None:
                _logger.info("No weather data available for station: %s", station_id)
                return self._respond(404, f"No weather data available for station: {station_id}")
            return self._respond(200, encode_record(record))

        records = self._store.snapshot_by_recency_desc()
        if not records:
            _logger.info("No weather data available. Sending 204 No Content.")
            return self._respond(204)
        return self._respond(200, encode_records(records))

    async def _handle_put(self, request: Request) -> Response:
        try:
            text = request.text
        except UnicodeDecodeError:
            _logger.warning("Invalid input data: body is not UTF-8")
            return self.server_error("Invalid input data: body is not UTF-8")
        if not text:
            _logger.info("No content sent in PUT request. Sending 204 No Content.")
            return self._respond(204)

        try:
            candidate = decode_record(text)
        except RecordDecodeError as exc:
            _logger.warning("Invalid input data: %s", exc)
            return self.server_error(f"Invalid input data: {exc}")

        result = self._store.upsert(candidate)
        await self.persist()

        station_id = result.record.station_id
        if result.created:
            _logger.info("New station %s merged at logical time %d", station_id, result.record.logical_timestamp)
            return self._respond(201, "Data created successfully")
        _logger.info("Weather data updated for station %s at logical time %d", station_id, result.record.logical_timestamp)
        return self._respond(200, "Data updated successfully")
