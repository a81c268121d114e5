"""Asyncio aggregation server: accept loop, worker limit, expiry sweep."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import timedelta
from typing import Any

from weatheragg.clock import LamportClock
from weatheragg.config import AggregatorConfig
from weatheragg.exceptions import ProtocolViolation, WeatherAggError
from weatheragg.handler import RequestHandler
from weatheragg.persistence import SnapshotFile
from weatheragg.protocol import Response, read_request
from weatheragg.store import WeatherStore

_logger = logging.getLogger(__name__)


class AggregationServer:
    """Central aggregator for weather station readings.

    Usage::

        async with AggregationServer(AggregatorConfig(port=4567)) as server:
            await server.serve_forever()

    One request is served per accepted connection. At most
    ``config.max_workers`` connections are handled at a time; the rest wait.
    """

    def __init__(
        self,
        config: AggregatorConfig | None = None,
        *,
        clock: LamportClock | None = None,
        store: WeatherStore | None = None,
    ) -> None:
        self._config = config or AggregatorConfig()
        self._clock = clock or LamportClock()
        self._store = store or WeatherStore(
            self._clock,
            capacity=self._config.capacity,
            expiry=timedelta(seconds=self._config.expiry_seconds),
        )
        self._snapshot = SnapshotFile(self._config.storage_path)
        self._handler = RequestHandler(self._store, self._clock, self._snapshot)
        self._server: asyncio.Server | None = None
        self._sweeper: asyncio.Task[None] | None = None
        self._workers = asyncio.Semaphore(self._config.max_workers)
        self._connections: set[asyncio.Task[Any]] = set()
        self._running = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> AggregationServer:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    @property
    def config(self) -> AggregatorConfig:
        return self._config

    @property
    def clock(self) -> LamportClock:
        return self._clock

    @property
    def store(self) -> WeatherStore:
        return self._store

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def port(self) -> int:
        """The bound TCP port (useful when configured with port 0)."""
        if self._server is None or not self._server.sockets:
            return self._config.port
        return int(self._server.sockets[0].getsockname()[1])

    @property
    def url(self) -> str:
        host = self._config.host
        if host in ("", "0.0.0.0", "::"):
            host = "127.0.0.1"
        return f"http://{host}:{self.port}"

    # ------------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------------

    def _load(self) -> None:
        records = self._snapshot.load()
        count = self._store.restore(records)
        if self._config.resume_clock and records:
            self._clock.observe(self._store.max_logical_timestamp())
        _logger.info("Restored %d station(s); Lamport clock at %d", count, self._clock.value)

    async def start(self) -> None:
        if self._running:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._load)

        self._server = await asyncio.start_server(
            self._on_connection,
            host=self._config.host,
            port=self._config.port,
        )
        self._running = True
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="weatheragg-expiry-sweep")
        _logger.info("Aggregation server started on %s:%d", self._config.host, self.port)

    async def serve_forever(self) -> None:
        if self._server is None:
            raise WeatherAggError("Server not started. Use 'async with AggregationServer(...) as server:'")
        with contextlib.suppress(asyncio.CancelledError):
            await self._server.serve_forever()

    async def stop(self) -> None:
        """Stop accepting, let in-flight requests finish, flush, release the socket."""
        if not self._running:
            return
        self._running = False

        server = self._server
        if server is not None:
            server.close()

        if self._connections:
            await asyncio.gather(*self._connections, return_exceptions=True)

        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None

        await self._handler.persist()

        if server is not None:
            await server.wait_closed()
        self._server = None
        _logger.info("Aggregation server stopped")

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await self._handler.expire()
            except Exception:
                _logger.exception("Expiry sweep failed")
            await asyncio.sleep(self._config.sweep_interval)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def _on_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        try:
            async with self._workers:
                await self._serve_one(reader, writer)
        finally:
            if task is not None:
                self._connections.discard(task)
            writer.close()
            with contextlib.suppress(ConnectionError, OSError):
                await writer.wait_closed()

    async def _serve_one(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        response: Response | None
        try:
            request = await asyncio.wait_for(read_request(reader), timeout=self._config.socket_timeout)
        except TimeoutError:
            _logger.warning("Timed out reading request from %s", peer)
            return
        except ProtocolViolation as exc:
            _logger.info("Protocol violation from %s: %s", peer, exc)
            response = self._handler.bad_request(str(exc))
        except (ConnectionError, OSError) as exc:
            _logger.warning("Error reading from %s: %s", peer, exc)
            return
        else:
            if request is None:
                return
            _logger.debug("Received request from %s: %s %s", peer, request.method, request.path)
            try:
                response = await self._handler.handle(request)
            except Exception as exc:
                _logger.exception("Unexpected error handling %s %s", request.method, request.path)
                response = self._handler.server_error(f"Error processing request: {exc}")

        try:
            writer.write(response.encode())
            await asyncio.wait_for(writer.drain(), timeout=self._config.socket_timeout)
        except (TimeoutError, ConnectionError, OSError) as exc:
            _logger.warning("Error writing response to %s: %s", peer, exc)
