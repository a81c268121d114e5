"""Reader role: fetch the aggregated view."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from urllib.parse import urlencode

from weatheragg._constants import WEATHER_PATH
from weatheragg.client._transport import HttpTransport, Transport
from weatheragg.client.retry import AttemptResult, Ok, WireResponse, run_with_retry
from weatheragg.clock import LamportClock
from weatheragg.codec import decode_record, decode_records
from weatheragg.config import ClientConfig
from weatheragg.exceptions import UnexpectedStatusError
from weatheragg.models import StationRecord

_logger = logging.getLogger(__name__)


def format_record(record: StationRecord) -> str:
    """Render a record as ``key: value`` lines."""
    return "\n".join(f"{key}: {value}" for key, value in record.flat().items())


class GetClient:
    """Reads station data from the aggregator."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: Transport | None = None,
        clock: LamportClock | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._transport: Transport = transport or HttpTransport(config)
        self._clock = clock or LamportClock()
        self._sleep = sleep

    @property
    def clock(self) -> LamportClock:
        return self._clock

    async def _attempt(self, path: str) -> AttemptResult:
        result = await self._transport.exchange("GET", path, lamport_clock=self._clock.tick())
        if isinstance(result, Ok) and result.response.lamport_clock is not None:
            self._clock.observe(result.response.lamport_clock)
        return result

    async def _get(self, path: str) -> WireResponse:
        outcome = await run_with_retry(
            lambda _n: self._attempt(path),
            max_attempts=self._config.max_attempts,
            delay=self._config.retry_delay,
            description=f"GET {path}",
            sleep=self._sleep,
        )
        _logger.info("GET %s -> %d", path, outcome.response.status)
        return outcome.response

    async def fetch_all(self) -> list[StationRecord]:
        """All stations, most recently merged first. Empty when the store is."""
        response = await self._get(WEATHER_PATH)
        if response.status == 204:
            return []
        if response.status != 200:
            raise UnexpectedStatusError(
                f"Server returned status code {response.status}",
                status_code=response.status,
                body=response.body,
            )
        return decode_records(response.body)

    async def fetch_station(self, station_id: str) -> StationRecord | None:
        """One station, or ``None`` when the aggregator does not know it."""
        response = await self._get(f"{WEATHER_PATH}?{urlencode({'id': station_id})}")
        if response.status == 404:
            return None
        if response.status != 200:
            raise UnexpectedStatusError(
                f"Server returned status code {response.status}",
                status_code=response.status,
                body=response.body,
            )
        return decode_record(response.body)
