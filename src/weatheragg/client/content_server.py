"""Producer role: upload a station file, then verify the aggregator's copy."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

from weatheragg._constants import WEATHER_PATH
from weatheragg.client._transport import HttpTransport, Transport
from weatheragg.client.retry import AttemptResult, Ok, RetryOutcome, WireResponse, run_with_retry
from weatheragg.clock import LamportClock
from weatheragg.codec import decode_record, encode_record, parse_station_text, record_from_text
from weatheragg.config import ClientConfig
from weatheragg.exceptions import FieldMismatch, UnexpectedStatusError, VerificationError
from weatheragg.models import StationRecord

_logger = logging.getLogger(__name__)

_PUT_SUCCESS = frozenset({200, 201, 204})


def diff_fields(sent: Mapping[str, Any], stored: Mapping[str, Any]) -> list[FieldMismatch]:
    """Every key whose value differs, including keys present on one side only."""
    mismatches: list[FieldMismatch] = []
    for key, value in sent.items():
        if key not in stored or stored[key] != value:
            mismatches.append(FieldMismatch(key=key, sent=value, stored=stored.get(key)))
    for key, value in stored.items():
        if key not in sent:
            mismatches.append(FieldMismatch(key=key, sent=None, stored=value))
    return mismatches


@dataclass(frozen=True)
class UploadResult:
    """What one :meth:`ContentServer.upload` achieved."""

    status: int
    record: StationRecord | None
    put: RetryOutcome
    verified: bool


class ContentServer:
    """Pushes one station's readings to the aggregator.

    Usage::

        producer = ContentServer(ClientConfig.for_producer("localhost:4567"), "IDS60901.txt")
        result = await producer.upload()
    """

    def __init__(
        self,
        config: ClientConfig,
        source: Path | str,
        *,
        transport: Transport | None = None,
        clock: LamportClock | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._source = Path(source)
        self._transport: Transport = transport or HttpTransport(config)
        self._clock = clock or LamportClock()
        self._sleep = sleep

    @property
    def clock(self) -> LamportClock:
        return self._clock

    @property
    def source(self) -> Path:
        return self._source

    def read_source(self) -> str:
        return self._source.read_text(encoding="utf-8")

    def build_record(self, text: str) -> StationRecord:
        """Parse the input file text into a record stamped with our clock."""
        self._clock.tick()  # parsing
        pairs = parse_station_text(text)
        self._clock.tick()  # conversion
        return record_from_text(pairs).stamped(self._clock.value)

    def _observe(self, response: WireResponse) -> None:
        if response.lamport_clock is not None:
            self._clock.observe(response.lamport_clock)

    async def _send(self, method: str, path: str, body: str = "") -> AttemptResult:
        result = await self._transport.exchange(method, path, body=body, lamport_clock=self._clock.tick())
        if isinstance(result, Ok):
            self._observe(result.response)
        return result

    async def _put(self, body: str) -> RetryOutcome:
        outcome = await run_with_retry(
            lambda _n: self._send("PUT", WEATHER_PATH, body),
            max_attempts=self._config.max_attempts,
            delay=self._config.retry_delay,
            description=f"PUT {WEATHER_PATH}",
            sleep=self._sleep,
        )
        response = outcome.response
        if response.status not in _PUT_SUCCESS:
            raise UnexpectedStatusError(
                f"PUT request failed. Response code: {response.status}: {response.body}",
                status_code=response.status,
                body=response.body,
            )
        return outcome

    async def verify(self, record: StationRecord) -> None:
        """Read the station back and compare it field by field.

        Raises :class:`VerificationError` on any difference.
        """
        self._clock.tick()  # starting verification
        path = f"{WEATHER_PATH}?{urlencode({'id': record.station_id})}"
        outcome = await run_with_retry(
            lambda _n: self._send("GET", path),
            max_attempts=self._config.max_attempts,
            delay=self._config.retry_delay,
            description=f"GET {path}",
            sleep=self._sleep,
        )
        response = outcome.response
        sent = record.flat(include_clock=False)
        if response.status == 404:
            raise VerificationError(record.station_id, diff_fields(sent, {}))
        if response.status != 200:
            raise UnexpectedStatusError(
                f"Verification GET failed. Response code: {response.status}",
                status_code=response.status,
                body=response.body,
            )
        stored = decode_record(response.body).flat(include_clock=False)
        mismatches = diff_fields(sent, stored)
        if mismatches:
            for mismatch in mismatches:
                _logger.warning(
                    "Mismatch for %s: sent=%r stored=%r",
                    mismatch.key,
                    mismatch.sent,
                    mismatch.stored,
                )
            raise VerificationError(record.station_id, mismatches)
        _logger.debug("Verified %d field(s) for %s", len(sent), record.station_id)

    async def upload(self) -> UploadResult:
        """Upload the source file once and verify the merge.

        An empty file sends a PUT with an empty body and skips verification.
        """
        self._clock.tick()  # starting to process
        text = self.read_source()

        if not text.strip():
            outcome = await self._put("")
            _logger.info("Sent empty update, aggregator answered %d", outcome.response.status)
            return UploadResult(status=outcome.response.status, record=None, put=outcome, verified=False)

        record = self.build_record(text)
        outcome = await self._put(encode_record(record))
        _logger.info(
            "Uploaded %s in %d attempt(s), aggregator answered %d",
            record.station_id,
            outcome.attempts,
            outcome.response.status,
        )
        await self.verify(record)
        return UploadResult(status=outcome.response.status, record=record, put=outcome, verified=True)

    async def upload_forever(self, interval: float, *, iterations: int | None = None) -> None:
        """Re-upload every *interval* seconds so the station never expires.

        Runs until cancelled, or for *iterations* uploads when given.
        """
        count = 0
        while iterations is None or count < iterations:
            await self.upload()
            count += 1
            if iterations is not None and count >= iterations:
                break
            await self._sleep(interval)
