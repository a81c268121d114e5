from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from weatheragg.client.retry import AttemptResult, Ok, TransportFailure, WireResponse
from weatheragg.clock import LamportClock
from weatheragg.handler import RequestHandler
from weatheragg.protocol import Request
from weatheragg.store import WeatherStore

ADELAIDE_FILE = (
    "id:IDS60901\n"
    "name:Adelaide (West Terrace /  ngayirdapira)\n"
    "state:SA\n"
    "time_zone:CST\n"
    "lat:-34.9\n"
    "lon:138.6\n"
    "local_date_time:15/04:00pm\n"
    "local_date_time_full:20230715160000\n"
    "air_temp:13.3\n"
    "apparent_t:9.5\n"
    "cloud:Partly cloudy\n"
    "dewpt:5.7\n"
    "press:1023.9\n"
    "rel_hum:60\n"
    "wind_dir:S\n"
    "wind_spd_kmh:15\n"
    "wind_spd_kt:8\n"
)


class FakeWallClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class SentRequest:
    method: str
    path: str
    lamport_clock: int
    body: str
    delivered: bool


@dataclass
class InProcessAggregator:
    """A real RequestHandler reachable through the client Transport protocol."""

    wall_clock: FakeWallClock = field(default_factory=FakeWallClock)
    clock: LamportClock = field(default_factory=LamportClock)
    sent: list[SentRequest] = field(default_factory=list)
    fail_first: dict[str, int] = field(default_factory=dict)
    tamper_get: Callable[[str], str] | None = None

    def __post_init__(self) -> None:
        self.store = WeatherStore(self.clock, wall_clock=self.wall_clock)
        self.handler = RequestHandler(self.store, self.clock)

    def sent_by_method(self, method: str) -> list[SentRequest]:
        return [s for s in self.sent if s.method == method]

    async def exchange(
        self,
        method: str,
        path: str,
        *,
        body: str = "",
        lamport_clock: int,
    ) -> AttemptResult:
        remaining = self.fail_first.get(method, 0)
        if remaining > 0:
            self.fail_first[method] = remaining - 1
            self.sent.append(SentRequest(method, path, lamport_clock, body, delivered=False))
            return TransportFailure(f"{method} {path}: ConnectionRefusedError")

        self.sent.append(SentRequest(method, path, lamport_clock, body, delivered=True))
        payload = body.encode("utf-8")
        headers = {"lamport-clock": str(lamport_clock), "content-length": str(len(payload))}
        request = Request(method=method, path=path, version="HTTP/1.1", headers=headers, body=payload)
        response = await self.handler.handle(request)
        text = response.body
        if method == "GET" and response.status == 200 and self.tamper_get is not None:
            text = self.tamper_get(text)
        return Ok(WireResponse(status=response.status, lamport_clock=response.lamport_clock, body=text))


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


@pytest.fixture
def aggregator() -> InProcessAggregator:
    return InProcessAggregator()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def adelaide_file(tmp_path):
    path = tmp_path / "IDS60901.txt"
    path.write_text(ADELAIDE_FILE, encoding="utf-8")
    return path


@pytest.fixture
def wall_clock() -> FakeWallClock:
    return FakeWallClock()


@pytest.fixture
def adelaide_text() -> str:
    return ADELAIDE_FILE
