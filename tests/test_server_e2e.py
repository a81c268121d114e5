"""End-to-end tests against a real listening aggregation server."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass

import pytest

from weatheragg import (
    AggregationServer,
    AggregatorConfig,
    ClientConfig,
    ContentServer,
    GetClient,
    HttpTransport,
    StationRecord,
    WeatherTransportError,
)
from weatheragg.client.retry import AttemptResult, TransportFailure


@dataclass
class RawResponse:
    status_line: str
    headers: dict[str, str]
    body: str

    @property
    def status(self) -> int:
        return int(self.status_line.split(" ")[1])

    @property
    def lamport_clock(self) -> int:
        return int(self.headers["lamport-clock"])


async def _raw(port: int, request: bytes) -> RawResponse:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    try:
        writer.write(request)
        await writer.drain()
        data = await asyncio.wait_for(reader.read(), timeout=5)
    finally:
        writer.close()
        await writer.wait_closed()
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("ascii").split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return RawResponse(status_line=lines[0], headers=headers, body=body.decode("utf-8"))


def _put_bytes(record: dict, clock: int | None = None) -> bytes:
    body = json.dumps(record).encode("utf-8")
    head = f"PUT /weather.json HTTP/1.1\r\nContent-Type: application/json\r\nContent-Length: {len(body)}\r\n"
    if clock is not None:
        head += f"Lamport-Clock: {clock}\r\n"
    return (head + "\r\n").encode("ascii") + body


def _config(tmp_path, **overrides) -> AggregatorConfig:
    return AggregatorConfig(host="127.0.0.1", port=0, storage_path=tmp_path / "data.txt", **overrides)


@pytest.mark.asyncio
async def test_raw_put_and_get(tmp_path) -> None:
    async with AggregationServer(_config(tmp_path)) as server:
        created = await _raw(server.port, _put_bytes({"id": "A", "name": "Alpha", "t": 1.5}, clock=10))
        fetched = await _raw(server.port, b"GET /weather.json?id=A HTTP/1.1\r\n\r\n")

    assert created.status_line == "HTTP/1.1 201 Created"
    assert created.lamport_clock > 10
    assert created.headers["content-type"] == "application/json"
    assert int(created.headers["content-length"]) == len(created.body.encode("utf-8"))
    assert fetched.status == 200
    assert json.loads(fetched.body)["t"] == 1.5
    assert fetched.lamport_clock > created.lamport_clock


@pytest.mark.asyncio
async def test_malformed_request_line_is_400(tmp_path) -> None:
    async with AggregationServer(_config(tmp_path)) as server:
        response = await _raw(server.port, b"HELLO\r\n\r\n")

    assert response.status == 400


@pytest.mark.asyncio
async def test_empty_get_is_204(tmp_path) -> None:
    async with AggregationServer(_config(tmp_path)) as server:
        response = await _raw(server.port, b"GET /weather.json HTTP/1.1\r\n\r\n")

    assert response.status == 204
    assert response.body == ""


@pytest.mark.asyncio
async def test_restart_keeps_data_and_restarts_clock(tmp_path) -> None:
    config = _config(tmp_path)
    async with AggregationServer(config) as server:
        await _raw(server.port, _put_bytes({"id": "A", "name": "Alpha", "t": "a:b,c"}, clock=40))
        before = json.loads((await _raw(server.port, b"GET /weather.json?id=A HTTP/1.1\r\n\r\n")).body)

    async with AggregationServer(config) as server:
        response = await _raw(server.port, b"GET /weather.json?id=A HTTP/1.1\r\n\r\n")

    assert response.status == 200
    assert response.lamport_clock == 2
    assert json.loads(response.body) == before


@pytest.mark.asyncio
async def test_restart_can_resume_clock(tmp_path) -> None:
    async with AggregationServer(_config(tmp_path)) as server:
        await _raw(server.port, _put_bytes({"id": "A", "name": "Alpha"}, clock=40))
        stored = server.store.get("A").logical_timestamp

    async with AggregationServer(_config(tmp_path, resume_clock=True)) as server:
        response = await _raw(server.port, b"GET /weather.json HTTP/1.1\r\n\r\n")

    assert response.lamport_clock > stored


@pytest.mark.asyncio
async def test_concurrent_puts_get_distinct_timestamps(tmp_path) -> None:
    async with AggregationServer(_config(tmp_path, max_workers=4)) as server:
        responses = await asyncio.gather(
            *(_raw(server.port, _put_bytes({"id": f"S{i:02d}", "name": f"Station {i}"})) for i in range(15))
        )
        listing = json.loads((await _raw(server.port, b"GET /weather.json HTTP/1.1\r\n\r\n")).body)

    assert all(r.status == 201 for r in responses)
    stamps = [r["lamportClock"] for r in listing]
    assert len(stamps) == 15
    assert len(set(stamps)) == 15
    assert stamps == sorted(stamps, reverse=True)


@pytest.mark.asyncio
async def test_background_sweep_expires_stations(tmp_path) -> None:
    config = _config(tmp_path, expiry_seconds=0.2, sweep_interval=0.05)
    async with AggregationServer(config) as server:
        await _raw(server.port, _put_bytes({"id": "A", "name": "Alpha"}))
        assert len(server.store) == 1
        await asyncio.sleep(0.6)
        assert len(server.store) == 0
        response = await _raw(server.port, b"GET /weather.json?id=A HTTP/1.1\r\n\r\n")

    assert response.status == 404
    assert (tmp_path / "data.txt").read_text(encoding="utf-8") == ""


@pytest.mark.asyncio
async def test_stop_flushes_store(tmp_path) -> None:
    server = AggregationServer(_config(tmp_path))
    await server.start()
    server.store.upsert(StationRecord(station_id="MEM", display_name="In memory only"))
    await server.stop()

    assert "id:MEM" in (tmp_path / "data.txt").read_text(encoding="utf-8")
    assert not server.is_running


@pytest.mark.asyncio
async def test_producer_and_reader_over_http(tmp_path, adelaide_file) -> None:
    async with AggregationServer(_config(tmp_path)) as server:
        producer = ContentServer(ClientConfig.for_producer(server.url, retry_delay=0.01), adelaide_file)
        reader = GetClient(ClientConfig(server.url, retry_delay=0.01))

        first = await producer.upload()
        second = await producer.upload()
        records = await reader.fetch_all()
        missing = await reader.fetch_station("NOPE")

    assert (first.status, second.status) == (201, 200)
    assert first.verified and second.verified
    assert [r.station_id for r in records] == ["IDS60901"]
    assert records[0].fields["local_date_time_full"] == "20230715160000"
    assert missing is None


class _FlakyTransport:
    """Drops the first ``failures`` PUTs before they reach the real transport."""

    def __init__(self, inner, failures: int) -> None:
        self.inner = inner
        self.failures = failures
        self.put_attempts = 0

    async def exchange(self, method: str, path: str, *, body: str = "", lamport_clock: int) -> AttemptResult:
        if method == "PUT":
            self.put_attempts += 1
            if self.failures > 0:
                self.failures -= 1
                return TransportFailure("ConnectionResetError: connection dropped")
        return await self.inner.exchange(method, path, body=body, lamport_clock=lamport_clock)


@pytest.mark.asyncio
async def test_producer_survives_dropped_connections(tmp_path, adelaide_file) -> None:
    async with AggregationServer(_config(tmp_path)) as server:
        config = ClientConfig.for_producer(server.url, retry_delay=0.01)
        transport = _FlakyTransport(HttpTransport(config), failures=2)
        producer = ContentServer(config, adelaide_file, transport=transport)

        result = await producer.upload()

    assert transport.put_attempts == 3
    assert result.put.reconnects == 2
    assert result.status == 201
    assert result.verified


@pytest.mark.asyncio
async def test_unreachable_server_exhausts_retries(tmp_path) -> None:
    async with AggregationServer(_config(tmp_path)) as server:
        url = server.url
    reader = GetClient(ClientConfig(url, retry_delay=0.01, request_timeout=1.0))

    with pytest.raises(WeatherTransportError) as excinfo:
        await reader.fetch_all()
    assert excinfo.value.attempts == 3


@pytest.mark.asyncio
async def test_start_skips_undecodable_storage_lines(tmp_path) -> None:
    (tmp_path / "data.txt").write_bytes(b"id:S1,name:Ok,lamportClock:3\n\xff\xfe garbage\n")

    async with AggregationServer(_config(tmp_path)) as server:
        response = await _raw(server.port, b"GET /weather.json?id=S1 HTTP/1.1\r\n\r\n")

    assert response.status == 200
    assert json.loads(response.body)["lamportClock"] == 3


@pytest.mark.asyncio
async def test_put_with_line_break_survives_restart(tmp_path) -> None:
    record = {"id": "S1", "name": "North\nGate", "air_temp": 5, "code": "0042"}
    async with AggregationServer(_config(tmp_path)) as server:
        assert (await _raw(server.port, _put_bytes(record))).status == 201

    async with AggregationServer(_config(tmp_path)) as server:
        response = await _raw(server.port, b"GET /weather.json?id=S1 HTTP/1.1\r\n\r\n")

    body = json.loads(response.body)
    assert body["name"] == "North\nGate"
    assert body["air_temp"] == 5
    assert body["code"] == "0042"
    assert body["lamportClock"] > 0


def test_server_built_outside_event_loop_serves_requests(tmp_path) -> None:
    server = AggregationServer(_config(tmp_path, max_workers=1))

    async def exercise() -> list[int]:
        async with server:
            responses = await asyncio.gather(
                *(_raw(server.port, _put_bytes({"id": f"S{i}", "name": "n"})) for i in range(3))
            )
        return [r.status for r in responses]

    assert asyncio.run(exercise()) == [201, 201, 201]
