"""HTTP transport for the producer and reader roles."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import aiohttp

from weatheragg._constants import CONTENT_TYPE, LAMPORT_CLOCK_HEADER, USER_AGENT
from weatheragg.client.retry import AttemptResult, Ok, ProtocolFailure, TransportFailure, WireResponse
from weatheragg.config import ClientConfig

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the client roles.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpTransport`) concrete.
    """

    async def exchange(
        self,
        method: str,
        path: str,
        *,
        body: str = "",
        lamport_clock: int,
    ) -> AttemptResult:
        ...


class HttpTransport:
    """One request per fresh connection; sockets are never reused."""

    def __init__(self, config: ClientConfig) -> None:
        self._config = config

    async def exchange(
        self,
        method: str,
        path: str,
        *,
        body: str = "",
        lamport_clock: int,
    ) -> AttemptResult:
        url = f"{self._config.server_url}{path}"
        headers = {
            "User-Agent": USER_AGENT,
            LAMPORT_CLOCK_HEADER: str(lamport_clock),
        }
        payload: bytes | None = None
        if method != "GET":
            payload = body.encode("utf-8")
            headers["Content-Type"] = CONTENT_TYPE

        _logger.debug("%s %s (Lamport clock %d)", method, url, lamport_clock)

        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)
        connector = aiohttp.TCPConnector(force_close=True)
        try:
            async with aiohttp.ClientSession(connector=connector, timeout=timeout) as session:
                async with session.request(method, url, data=payload, headers=headers) as resp:
                    raw = await resp.read()
                    status = resp.status
                    clock_header = resp.headers.get(LAMPORT_CLOCK_HEADER)
        except aiohttp.ClientResponseError as exc:
            return ProtocolFailure(f"Malformed response from {url}: {exc.message}")
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            return TransportFailure(f"{method} {url}: {type(exc).__name__}: {exc}")

        remote_clock: int | None = None
        if clock_header is not None:
            try:
                remote_clock = int(clock_header.strip())
            except ValueError:
                return ProtocolFailure(f"Invalid {LAMPORT_CLOCK_HEADER} header from {url}: {clock_header!r}")

        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            return ProtocolFailure(f"Response body from {url} is not UTF-8")

        _logger.debug("%s %s -> %d (Lamport clock %s)", method, url, status, remote_clock)
        return Ok(WireResponse(status=status, lamport_clock=remote_clock, body=text))
