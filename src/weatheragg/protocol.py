"""Request parsing and response serialization for the aggregator.

This is intentionally not a general HTTP implementation: a request is a
three-token request line, headers up to a blank line, and exactly
``Content-Length`` body bytes. Only ``Content-Length`` and ``Lamport-Clock``
carry meaning; every other header is ignored.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field

from weatheragg._constants import (
    CONTENT_LENGTH_HEADER,
    CONTENT_TYPE,
    HTTP_VERSION,
    LAMPORT_CLOCK_HEADER,
    MAX_BODY_BYTES,
    MAX_HEADER_LINES,
    MAX_LINE_BYTES,
    REASON_PHRASES,
)
from weatheragg.exceptions import ProtocolViolation

_logger = logging.getLogger(__name__)


class ParseState(enum.Enum):
    AWAITING_REQUEST_LINE = "awaiting_request_line"
    AWAITING_HEADERS = "awaiting_headers"
    AWAITING_BODY = "awaiting_body"
    DISPATCHED = "dispatched"


@dataclass(frozen=True)
class Request:
    """A fully read request."""

    method: str
    path: str
    version: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    @property
    def content_length(self) -> int:
        return len(self.body)

    @property
    def lamport_clock(self) -> int | None:
        """The peer's advertised clock, or ``None`` when the header is absent."""
        raw = self.header(LAMPORT_CLOCK_HEADER)
        return None if raw is None else int(raw)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8").strip()


@dataclass(frozen=True)
class Response:
    """Status, body and the clock value to advertise."""

    status: int
    lamport_clock: int
    body: str = ""

    @property
    def status_line(self) -> str:
        reason = REASON_PHRASES.get(self.status, "")
        return f"{HTTP_VERSION} {self.status} {reason}".rstrip()

    def encode(self) -> bytes:
        payload = self.body.encode("utf-8")
        head = (
            f"{self.status_line}\r\n"
            f"Content-Type: {CONTENT_TYPE}\r\n"
            f"{LAMPORT_CLOCK_HEADER}: {self.lamport_clock}\r\n"
            f"{CONTENT_LENGTH_HEADER}: {len(payload)}\r\n"
            "\r\n"
        )
        return head.encode("ascii") + payload


async def _read_line(reader: asyncio.StreamReader, max_line: int) -> bytes:
    try:
        line = await reader.readuntil(b"\n")
    except asyncio.IncompleteReadError as exc:
        # EOF without a terminator: hand back what arrived so the caller
        # can distinguish an empty connection from a truncated line.
        return exc.partial
    except asyncio.LimitOverrunError as exc:
        raise ProtocolViolation("Request line too long") from exc
    if len(line) > max_line:
        raise ProtocolViolation("Request line too long")
    return line


def _parse_int_header(name: str, raw: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ProtocolViolation(f"Invalid {name} header: {raw!r}") from exc
    if value < 0:
        raise ProtocolViolation(f"Invalid {name} header: {raw!r}")
    return value


async def read_request(
    reader: asyncio.StreamReader,
    *,
    max_line: int = MAX_LINE_BYTES,
    max_headers: int = MAX_HEADER_LINES,
    max_body: int = MAX_BODY_BYTES,
) -> Request | None:
    """Read one request from *reader*.

    Returns ``None`` when the peer closed the connection before sending
    anything. Raises :class:`ProtocolViolation` for a malformed request.
    """
    state = ParseState.AWAITING_REQUEST_LINE
    method = path = version = ""
    headers: dict[str, str] = {}
    content_length = 0
    body = b""

    while state is not ParseState.DISPATCHED:
        if state is ParseState.AWAITING_REQUEST_LINE:
            raw = await _read_line(reader, max_line)
            if not raw:
                return None
            line = raw.decode("latin-1").rstrip("\r\n")
            parts = line.split(" ")
            if len(parts) != 3 or not all(parts):
                raise ProtocolViolation(f"Invalid request format: {line!r}")
            method, path, version = parts
            state = ParseState.AWAITING_HEADERS

        elif state is ParseState.AWAITING_HEADERS:
            raw = await _read_line(reader, max_line)
            if not raw:
                raise ProtocolViolation("Connection closed before end of headers")
            line = raw.decode("latin-1").rstrip("\r\n")
            if not line:
                state = ParseState.AWAITING_BODY
                continue
            if len(headers) >= max_headers:
                raise ProtocolViolation("Too many headers")
            name, sep, value = line.partition(":")
            if not sep or not name.strip():
                # Unrecognised lines are ignored, just like unknown headers.
                _logger.debug("Ignoring malformed header line %r", line)
                continue
            key = name.strip().lower()
            value = value.strip()
            if key == CONTENT_LENGTH_HEADER.lower():
                content_length = _parse_int_header(CONTENT_LENGTH_HEADER, value)
            elif key == LAMPORT_CLOCK_HEADER.lower():
                _parse_int_header(LAMPORT_CLOCK_HEADER, value)
            headers[key] = value

        elif state is ParseState.AWAITING_BODY:
            if content_length > max_body:
                raise ProtocolViolation(f"Content-Length {content_length} exceeds limit of {max_body}")
            if content_length:
                try:
                    body = await reader.readexactly(content_length)
                except asyncio.IncompleteReadError as exc:
                    raise ProtocolViolation(
                        f"Body shorter than Content-Length ({len(exc.partial)} < {content_length})"
                    ) from exc
            state = ParseState.DISPATCHED

    return Request(method=method, path=path, version=version, headers=headers, body=body)
