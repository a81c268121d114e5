"""Fixed-delay retry over explicit attempt results.

Each attempt returns one of :class:`Ok`, :class:`TransportFailure` or
:class:`ProtocolFailure`; only transport failures are retried. A fresh
connection is opened for every attempt by the transport, so the number of
reconnects is always ``attempts - 1``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from weatheragg.exceptions import ProtocolViolation, WeatherTransportError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WireResponse:
    """A response as seen by a client."""

    status: int
    lamport_clock: int | None
    body: str = ""


@dataclass(frozen=True, slots=True)
class Ok:
    response: WireResponse


@dataclass(frozen=True, slots=True)
class TransportFailure:
    """Connection refused, reset or timed out."""

    message: str


@dataclass(frozen=True, slots=True)
class ProtocolFailure:
    """The peer answered, but not in the expected wire format."""

    message: str


AttemptResult = Ok | TransportFailure | ProtocolFailure


@dataclass(frozen=True, slots=True)
class RetryOutcome:
    """Successful response plus how many attempts it took."""

    response: WireResponse
    attempts: int

    @property
    def reconnects(self) -> int:
        return self.attempts - 1


async def run_with_retry(
    attempt: Callable[[int], Awaitable[AttemptResult]],
    *,
    max_attempts: int,
    delay: float,
    description: str = "request",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RetryOutcome:
    """Run *attempt* until it succeeds or *max_attempts* transport failures.

    *attempt* receives the 1-based attempt number. Raises
    :class:`WeatherTransportError` when every attempt failed at the transport
    level, and :class:`ProtocolViolation` on the first malformed response.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    last_failure = ""
    for number in range(1, max_attempts + 1):
        result = await attempt(number)
        match result:
            case Ok(response=response):
                if number > 1:
                    _logger.info("%s succeeded on attempt %d of %d", description, number, max_attempts)
                return RetryOutcome(response=response, attempts=number)
            case ProtocolFailure(message=message):
                raise ProtocolViolation(f"{description}: {message}", status_code=0)
            case TransportFailure(message=message):
                last_failure = message
                _logger.warning("%s attempt %d of %d failed: %s", description, number, max_attempts, message)
                if number < max_attempts:
                    _logger.info("Retrying in %.1fs...", delay)
                    await sleep(delay)

    raise WeatherTransportError(
        f"{description} failed after {max_attempts} attempt(s): {last_failure}",
        attempts=max_attempts,
    )
