"""Custom exception hierarchy for weatheragg."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class WeatherAggError(Exception):
    """Base exception for all weatheragg errors."""


class WeatherConfigError(WeatherAggError):
    """Invalid or missing configuration."""


class RecordDecodeError(WeatherAggError):
    """A station record could not be decoded.

    Raised for malformed JSON, empty values, missing ``id``/``name``,
    nested values, and unusable producer input files.
    """


class ProtocolViolation(WeatherAggError):
    """A message did not follow the aggregator's wire protocol.

    On the server side ``status_code`` is the status to answer with (400).
    """

    def __init__(self, message: str, *, status_code: int = 400) -> None:
        self.status_code = status_code
        super().__init__(message)


class WeatherTransportError(WeatherAggError):
    """Connection-level failure (refused, reset, timeout).

    When raised after a retry loop gave up, ``attempts`` holds how many
    attempts were made.
    """

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 1,
        endpoint: str = "",
    ) -> None:
        self.attempts = attempts
        self.endpoint = endpoint
        super().__init__(message)


class UnexpectedStatusError(WeatherAggError):
    """The aggregator answered with a status the caller treats as failure."""

    def __init__(self, message: str, *, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


@dataclass(frozen=True)
class FieldMismatch:
    """One key whose sent and stored values differ.

    ``None`` on either side means the key was missing there.
    """

    key: str
    sent: Any
    stored: Any


class VerificationError(WeatherAggError):
    """Read-after-write check found the aggregator's copy differs.

    This is a workflow error for the producer and is never retried
    automatically.
    """

    def __init__(self, station_id: str, mismatches: list[FieldMismatch]) -> None:
        self.station_id = station_id
        self.mismatches = mismatches
        keys = ", ".join(m.key for m in mismatches)
        super().__init__(f"Uploaded data for {station_id} does not match the aggregator: {keys}")


class PersistenceError(WeatherAggError):
    """Reading or writing the storage file failed."""
