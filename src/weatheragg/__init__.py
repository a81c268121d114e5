"""weatheragg - Lamport-ordered weather data aggregation server and clients."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("weatheragg")
except PackageNotFoundError:
    __version__ = "0+local"
from weatheragg.client import ContentServer, GetClient, HttpTransport, UploadResult
from weatheragg.clock import LamportClock
from weatheragg.codec import decode_record, decode_records, encode_record, encode_records
from weatheragg.config import AggregatorConfig, ClientConfig
from weatheragg.exceptions import (
    FieldMismatch,
    PersistenceError,
    ProtocolViolation,
    RecordDecodeError,
    UnexpectedStatusError,
    VerificationError,
    WeatherAggError,
    WeatherConfigError,
    WeatherTransportError,
)
from weatheragg.models import StationRecord
from weatheragg.persistence import SnapshotFile
from weatheragg.server import AggregationServer
from weatheragg.store import UpsertResult, WeatherStore

__all__ = [
    "__version__",
    "AggregationServer",
    "AggregatorConfig",
    "ClientConfig",
    "ContentServer",
    "FieldMismatch",
    "GetClient",
    "HttpTransport",
    "LamportClock",
    "PersistenceError",
    "ProtocolViolation",
    "RecordDecodeError",
    "SnapshotFile",
    "StationRecord",
    "UnexpectedStatusError",
    "UploadResult",
    "UpsertResult",
    "VerificationError",
    "WeatherAggError",
    "WeatherConfigError",
    "WeatherStore",
    "WeatherTransportError",
    "decode_record",
    "decode_records",
    "encode_record",
    "encode_records",
]
