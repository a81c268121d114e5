"""Producer and reader clients for the aggregation server."""

from weatheragg.client._transport import HttpTransport, Transport
from weatheragg.client.content_server import ContentServer, UploadResult, diff_fields
from weatheragg.client.get_client import GetClient, format_record
from weatheragg.client.retry import (
    AttemptResult,
    Ok,
    ProtocolFailure,
    RetryOutcome,
    TransportFailure,
    WireResponse,
    run_with_retry,
)

__all__ = [
    "AttemptResult",
    "ContentServer",
    "GetClient",
    "HttpTransport",
    "Ok",
    "ProtocolFailure",
    "RetryOutcome",
    "Transport",
    "TransportFailure",
    "UploadResult",
    "WireResponse",
    "diff_fields",
    "format_record",
    "run_with_retry",
]
