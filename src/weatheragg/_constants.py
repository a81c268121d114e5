"""Internal constants shared across the library."""

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 4567
WEATHER_PATH = "/weather.json"
HTTP_VERSION = "HTTP/1.1"
CONTENT_TYPE = "application/json"
USER_AGENT = "ATOMClient/1/0"

# Header names (matched case-insensitively on input).
CONTENT_LENGTH_HEADER = "Content-Length"
LAMPORT_CLOCK_HEADER = "Lamport-Clock"

# ------------------------------------------------------------------
# Store limits
# ------------------------------------------------------------------

MAX_STORED_STATIONS = 20
EXPIRY_SECONDS = 30.0
SWEEP_INTERVAL_SECONDS = 1.0

# ------------------------------------------------------------------
# Server resources
# ------------------------------------------------------------------

SOCKET_TIMEOUT_SECONDS = 5.0
WORKER_POOL_SIZE = 10
MAX_LINE_BYTES = 8192
MAX_HEADER_LINES = 100
MAX_BODY_BYTES = 1024 * 1024
STORAGE_FILE = "aggregation_server_data.txt"

# ------------------------------------------------------------------
# Client retry policy
# ------------------------------------------------------------------

MAX_ATTEMPTS = 3
READER_RETRY_DELAY_SECONDS = 1.0
PRODUCER_RETRY_DELAY_SECONDS = 3.0
REQUEST_TIMEOUT_SECONDS = 5.0

# ------------------------------------------------------------------
# Record wire keys
# ------------------------------------------------------------------

ID_KEY = "id"
NAME_KEY = "name"
CLOCK_KEY = "lamportClock"
RESERVED_KEYS: frozenset[str] = frozenset({ID_KEY, NAME_KEY, CLOCK_KEY})

#: Observation field that is always carried as a quoted string, even when it
#: looks numeric (e.g. ``20230715160000``).
LITERAL_DATE_FIELD = "local_date_time_full"

#: Status reason phrases for the few codes the aggregator emits.
REASON_PHRASES: dict[int, str] = {
    200: "OK",
    201: "Created",
    204: "No Content",
    400: "Bad Request",
    404: "Not Found",
    500: "Internal Server Error",
}
