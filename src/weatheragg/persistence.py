"""Crash-safe snapshot file for the aggregator's store.

Each record is one line of comma-separated ``key:value`` pairs, starting
with ``id``, ``name`` and ``lamportClock`` and followed by the remaining
fields in insertion order. Backslash escapes ``\\``, ``,`` and ``:`` inside
keys and values; ``\\n`` and ``\\r`` stand for line breaks. A value that
starts with ``\\s`` is a string even when it looks like a number.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from collections.abc import Callable, Iterable
from pathlib import Path

from weatheragg._constants import CLOCK_KEY, ID_KEY, NAME_KEY
from weatheragg.codec import build_record, typed_value
from weatheragg.exceptions import PersistenceError, RecordDecodeError
from weatheragg.models import FieldValue, StationRecord

_logger = logging.getLogger(__name__)

_ESCAPES = {"\\": "\\\\", ",": "\\,", ":": "\\:", "\n": "\\n", "\r": "\\r"}
_UNESCAPES = {"n": "\n", "r": "\r"}
_STRING_MARKER = "\\s"


def _escape(text: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in text)


def _format_value(key: str, value: FieldValue) -> str:
    if not isinstance(value, str):
        return repr(value)
    if key not in (ID_KEY, NAME_KEY) and not isinstance(typed_value(key, value), str):
        return _STRING_MARKER + _escape(value)
    return _escape(value)


def to_storage_line(record: StationRecord) -> str:
    """Serialize *record* to its persisted single-line form."""
    return ",".join(f"{_escape(key)}:{_format_value(key, value)}" for key, value in record.flat().items())


def _split_pairs(line: str) -> list[tuple[str, str, bool]]:
    """Split on unescaped commas, then each pair on its first unescaped colon.

    The third item of each pair is true when the value carried the string
    marker.
    """
    pairs: list[tuple[str, str, bool]] = []
    key: list[str] = []
    value: list[str] = []
    current = key
    seen_colon = False
    literal = False
    escaped = False

    def flush() -> None:
        if not seen_colon:
            raise RecordDecodeError(f"Invalid storage pair: {''.join(key)!r}")
        pairs.append(("".join(key), "".join(value), literal))

    for ch in line:
        if escaped:
            escaped = False
            if ch == "s" and current is value and not value and not literal:
                literal = True
            else:
                current.append(_UNESCAPES.get(ch, ch))
        elif ch == "\\":
            escaped = True
        elif ch == ",":
            flush()
            key, value = [], []
            current = key
            seen_colon = False
            literal = False
        elif ch == ":" and not seen_colon:
            seen_colon = True
            current = value
        else:
            current.append(ch)
    if escaped:
        raise RecordDecodeError("Dangling escape at end of line")
    flush()
    return pairs


def from_storage_line(line: str) -> StationRecord:
    """Parse one persisted line. Raises :class:`RecordDecodeError` on bad input."""
    pairs = _split_pairs(line)
    if not pairs or pairs[0][0] != ID_KEY:
        raise RecordDecodeError(f"Missing '{ID_KEY}' in storage line")

    flat: dict[str, FieldValue] = {}
    for key, raw, literal in pairs:
        if key in (ID_KEY, NAME_KEY) or literal:
            flat[key] = raw
        elif key == CLOCK_KEY:
            try:
                flat[key] = int(raw)
            except ValueError as exc:
                raise RecordDecodeError(f"Invalid {CLOCK_KEY}: {raw!r}") from exc
        else:
            flat[key] = typed_value(key, raw)
    return build_record(flat)


class SnapshotFile:
    """Atomic whole-store snapshots on local disk.

    ``save`` writes a freshly named temporary file in the same directory and
    renames it over the primary path, so a reader never sees a partial file.
    Saves are serialized with respect to each other.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def save(self, records: Iterable[StationRecord] | Callable[[], Iterable[StationRecord]]) -> int:
        """Replace the storage file with *records*. Returns the number written.

        *records* may be a zero-argument callable; it is then evaluated while
        the save lock is held, so the last save to finish always writes the
        newest state.

        Raises :class:`PersistenceError` when the file cannot be written; the
        previous file is left untouched in that case.
        """
        directory = self._path.parent if str(self._path.parent) else Path(".")
        with self._lock:
            source = records() if callable(records) else records
            lines = [to_storage_line(record) for record in source]
            tmp_name: str | None = None
            try:
                directory.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    prefix=f".{self._path.name}.",
                    suffix=".tmp",
                    dir=directory,
                )
                with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
                    for line in lines:
                        handle.write(line)
                        handle.write("\n")
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self._path)
                tmp_name = None
            except OSError as exc:
                raise PersistenceError(f"Error saving data to {self._path}: {exc}") from exc
            finally:
                if tmp_name is not None:
                    try:
                        os.unlink(tmp_name)
                    except OSError:
                        _logger.debug("Could not remove temporary file %s", tmp_name, exc_info=True)
        _logger.debug("Saved %d station(s) to %s", len(lines), self._path)
        return len(lines)

    def load(self) -> list[StationRecord]:
        """Read every valid record from the storage file.

        A missing or unreadable file means an empty store. Lines that fail to
        decode or parse are logged and skipped.
        """
        try:
            data = self._path.read_bytes()
        except FileNotFoundError:
            _logger.info("No existing data file found at %s. Starting with empty data.", self._path)
            return []
        except OSError as exc:
            _logger.error("Could not read %s, starting with empty data: %s", self._path, exc)
            return []

        records: list[StationRecord] = []
        for line_no, raw in enumerate(data.split(b"\n"), start=1):
            if not raw.strip():
                continue
            try:
                records.append(from_storage_line(raw.decode("utf-8")))
            except (UnicodeDecodeError, RecordDecodeError) as exc:
                _logger.warning("Invalid data in storage file line %d: %s", line_no, exc)
        _logger.info("Data loaded from %s: %d station(s)", self._path, len(records))
        return records
