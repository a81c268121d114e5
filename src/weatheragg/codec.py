"""Flat station-record codecs.

Two text forms reach the library from outside:

* the producer input file, one ``key:value`` pair per line, and
* the single-level JSON object exchanged on the wire.

Both apply the same typing rules: the literal-date field is always a
string, and every other value is numeric when it looks like a number.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from weatheragg._constants import CLOCK_KEY, ID_KEY, LITERAL_DATE_FIELD, NAME_KEY
from weatheragg.exceptions import RecordDecodeError
from weatheragg.models import FieldValue, StationRecord

_logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"[+-]?\d+")
_FLOAT_RE = re.compile(r"[+-]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?")


def typed_value(key: str, raw: str) -> FieldValue:
    """Apply the field typing rules to a textual value."""
    if key == LITERAL_DATE_FIELD:
        return raw
    if _INT_RE.fullmatch(raw):
        return int(raw)
    if _FLOAT_RE.fullmatch(raw):
        value = float(raw)
        if math.isfinite(value):
            return value
    return raw


def _validation_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def build_record(flat: Mapping[str, Any]) -> StationRecord:
    """Build a record from an already-typed single-level mapping."""
    fields = {key: value for key, value in flat.items() if key not in (ID_KEY, NAME_KEY, CLOCK_KEY)}
    try:
        return StationRecord.model_validate(
            {
                ID_KEY: flat.get(ID_KEY),
                NAME_KEY: flat.get(NAME_KEY),
                CLOCK_KEY: flat.get(CLOCK_KEY, 0),
                "fields": fields,
            }
        )
    except ValidationError as exc:
        raise RecordDecodeError(f"Invalid station record: {_validation_message(exc)}") from exc


# ------------------------------------------------------------------
# Producer input file
# ------------------------------------------------------------------


def parse_station_text(text: str) -> dict[str, str]:
    """Parse a producer input file into an ordered ``key -> raw value`` map.

    Each non-blank line is split on its first colon; blank keys or values
    and a missing ``id`` are errors.
    """
    pairs: dict[str, str] = {}
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        key, sep, value = line.partition(":")
        if not sep:
            raise RecordDecodeError(f"Invalid data format on line {line_no}: {line!r}")
        key = key.strip()
        value = value.strip()
        if not key or not value:
            raise RecordDecodeError(f"Invalid data format on line {line_no}: empty key or value")
        pairs[key] = value
    if ID_KEY not in pairs:
        raise RecordDecodeError(f"Missing required field: {ID_KEY}")
    return pairs


def record_from_text(pairs: Mapping[str, str]) -> StationRecord:
    """Convert parsed producer pairs to a record, typing each value."""
    flat: dict[str, Any] = {}
    for key, raw in pairs.items():
        if key in (ID_KEY, NAME_KEY):
            flat[key] = raw
        elif key == CLOCK_KEY:
            # A producer file has no business setting the merge timestamp.
            _logger.debug("Ignoring %s in producer input", CLOCK_KEY)
        else:
            flat[key] = typed_value(key, raw)
    return build_record(flat)


# ------------------------------------------------------------------
# Wire JSON
# ------------------------------------------------------------------


def _reject_constant(name: str) -> Any:
    raise RecordDecodeError(f"Invalid value format: {name}")


def _load_json(text: str) -> Any:
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except json.JSONDecodeError as exc:
        raise RecordDecodeError(f"Failed to parse JSON: {exc.msg} at position {exc.pos}") from exc


def _check_wire_value(key: str, value: Any) -> FieldValue:
    if isinstance(value, bool) or value is None:
        raise RecordDecodeError(f"Invalid value format for key: {key}")
    if isinstance(value, (dict, list)):
        raise RecordDecodeError(f"Nested value for key: {key}")
    if isinstance(value, str):
        if not value:
            raise RecordDecodeError(f"Empty value for key: {key}")
        return value
    if key == LITERAL_DATE_FIELD:
        return str(value)
    return value  # type: ignore[no-any-return]


def _record_from_object(obj: Any) -> StationRecord:
    if not isinstance(obj, dict):
        raise RecordDecodeError("Invalid JSON format: expected an object")
    flat: dict[str, Any] = {}
    for key, value in obj.items():
        if key in (ID_KEY, NAME_KEY):
            if not isinstance(value, str) or not value:
                raise RecordDecodeError(f"Missing or empty '{key}' field")
            flat[key] = value
        elif key == CLOCK_KEY:
            if isinstance(value, bool) or not isinstance(value, int):
                raise RecordDecodeError(f"Invalid {CLOCK_KEY}: {value!r}")
            flat[key] = value
        else:
            flat[key] = _check_wire_value(key, value)
    for required in (ID_KEY, NAME_KEY):
        if required not in flat:
            raise RecordDecodeError(f"Missing or empty '{required}' field")
    return build_record(flat)


def decode_record(text: str) -> StationRecord:
    """Decode one flat JSON object into a :class:`StationRecord`."""
    if not text.strip():
        raise RecordDecodeError("Empty record body")
    return _record_from_object(_load_json(text))


def decode_records(text: str) -> list[StationRecord]:
    """Decode a JSON array of records (a single object is also accepted)."""
    if not text.strip():
        return []
    parsed = _load_json(text)
    if isinstance(parsed, list):
        return [_record_from_object(item) for item in parsed]
    return [_record_from_object(parsed)]


def encode_record(record: StationRecord) -> str:
    """Encode a record as a single-level JSON object."""
    return json.dumps(record.flat(), separators=(",", ":"), ensure_ascii=False)


def encode_records(records: Iterable[StationRecord]) -> str:
    """Encode records as a JSON array, preserving the given order."""
    return json.dumps([r.flat() for r in records], separators=(",", ":"), ensure_ascii=False)
