"""Station record model."""

from __future__ import annotations

import math
from typing import Any

from pydantic import Field, field_validator

from weatheragg._constants import CLOCK_KEY, ID_KEY, NAME_KEY, RESERVED_KEYS
from weatheragg.models._base import FieldValue, WeatherBaseModel


class StationRecord(WeatherBaseModel):
    """The latest reading for one weather station.

    Parameters
    ----------
    station_id : str
        Unique station key (wire key ``id``).
    display_name : str
        Human readable station name (wire key ``name``).
    logical_timestamp : int
        Aggregator clock value at merge time (wire key ``lamportClock``).
        Producers send their own clock here; the aggregator overwrites it.
    fields : dict
        Remaining observations in their original order.
    """

    station_id: str = Field(..., alias=ID_KEY)
    display_name: str = Field(..., alias=NAME_KEY)
    logical_timestamp: int = Field(default=0, alias=CLOCK_KEY, ge=0)
    fields: dict[str, FieldValue] = Field(default_factory=dict)

    @field_validator("station_id")
    @classmethod
    def _require_station_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("id must be non-empty")
        return value

    @field_validator("display_name")
    @classmethod
    def _require_display_name(cls, value: str) -> str:
        if not value:
            raise ValueError("name must be non-empty")
        return value

    @field_validator("fields")
    @classmethod
    def _check_fields(cls, value: dict[str, Any]) -> dict[str, Any]:
        for key, item in value.items():
            if not key:
                raise ValueError("field names must be non-empty")
            if key in RESERVED_KEYS:
                raise ValueError(f"{key!r} is reserved and cannot be an observation field")
            if isinstance(item, str) and not item:
                raise ValueError(f"empty value for key: {key}")
            if isinstance(item, float) and not math.isfinite(item):
                raise ValueError(f"non-finite value for key: {key}")
        return value

    def stamped(self, logical_timestamp: int) -> StationRecord:
        """Return a copy carrying *logical_timestamp*."""
        return self.model_copy(update={"logical_timestamp": logical_timestamp})

    def flat(self, *, include_clock: bool = True) -> dict[str, FieldValue]:
        """Single-level mapping in wire order: id, name, lamportClock, fields."""
        result: dict[str, FieldValue] = {ID_KEY: self.station_id, NAME_KEY: self.display_name}
        if include_clock:
            result[CLOCK_KEY] = self.logical_timestamp
        result.update(self.fields)
        return result
