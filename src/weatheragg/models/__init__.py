"""Data models for weatheragg."""

from weatheragg.models._base import FieldValue, WeatherBaseModel
from weatheragg.models.record import StationRecord

__all__ = [
    "FieldValue",
    "StationRecord",
    "WeatherBaseModel",
]
