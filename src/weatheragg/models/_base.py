"""Base model and shared field types for weatheragg models.

Every model inherits from :class:`WeatherBaseModel` which is frozen
(records are replaced wholesale, never mutated in place) and accepts
both the wire keys (``id``, ``name``, ``lamportClock``) and the Python
field names.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr

FieldValue = StrictInt | StrictFloat | StrictStr
"""An observation value: a number or a string, never a bool or a container."""


class WeatherBaseModel(BaseModel):
    """Base for weatheragg models."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
    )
