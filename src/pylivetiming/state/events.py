"""Normalized ingestion records.

Every upstream record is converted into a :class:`RawRecord` at the
ingestion boundary. Only the state layer is allowed to merge them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pylivetiming.models._base import TimingBaseModel

Cursor = datetime | int
"""Orderable position of a record in its category's stream.

A timestamp for most categories, a lap number for categories whose
records carry no timestamp.
"""


class Category(StrEnum):
    DRIVERS = "drivers"
    POSITION = "position"
    INTERVALS = "intervals"
    LAPS = "laps"
    STINTS = "stints"
    PIT = "pit"
    RACE_CONTROL = "race_control"


class CategoryKind(StrEnum):
    ROSTER = "roster"
    """Establishes the entity set; records carry no cursor."""
    SNAPSHOT = "snapshot"
    """One-per-entity cross-sections; only complete sets are merged."""
    EVENT = "event"
    """Discrete events; every new record is applied in cursor order."""


class RawRecord(BaseModel):
    """One parsed upstream record of a category."""

    model_config = ConfigDict(frozen=True)

    category: Category
    entity_id: int | None = Field(default=None, description="Driver number, if the record is about one driver")
    cursor: Cursor | None = Field(default=None, description="Ordering value; None only for roster records")
    model: TimingBaseModel = Field(..., description="Typed category payload")

    @field_validator("cursor")
    @classmethod
    def _ensure_tz_aware(cls, value: Cursor | None) -> Cursor | None:
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
