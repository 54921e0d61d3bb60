"""Tyre stint records."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from pylivetiming.models._base import TimingBaseModel, TimingEnum


class Compound(TimingEnum):
    """Tyre compound."""

    UNKNOWN = "UNKNOWN"
    SOFT = "SOFT"
    MEDIUM = "MEDIUM"
    HARD = "HARD"
    INTERMEDIATE = "INTERMEDIATE"
    WET = "WET"

    @property
    def short(self) -> str:
        """One-letter label (``"S"``, ``"M"``...), ``"?"`` when unknown."""
        return "?" if self is Compound.UNKNOWN else self.value[0]


class StintRecord(TimingBaseModel):
    """A run of laps on one set of tyres."""

    driver_number: int = Field(ge=1)
    lap_start: int = Field(ge=1)
    lap_end: int | None = None
    stint_number: int | None = None
    compound: Compound = Compound.UNKNOWN
    tyre_age_at_start: int = Field(default=0, ge=0)
    session_key: int | None = None

    @field_validator("compound", mode="before")
    @classmethod
    def _coerce_compound(cls, value: Any) -> Compound:
        return Compound(str(value))
