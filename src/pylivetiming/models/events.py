"""Pit stop and race control records."""

from __future__ import annotations

from pydantic import Field

from pylivetiming.models._base import TimingBaseModel, Timestamp


class PitRecord(TimingBaseModel):
    """A driver entering the pit lane."""

    date: Timestamp
    driver_number: int = Field(ge=1)
    lap_number: int | None = None
    pit_duration: float | None = Field(default=None, ge=0)
    session_key: int | None = None


class RaceControlMessage(TimingBaseModel):
    """A message from race control (flags, penalties, incidents).

    ``driver_number`` is only set for messages about a single car.
    """

    date: Timestamp
    message: str
    category: str = ""
    flag: str | None = None
    scope: str | None = None
    sector: int | None = None
    lap_number: int | None = None
    driver_number: int | None = None
    session_key: int | None = None
