"""Position and interval records."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pylivetiming.models._base import TimingBaseModel, Timestamp

_LAPS_PATTERN = re.compile(r"^\+?\s*(\d+)\s*L(?:AP|APS)?$", re.IGNORECASE)


class Gap(BaseModel):
    """A time gap, either in seconds or in whole laps.

    The upstream feed reports lapped cars as ``"+1 LAP"`` strings
    instead of a number of seconds.
    """

    model_config = ConfigDict(frozen=True)

    seconds: float | None = Field(default=None, ge=0)
    laps: int | None = Field(default=None, ge=1)

    @classmethod
    def parse(cls, value: Any) -> Gap | None:
        """Build a gap from a raw feed value; ``None`` means no gap (leader)."""
        if value is None or isinstance(value, Gap):
            return value
        if isinstance(value, bool):
            raise ValueError("gap must be a number or a lap string")
        if isinstance(value, (int, float)):
            return cls(seconds=float(value))
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            match = _LAPS_PATTERN.match(text)
            if match is not None:
                return cls(laps=int(match.group(1)))
            try:
                return cls(seconds=float(text.lstrip("+")))
            except ValueError as exc:
                raise ValueError(f"unparseable gap {value!r}") from exc
        raise ValueError(f"unparseable gap {value!r}")


class PositionRecord(TimingBaseModel):
    """Race position of a driver at an instant."""

    date: Timestamp
    driver_number: int = Field(ge=1)
    position: int = Field(ge=1)
    session_key: int | None = None


class IntervalRecord(TimingBaseModel):
    """Gap to the car ahead and to the leader."""

    date: Timestamp
    driver_number: int = Field(ge=1)
    interval: Gap | None = None
    gap_to_leader: Gap | None = None
    session_key: int | None = None

    @field_validator("interval", "gap_to_leader", mode="before")
    @classmethod
    def _coerce_gap(cls, value: Any) -> Gap | None:
        return Gap.parse(value)
