"""Lap timing records."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from pylivetiming.models._base import TimingBaseModel, Timestamp


class LapTime(BaseModel):
    """Sector durations and total of one lap, in seconds.

    Sectors of a lap in progress are ``None`` until they are timed.
    """

    model_config = ConfigDict(frozen=True)

    lap_number: int | None = None
    sector_1: float | None = Field(default=None, ge=0)
    sector_2: float | None = Field(default=None, ge=0)
    sector_3: float | None = Field(default=None, ge=0)
    total: float | None = Field(default=None, ge=0)

    @property
    def is_complete(self) -> bool:
        return self.total is not None

    def is_faster_than(self, other: LapTime | None) -> bool:
        """True when this lap has a total strictly below *other*'s."""
        if self.total is None:
            return False
        if other is None or other.total is None:
            return True
        return self.total < other.total


class LapRecord(TimingBaseModel):
    """One lap of one driver."""

    date_start: Timestamp
    driver_number: int = Field(ge=1)
    lap_number: int = Field(ge=1)
    duration_sector_1: float | None = Field(default=None, ge=0)
    duration_sector_2: float | None = Field(default=None, ge=0)
    duration_sector_3: float | None = Field(default=None, ge=0)
    lap_duration: float | None = Field(default=None, ge=0)
    is_pit_out_lap: bool = False
    session_key: int | None = None

    def to_lap_time(self) -> LapTime:
        return LapTime(
            lap_number=self.lap_number,
            sector_1=self.duration_sector_1,
            sector_2=self.duration_sector_2,
            sector_3=self.duration_sector_3,
            total=self.lap_duration,
        )
