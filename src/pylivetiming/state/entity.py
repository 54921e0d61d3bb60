"""Tracked entities and their aggregated timing state."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from pylivetiming.models.lap import LapTime
from pylivetiming.models.roster import Driver
from pylivetiming.models.stint import Compound
from pylivetiming.models.timing import Gap
from pylivetiming.state.events import Category, Cursor


class PitStatus(StrEnum):
    NONE = "none"
    IN_PIT = "inPit"
    OUT_LAP = "outLap"


class TyreInfo(BaseModel):
    """Current tyre set of a driver."""

    model_config = ConfigDict(frozen=True)

    compound: Compound = Compound.UNKNOWN
    lap_start: int = Field(default=1, ge=1)
    age_at_start: int = Field(default=0, ge=0)
    stint_number: int | None = None

    def age_at(self, lap_number: int | None) -> int:
        """Tyre age in laps when the driver is on *lap_number*."""
        if lap_number is None:
            return self.age_at_start
        return self.age_at_start + max(0, lap_number - self.lap_start)


class EntityState(BaseModel):
    """Aggregated view of one driver, assembled from independent categories."""

    model_config = ConfigDict(frozen=True)

    position: int | None = Field(default=None, ge=1)
    interval: Gap | None = None
    gap: Gap | None = None
    lap_number: int | None = None
    lap_started_at: datetime | None = None
    last_lap: LapTime | None = None
    """Newest lap seen, possibly still in progress."""
    last_completed_lap: LapTime | None = None
    best_lap: LapTime | None = None
    tyre: TyreInfo | None = None
    pit_status: PitStatus = PitStatus.NONE
    pit_entered_at: datetime | None = None
    cursors: dict[Category, Cursor] = Field(default_factory=dict)
    """Cursor of the last record applied, per category."""

    @property
    def tyre_age(self) -> int | None:
        if self.tyre is None:
            return None
        return self.tyre.age_at(self.lap_number)


class Entity(BaseModel):
    """One tracked participant."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=1)
    name: str = ""
    full_name: str = ""
    team: str = ""
    team_colour: str | None = None
    state: EntityState = Field(default_factory=EntityState)

    @classmethod
    def from_driver(cls, driver: Driver) -> Entity:
        return cls(
            id=driver.driver_number,
            name=driver.display_name,
            full_name=driver.full_name,
            team=driver.team_name,
            team_colour=driver.team_colour,
        )

    def with_driver(self, driver: Driver) -> Entity:
        """Refresh roster fields, keeping the timing state."""
        return self.model_copy(
            update={
                "name": driver.display_name,
                "full_name": driver.full_name or self.full_name,
                "team": driver.team_name or self.team,
                "team_colour": driver.team_colour or self.team_colour,
            }
        )

    def with_state(self, state: EntityState) -> Entity:
        return self.model_copy(update={"state": state})
