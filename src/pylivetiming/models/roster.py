"""Driver roster model."""

from __future__ import annotations

from pydantic import Field

from pylivetiming.models._base import TimingBaseModel


class Driver(TimingBaseModel):
    """One entry of the ``drivers`` roster for a session."""

    driver_number: int = Field(ge=1)
    """Permanent car number; the entity id."""
    name_acronym: str = ""
    """Three-letter abbreviation (e.g. ``"VER"``)."""
    full_name: str = ""
    broadcast_name: str = ""
    team_name: str = ""
    team_colour: str | None = None
    """Hex colour without the leading ``#``."""
    session_key: int | None = None

    @property
    def display_name(self) -> str:
        return self.name_acronym or self.broadcast_name or str(self.driver_number)
