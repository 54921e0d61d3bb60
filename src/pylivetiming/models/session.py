"""Session and meeting models."""

from __future__ import annotations

from pylivetiming.models._base import TimingBaseModel, Timestamp


class SessionInfo(TimingBaseModel):
    """One session (practice, qualifying, race) of a meeting."""

    session_key: int
    session_name: str = ""
    session_type: str = ""
    meeting_key: int | None = None
    date_start: Timestamp | None = None
    date_end: Timestamp | None = None
    country_name: str = ""
    location: str = ""
    circuit_short_name: str = ""


class MeetingInfo(TimingBaseModel):
    """A race weekend."""

    meeting_key: int
    meeting_official_name: str = ""
    meeting_name: str = ""
    country_name: str = ""
    location: str = ""
    circuit_short_name: str = ""

    def header_parts(self) -> list[str]:
        """Country, location and circuit with repeated names left out."""
        parts = [self.country_name]
        if self.location and self.location != self.country_name:
            parts.append(self.location)
        if self.circuit_short_name and self.circuit_short_name not in (self.country_name, self.location):
            parts.append(self.circuit_short_name)
        return [part for part in parts if part]
