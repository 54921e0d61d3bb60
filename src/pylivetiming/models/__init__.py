"""Data models for upstream timing records."""

from pylivetiming.models._base import TimingBaseModel, TimingEnum, Timestamp, parse_timestamp
from pylivetiming.models.events import PitRecord, RaceControlMessage
from pylivetiming.models.lap import LapRecord, LapTime
from pylivetiming.models.roster import Driver
from pylivetiming.models.session import MeetingInfo, SessionInfo
from pylivetiming.models.stint import Compound, StintRecord
from pylivetiming.models.timing import Gap, IntervalRecord, PositionRecord

__all__ = [
    "Compound",
    "Driver",
    "Gap",
    "IntervalRecord",
    "LapRecord",
    "LapTime",
    "MeetingInfo",
    "PitRecord",
    "PositionRecord",
    "RaceControlMessage",
    "SessionInfo",
    "StintRecord",
    "TimingBaseModel",
    "TimingEnum",
    "Timestamp",
    "parse_timestamp",
]
