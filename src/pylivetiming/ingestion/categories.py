"""Category table.

Maps every upstream category to its endpoint, record model, cursor field
and polling behaviour, and turns raw JSON dicts into :class:`RawRecord`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from pylivetiming.exceptions import MalformedRecordError
from pylivetiming.models._base import TimingBaseModel
from pylivetiming.models.events import PitRecord, RaceControlMessage
from pylivetiming.models.lap import LapRecord
from pylivetiming.models.roster import Driver
from pylivetiming.models.stint import StintRecord
from pylivetiming.models.timing import IntervalRecord, PositionRecord
from pylivetiming.state.events import Category, CategoryKind, Cursor, RawRecord


@dataclass(frozen=True, slots=True)
class CategoryProfile:
    """How one category is fetched and parsed.

    ``windowed`` categories are fetched with ``since = watermark``; the
    others always fetch the whole session.
    """

    category: Category
    endpoint: str
    kind: CategoryKind
    model: type[TimingBaseModel]
    cursor_field: str | None = None
    windowed: bool = True
    entity_required: bool = True

    def to_record(self, raw: Any) -> RawRecord:
        """Parse one raw JSON record.

        Raises :class:`MalformedRecordError` when the record is not an
        object, fails validation, or lacks a usable cursor or entity id.
        """
        if not isinstance(raw, dict):
            raise MalformedRecordError(f"{self.category} record is not an object: {type(raw).__name__}")
        try:
            model = self.model.model_validate(raw)
        except ValidationError as exc:
            raise MalformedRecordError(f"invalid {self.category} record: {exc.error_count()} error(s)") from exc

        cursor: Cursor | None = None
        if self.cursor_field is not None:
            cursor = getattr(model, self.cursor_field, None)
            if not isinstance(cursor, (datetime, int)):
                raise MalformedRecordError(f"{self.category} record has no {self.cursor_field}")

        entity_id = getattr(model, "driver_number", None)
        if self.entity_required and entity_id is None:
            raise MalformedRecordError(f"{self.category} record has no driver_number")

        return RawRecord(category=self.category, entity_id=entity_id, cursor=cursor, model=model)

    def format_cursor(self, cursor: Cursor) -> str:
        if isinstance(cursor, datetime):
            return cursor.isoformat()
        return str(cursor)


CATEGORY_PROFILES: dict[Category, CategoryProfile] = {
    Category.DRIVERS: CategoryProfile(
        category=Category.DRIVERS,
        endpoint="drivers",
        kind=CategoryKind.ROSTER,
        model=Driver,
        windowed=False,
    ),
    Category.POSITION: CategoryProfile(
        category=Category.POSITION,
        endpoint="position",
        kind=CategoryKind.SNAPSHOT,
        model=PositionRecord,
        cursor_field="date",
    ),
    Category.INTERVALS: CategoryProfile(
        category=Category.INTERVALS,
        endpoint="intervals",
        kind=CategoryKind.SNAPSHOT,
        model=IntervalRecord,
        cursor_field="date",
    ),
    Category.LAPS: CategoryProfile(
        category=Category.LAPS,
        endpoint="laps",
        kind=CategoryKind.SNAPSHOT,
        model=LapRecord,
        cursor_field="date_start",
    ),
    # Stints carry no timestamp and most drivers pit rarely, so a window
    # past the watermark would almost never hold a complete set.
    Category.STINTS: CategoryProfile(
        category=Category.STINTS,
        endpoint="stints",
        kind=CategoryKind.SNAPSHOT,
        model=StintRecord,
        cursor_field="lap_start",
        windowed=False,
    ),
    Category.PIT: CategoryProfile(
        category=Category.PIT,
        endpoint="pit",
        kind=CategoryKind.EVENT,
        model=PitRecord,
        cursor_field="date",
    ),
    Category.RACE_CONTROL: CategoryProfile(
        category=Category.RACE_CONTROL,
        endpoint="race_control",
        kind=CategoryKind.EVENT,
        model=RaceControlMessage,
        cursor_field="date",
        entity_required=False,
    ),
}

POLLED_CATEGORIES: tuple[Category, ...] = (
    Category.POSITION,
    Category.INTERVALS,
    Category.LAPS,
    Category.STINTS,
    Category.PIT,
    Category.RACE_CONTROL,
)


def profile_for(category: Category | str) -> CategoryProfile:
    return CATEGORY_PROFILES[Category(category)]
