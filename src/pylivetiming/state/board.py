"""Immutable board published to renderers."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from pylivetiming.models.events import RaceControlMessage
from pylivetiming.models.session import MeetingInfo, SessionInfo
from pylivetiming.state.entity import Entity
from pylivetiming.state.events import Category, Cursor
from pylivetiming.state.registry import EntityRegistry


class CategoryPhase(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    RECONCILING = "reconciling"
    BACKOFF = "backoff"


class CategoryStatus(BaseModel):
    """Diagnostics for one polled category."""

    model_config = ConfigDict(frozen=True)

    category: Category
    phase: CategoryPhase = CategoryPhase.IDLE
    watermark: Cursor | None = None
    cycles: int = 0
    consecutive_failures: int = 0
    persistently_incomplete: bool = False
    last_error: str | None = None


class EntityView(BaseModel):
    """An entity as shown on the board.

    ``stale`` lists the categories whose data for this entity may be out
    of date because the category is persistently incomplete.
    """

    model_config = ConfigDict(frozen=True)

    entity: Entity
    stale: frozenset[Category] = Field(default_factory=frozenset)

    @property
    def id(self) -> int:
        return self.entity.id

    @property
    def is_stale(self) -> bool:
        return bool(self.stale)


class Board(BaseModel):
    """A consistent read-only copy of the registry and poll status."""

    model_config = ConfigDict(frozen=True)

    session_key: int | None = None
    session: SessionInfo | None = None
    meeting: MeetingInfo | None = None
    version: int = Field(default=0, description="Publication sequence number")
    registry_version: int = 0
    published_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    entities: tuple[EntityView, ...] = ()
    categories: dict[Category, CategoryStatus] = Field(default_factory=dict)
    race_control: tuple[RaceControlMessage, ...] = ()

    @property
    def stale_categories(self) -> frozenset[Category]:
        return frozenset(c for c, status in self.categories.items() if status.persistently_incomplete)

    def entity(self, entity_id: int) -> EntityView | None:
        for view in self.entities:
            if view.id == entity_id:
                return view
        return None


def build_board(
    registry: EntityRegistry,
    *,
    statuses: Mapping[Category, CategoryStatus] | None = None,
    session: SessionInfo | None = None,
    meeting: MeetingInfo | None = None,
    version: int = 0,
) -> Board:
    """Copy the registry into a :class:`Board`.

    Entities are ordered by position ascending, unknown positions last,
    ties broken by entity id.
    """
    statuses = dict(statuses or {})
    stale = frozenset(c for c, status in statuses.items() if status.persistently_incomplete)
    return Board(
        session_key=registry.session_key,
        session=session,
        meeting=meeting,
        version=version,
        registry_version=registry.version,
        entities=tuple(EntityView(entity=entity, stale=stale) for entity in registry.entities()),
        categories=statuses,
        race_control=registry.race_control(),
    )
