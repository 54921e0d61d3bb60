"""Snapshot and event reconciliation.

The :class:`Reconciler` is the only writer of the entity registry.  Each
snapshot (or batch of events) is merged all-or-nothing: the watermark of
its category moves only when every entity write has been staged, and a
failure leaves the registry exactly as it was.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import TypeVar

from pylivetiming.exceptions import ReconcileError, UnknownEntityError
from pylivetiming.ingestion.categories import profile_for
from pylivetiming.ingestion.extract import Snapshot
from pylivetiming.models._base import TimingBaseModel
from pylivetiming.models.events import PitRecord, RaceControlMessage
from pylivetiming.models.lap import LapRecord
from pylivetiming.models.roster import Driver
from pylivetiming.models.stint import StintRecord
from pylivetiming.models.timing import IntervalRecord, PositionRecord
from pylivetiming.state.entity import Entity, EntityState, PitStatus, TyreInfo
from pylivetiming.state.events import Category, CategoryKind, RawRecord
from pylivetiming.state.registry import EntityRegistry, RegistryTransaction

_logger = logging.getLogger(__name__)

FieldMapper = Callable[[EntityState, RawRecord], EntityState]
"""Maps one record of a category onto an entity's state."""


TModel = TypeVar("TModel", bound=TimingBaseModel)


def _model_of(record: RawRecord, model_type: type[TModel]) -> TModel:
    model = record.model
    if not isinstance(model, model_type):
        raise TypeError(f"{record.category} record carries {type(record.model).__name__}, not {model_type.__name__}")
    return model


def map_position(state: EntityState, record: RawRecord) -> EntityState:
    model = _model_of(record, PositionRecord)
    return state.model_copy(update={"position": model.position})


def map_intervals(state: EntityState, record: RawRecord) -> EntityState:
    model = _model_of(record, IntervalRecord)
    return state.model_copy(update={"interval": model.interval, "gap": model.gap_to_leader})


def map_laps(state: EntityState, record: RawRecord) -> EntityState:
    model = _model_of(record, LapRecord)
    lap = model.to_lap_time()
    update: dict[str, object] = {
        "lap_number": model.lap_number,
        "lap_started_at": model.date_start,
        "last_lap": lap,
    }
    if lap.is_complete:
        update["last_completed_lap"] = lap
    if lap.is_faster_than(state.best_lap):
        update["best_lap"] = lap

    if model.is_pit_out_lap:
        update["pit_status"] = PitStatus.OUT_LAP
    elif (
        state.pit_status is PitStatus.IN_PIT
        and state.pit_entered_at is not None
        and state.pit_entered_at >= model.date_start
    ):
        # Pit entry happened during this lap; still in the pit lane.
        update["pit_status"] = PitStatus.IN_PIT
    else:
        update["pit_status"] = PitStatus.NONE
    return state.model_copy(update=update)


def map_stints(state: EntityState, record: RawRecord) -> EntityState:
    model = _model_of(record, StintRecord)
    tyre = TyreInfo(
        compound=model.compound,
        lap_start=model.lap_start,
        age_at_start=model.tyre_age_at_start,
        stint_number=model.stint_number,
    )
    return state.model_copy(update={"tyre": tyre})


def map_pit(state: EntityState, record: RawRecord) -> EntityState:
    model = _model_of(record, PitRecord)
    if state.lap_started_at is not None and model.date < state.lap_started_at:
        # A lap that started after this pit entry is already known.
        return state
    return state.model_copy(update={"pit_status": PitStatus.IN_PIT, "pit_entered_at": model.date})


DEFAULT_MAPPERS: dict[Category, FieldMapper] = {
    Category.POSITION: map_position,
    Category.INTERVALS: map_intervals,
    Category.LAPS: map_laps,
    Category.STINTS: map_stints,
    Category.PIT: map_pit,
}


class Reconciler:
    """Merges snapshots and events into an :class:`EntityRegistry`.

    Parameters
    ----------
    registry
        The registry to write to.
    expected_entity_count
        Minimum snapshot size.  ``None`` uses the registry's entity count.
    mappers
        Per-category field mappers overriding :data:`DEFAULT_MAPPERS`.
    """

    def __init__(
        self,
        registry: EntityRegistry,
        *,
        expected_entity_count: int | None = None,
        mappers: Mapping[Category, FieldMapper] | None = None,
    ) -> None:
        self._registry = registry
        self._expected_entity_count = expected_entity_count
        self._mappers: dict[Category, FieldMapper] = dict(DEFAULT_MAPPERS)
        if mappers:
            self._mappers.update(mappers)

    @property
    def registry(self) -> EntityRegistry:
        return self._registry

    @property
    def expected_entity_count(self) -> int:
        if self._expected_entity_count is not None:
            return self._expected_entity_count
        return max(1, len(self._registry))

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def reconcile(self, category: Category, snapshot: Snapshot) -> tuple[int, ...]:
        """Merge *snapshot* and advance the category watermark.

        Returns the ids of the entities written.  Raises
        :class:`ReconcileError` without committing anything when the
        snapshot is too small or any write fails.
        """
        category = Category(category)
        if snapshot.category != category:
            raise ReconcileError(f"snapshot of {snapshot.category} passed for {category}", category=category)

        kind = profile_for(category).kind
        if kind is CategoryKind.ROSTER:
            return self._reconcile_roster(snapshot)
        if kind is CategoryKind.EVENT:
            raise ReconcileError(f"{category} is an event category; use apply_events()", category=category)

        expected = self.expected_entity_count
        if len(snapshot) < expected:
            raise ReconcileError(
                f"{category} snapshot covers {len(snapshot)} of {expected} entities",
                category=category,
            )

        # Oldest first, so a newer claim on a rank displaces an older one.
        ordered = sorted(snapshot.items(), key=lambda item: (item[1].cursor, item[0]))
        applied: list[int] = []
        try:
            with self._registry.transaction() as txn:
                for entity_id, record in ordered:
                    if self._apply_record(txn, category, entity_id, record):
                        applied.append(entity_id)
                txn.advance_watermark(category, snapshot.cursor)
        except ReconcileError:
            raise
        except Exception as exc:
            raise ReconcileError(f"Reconciling {category} failed: {exc}", category=category) from exc

        _logger.debug("Reconciled %s: %d entities up to %s", category, len(applied), snapshot.cursor)
        return tuple(applied)

    def _reconcile_roster(self, snapshot: Snapshot) -> tuple[int, ...]:
        """Create entities for new ids and refresh roster fields of known ones."""
        applied: list[int] = []
        created = 0
        with self._registry.transaction() as txn:
            for entity_id, record in sorted(snapshot.items()):
                driver = record.model
                if not isinstance(driver, Driver):
                    raise ReconcileError(f"roster record for {entity_id} is not a driver", category=Category.DRIVERS)
                existing = txn.get(entity_id)
                if existing is None:
                    txn.put(Entity.from_driver(driver))
                    created += 1
                else:
                    txn.put(existing.with_driver(driver))
                applied.append(entity_id)
        if created:
            _logger.info("Roster added %d entities (%d total)", created, len(self._registry))
        return tuple(applied)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def apply_events(self, category: Category, records: Sequence[RawRecord]) -> int:
        """Apply event records in order and advance the watermark.

        Returns the number of records applied.  All-or-nothing, like
        :meth:`reconcile`.
        """
        category = Category(category)
        if profile_for(category).kind is not CategoryKind.EVENT:
            raise ReconcileError(f"{category} is not an event category", category=category)
        if not records:
            return 0

        applied = 0
        try:
            with self._registry.transaction() as txn:
                for record in records:
                    if category is Category.RACE_CONTROL:
                        if not isinstance(record.model, RaceControlMessage):
                            raise TypeError(f"race control record carries {type(record.model).__name__}")
                        txn.add_message(record.model)
                        applied += 1
                    elif record.entity_id is not None and self._apply_record(txn, category, record.entity_id, record):
                        applied += 1
                    txn.advance_watermark(category, record.cursor)
        except ReconcileError:
            raise
        except Exception as exc:
            raise ReconcileError(f"Applying {category} events failed: {exc}", category=category) from exc

        _logger.debug("Applied %d %s event(s)", applied, category)
        return applied

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _entity_for(self, txn: RegistryTransaction, category: Category, entity_id: int) -> Entity:
        entity = txn.get(entity_id)
        if entity is None:
            raise UnknownEntityError(entity_id, category)
        return entity

    def _apply_record(self, txn: RegistryTransaction, category: Category, entity_id: int, record: RawRecord) -> bool:
        try:
            entity = self._entity_for(txn, category, entity_id)
        except UnknownEntityError as exc:
            _logger.warning("%s; skipping", exc)
            return False

        mapper = self._mappers.get(category)
        if mapper is None:
            raise ReconcileError(f"No field mapper for {category}", category=category)

        seen = entity.state.cursors.get(category)
        if seen is not None and record.cursor is not None and record.cursor < seen:  # type: ignore[operator]
            _logger.debug("Ignoring %s record for %d older than %s", category, entity_id, seen)
            return False

        state = mapper(entity.state, record)
        if record.cursor is not None:
            state = state.model_copy(update={"cursors": {**state.cursors, category: record.cursor}})
        txn.put(entity.with_state(state))

        if category is Category.POSITION and state.position is not None:
            released = txn.release_rank(state.position, holder=entity_id)
            if released:
                _logger.debug("Position %d taken by %d; released from %s", state.position, entity_id, released)
        return True
