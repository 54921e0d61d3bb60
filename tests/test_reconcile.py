from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from pylivetiming.exceptions import ReconcileError
from pylivetiming.ingestion.categories import profile_for
from pylivetiming.ingestion.extract import Snapshot, collect_roster, extract_latest_set
from pylivetiming.ingestion.fetch import RawBatch
from pylivetiming.models.stint import Compound
from pylivetiming.state.entity import EntityState, PitStatus
from pylivetiming.state.events import Category, RawRecord
from pylivetiming.state.reconcile import Reconciler
from pylivetiming.state.registry import EntityRegistry

T = datetime(2026, 3, 15, 14, 0, 0, tzinfo=UTC)
ROSTER = {1: "VER", 4: "NOR", 16: "LEC"}


def _record(category: Category, /, **fields: Any) -> RawRecord:
    raw = {key: value.isoformat() if isinstance(value, datetime) else value for key, value in fields.items()}
    return profile_for(category).to_record(raw)


def _snapshot(category: Category, *records: RawRecord) -> Snapshot:
    result = extract_latest_set(RawBatch(category=category, records=records), len(records))
    assert isinstance(result, Snapshot)
    return result


def _setup(**kwargs: Any) -> tuple[EntityRegistry, Reconciler]:
    registry = EntityRegistry(9161)
    reconciler = Reconciler(registry, **kwargs)
    drivers = tuple(
        _record(Category.DRIVERS, driver_number=number, name_acronym=acronym, team_name="Team")
        for number, acronym in ROSTER.items()
    )
    reconciler.reconcile(Category.DRIVERS, collect_roster(RawBatch(category=Category.DRIVERS, records=drivers)))
    return registry, reconciler


def _positions(at: datetime, ranks: dict[int, int]) -> Snapshot:
    return _snapshot(
        Category.POSITION,
        *(_record(Category.POSITION, date=at, driver_number=d, position=p) for d, p in ranks.items()),
    )


def _laps(at: datetime, lap_number: int, totals: dict[int, float | None]) -> Snapshot:
    return _snapshot(
        Category.LAPS,
        *(
            _record(
                Category.LAPS,
                date_start=at,
                driver_number=d,
                lap_number=lap_number,
                duration_sector_1=30.1,
                lap_duration=total,
            )
            for d, total in totals.items()
        ),
    )


def test_roster_creates_entities() -> None:
    registry, reconciler = _setup()

    assert len(registry) == 3
    assert registry.get(4) is not None
    assert registry.get(4).name == "NOR"  # type: ignore[union-attr]
    assert reconciler.expected_entity_count == 3
    assert registry.watermark(Category.DRIVERS) is None


def test_positions_applied_and_watermark_advanced() -> None:
    registry, reconciler = _setup()

    applied = reconciler.reconcile(Category.POSITION, _positions(T, {1: 1, 4: 2, 16: 3}))

    assert sorted(applied) == [1, 4, 16]
    assert registry.watermark(Category.POSITION) == T
    assert [e.id for e in registry.entities()] == [1, 4, 16]
    assert registry.get(16).state.cursors[Category.POSITION] == T  # type: ignore[union-attr]


def test_unknown_entity_is_skipped() -> None:
    registry, reconciler = _setup()

    applied = reconciler.reconcile(Category.POSITION, _positions(T, {1: 1, 4: 2, 16: 3, 99: 4}))

    assert 99 not in applied
    assert 99 not in registry
    assert registry.watermark(Category.POSITION) == T


def test_snapshot_smaller_than_expected_is_rejected() -> None:
    registry, reconciler = _setup()
    version = registry.version

    with pytest.raises(ReconcileError):
        reconciler.reconcile(Category.POSITION, _positions(T, {1: 1, 4: 2}))

    assert registry.version == version
    assert registry.watermark(Category.POSITION) is None


def test_new_rank_releases_previous_holder() -> None:
    registry, reconciler = _setup(expected_entity_count=1)
    reconciler.reconcile(Category.POSITION, _positions(T, {1: 1, 4: 2, 16: 3}))

    reconciler.reconcile(Category.POSITION, _positions(T + timedelta(seconds=4), {4: 1}))

    assert registry.get(4).state.position == 1  # type: ignore[union-attr]
    assert registry.get(1).state.position is None  # type: ignore[union-attr]
    # Unknown positions sort last.
    assert [e.id for e in registry.entities()] == [4, 16, 1]


def test_position_swap_keeps_ranks_unique() -> None:
    registry, reconciler = _setup()
    reconciler.reconcile(Category.POSITION, _positions(T, {1: 1, 4: 2, 16: 3}))

    reconciler.reconcile(Category.POSITION, _positions(T + timedelta(seconds=4), {1: 2, 4: 1, 16: 3}))

    ranks = {e.id: e.state.position for e in registry.entities()}
    assert ranks == {1: 2, 4: 1, 16: 3}


def test_best_lap_only_improves() -> None:
    registry, reconciler = _setup()
    reconciler.reconcile(Category.LAPS, _laps(T, 10, {1: 90.5, 4: 91.2, 16: 92.0}))

    later = T + timedelta(seconds=95)
    reconciler.reconcile(Category.LAPS, _laps(later, 11, {1: 91.0, 4: 90.9, 16: None}))

    ver = registry.get(1).state  # type: ignore[union-attr]
    nor = registry.get(4).state  # type: ignore[union-attr]
    lec = registry.get(16).state  # type: ignore[union-attr]
    assert ver.best_lap is not None and ver.best_lap.total == 90.5
    assert ver.last_completed_lap is not None and ver.last_completed_lap.total == 91.0
    assert nor.best_lap is not None and nor.best_lap.total == 90.9
    # A lap in progress shows its sectors but keeps the last completed lap.
    assert lec.last_lap is not None and lec.last_lap.total is None
    assert lec.last_lap.sector_1 == 30.1
    assert lec.last_completed_lap is not None and lec.last_completed_lap.total == 92.0
    assert lec.lap_number == 11


def test_failure_partway_commits_nothing_and_can_be_reapplied() -> None:
    def _fail_on_leclerc(state: EntityState, record: RawRecord) -> EntityState:
        if record.entity_id == 16:
            raise RuntimeError("simulated failure")
        return state.model_copy(update={"position": record.model.position})  # type: ignore[attr-defined]

    registry, failing = _setup(mappers={Category.POSITION: _fail_on_leclerc})
    snapshot = _positions(T, {1: 1, 4: 2, 16: 3})
    version = registry.version

    with pytest.raises(ReconcileError):
        failing.reconcile(Category.POSITION, snapshot)

    assert registry.version == version
    assert registry.watermark(Category.POSITION) is None
    assert all(e.state.position is None for e in registry.entities())

    Reconciler(registry).reconcile(Category.POSITION, snapshot)

    assert registry.watermark(Category.POSITION) == T
    assert {e.id: e.state.position for e in registry.entities()} == {1: 1, 4: 2, 16: 3}


def test_watermark_never_moves_backwards() -> None:
    registry, reconciler = _setup()
    reconciler.reconcile(Category.POSITION, _positions(T, {1: 1, 4: 2, 16: 3}))

    applied = reconciler.reconcile(Category.POSITION, _positions(T - timedelta(seconds=10), {1: 3, 4: 2, 16: 1}))

    assert applied == ()
    assert registry.watermark(Category.POSITION) == T
    assert registry.get(1).state.position == 1  # type: ignore[union-attr]


def test_stints_set_tyre_and_age() -> None:
    registry, reconciler = _setup()
    reconciler.reconcile(Category.LAPS, _laps(T, 12, {1: 90.0, 4: 90.0, 16: 90.0}))

    snapshot = _snapshot(
        Category.STINTS,
        *(
            _record(
                Category.STINTS,
                driver_number=d,
                lap_start=8,
                stint_number=2,
                compound="hard",
                tyre_age_at_start=3,
            )
            for d in ROSTER
        ),
    )
    reconciler.reconcile(Category.STINTS, snapshot)

    state = registry.get(1).state  # type: ignore[union-attr]
    assert state.tyre is not None
    assert state.tyre.compound is Compound.HARD
    assert state.tyre_age == 7
    assert registry.watermark(Category.STINTS) == 8


def test_pit_event_then_out_lap() -> None:
    registry, reconciler = _setup()
    reconciler.reconcile(Category.LAPS, _laps(T, 20, {1: 90.0, 4: 90.0, 16: 90.0}))

    pit_at = T + timedelta(seconds=80)
    applied = reconciler.apply_events(
        Category.PIT,
        [_record(Category.PIT, date=pit_at, driver_number=4, lap_number=20, pit_duration=22.4)],
    )

    assert applied == 1
    assert registry.get(4).state.pit_status is PitStatus.IN_PIT  # type: ignore[union-attr]
    assert registry.watermark(Category.PIT) == pit_at

    out_lap = _snapshot(
        Category.LAPS,
        *(
            _record(
                Category.LAPS,
                date_start=T + timedelta(seconds=100),
                driver_number=d,
                lap_number=21,
                is_pit_out_lap=(d == 4),
            )
            for d in ROSTER
        ),
    )
    reconciler.reconcile(Category.LAPS, out_lap)

    assert registry.get(4).state.pit_status is PitStatus.OUT_LAP  # type: ignore[union-attr]
    assert registry.get(1).state.pit_status is PitStatus.NONE  # type: ignore[union-attr]


def test_race_control_messages_are_kept_in_order() -> None:
    registry = EntityRegistry(9161, race_control_history=2)
    reconciler = Reconciler(registry)
    messages = [
        _record(Category.RACE_CONTROL, date=T + timedelta(seconds=i), message=f"MESSAGE {i}", category="Other")
        for i in range(3)
    ]

    reconciler.apply_events(Category.RACE_CONTROL, messages)

    assert [m.message for m in registry.race_control()] == ["MESSAGE 1", "MESSAGE 2"]
    assert registry.watermark(Category.RACE_CONTROL) == T + timedelta(seconds=2)


def test_event_category_cannot_be_reconciled_as_snapshot() -> None:
    _, reconciler = _setup()
    snapshot = Snapshot(category=Category.PIT)

    with pytest.raises(ReconcileError):
        reconciler.reconcile(Category.PIT, snapshot)
