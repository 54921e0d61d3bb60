from __future__ import annotations

from datetime import UTC, datetime

import pytest

from pylivetiming.models import RaceControlMessage
from pylivetiming.state.entity import Entity, EntityState
from pylivetiming.state.events import Category
from pylivetiming.state.policy import is_persistently_incomplete, should_advance
from pylivetiming.state.registry import EntityRegistry


def _dt(second: int = 0) -> datetime:
    return datetime(2026, 1, 1, 12, 0, second, tzinfo=UTC)


def _registry() -> EntityRegistry:
    registry = EntityRegistry(9161, race_control_history=0)
    with registry.transaction() as txn:
        txn.put(Entity(id=1, name="VER"))
        txn.put(Entity(id=4, name="NOR"))
    return registry


def test_failed_transaction_is_discarded() -> None:
    registry = _registry()
    version = registry.version

    with pytest.raises(RuntimeError), registry.transaction() as txn:
        txn.put(Entity(id=1, name="VER", state=EntityState(position=1)))
        txn.advance_watermark(Category.POSITION, _dt())
        raise RuntimeError("boom")

    assert registry.version == version
    assert registry.get(1).state.position is None  # type: ignore[union-attr]
    assert registry.watermark(Category.POSITION) is None


def test_readers_keep_their_copy() -> None:
    registry = _registry()
    before = registry.entities()

    with registry.transaction() as txn:
        txn.put(Entity(id=4, name="NOR", state=EntityState(position=1)))

    assert [e.state.position for e in before] == [None, None]
    assert registry.get(4).state.position == 1  # type: ignore[union-attr]
    assert [e.id for e in registry.entities()] == [4, 1]


def test_transaction_sees_its_own_writes() -> None:
    registry = _registry()

    with registry.transaction() as txn:
        txn.put(Entity(id=1, name="VER", state=EntityState(position=2)))
        txn.put(Entity(id=4, name="NOR", state=EntityState(position=1)))
        released = txn.release_rank(2, holder=4)
        assert released == [1]
        assert txn.get(1).state.position is None  # type: ignore[union-attr]


def test_watermark_is_monotonic_within_transaction() -> None:
    registry = _registry()

    with registry.transaction() as txn:
        txn.advance_watermark(Category.LAPS, _dt(10))
        txn.advance_watermark(Category.LAPS, _dt(5))
        txn.advance_watermark(Category.LAPS, None)

    assert registry.watermark(Category.LAPS) == _dt(10)


def test_empty_transaction_does_not_bump_version() -> None:
    registry = _registry()
    version = registry.version

    with registry.transaction():
        pass

    assert registry.version == version


def test_race_control_history_zero_keeps_nothing() -> None:
    registry = _registry()

    with registry.transaction() as txn:
        txn.add_message(RaceControlMessage(date=_dt(), message="RED FLAG"))

    assert registry.race_control() == ()


def test_reset_clears_everything() -> None:
    registry = _registry()
    with registry.transaction() as txn:
        txn.advance_watermark(Category.POSITION, _dt())

    registry.reset(9200)

    assert registry.session_key == 9200
    assert len(registry) == 0
    assert registry.watermarks() == {}


def test_policy_helpers() -> None:
    assert should_advance(None, 3)
    assert should_advance(3, 4)
    assert not should_advance(4, 4)
    assert not should_advance(4, None)
    assert not is_persistently_incomplete(30.0, 0.0, 30.0)
    assert is_persistently_incomplete(30.5, 0.0, 30.0)
