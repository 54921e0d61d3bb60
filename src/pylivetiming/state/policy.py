"""Deterministic ordering and staleness policy.

This module intentionally contains *no* payload parsing.  The ingestion
boundary is responsible for producing typed records and cursors.
"""

from __future__ import annotations

from pylivetiming.state.entity import Entity
from pylivetiming.state.events import Cursor


def should_advance(current: Cursor | None, incoming: Cursor | None) -> bool:
    """Watermarks only ever move forward."""
    if incoming is None:
        return False
    if current is None:
        return True
    return incoming > current  # type: ignore[operator]


def board_order_key(entity: Entity) -> tuple[bool, int, int]:
    """Position ascending, unknown positions last, ties by entity id."""
    position = entity.state.position
    return (position is None, position or 0, entity.id)


def is_persistently_incomplete(now: float, window_opened_at: float, max_window: float) -> bool:
    """True once a category has gone *max_window* seconds without a reconciliation."""
    return (now - window_opened_at) > max_window
