"""Latest-set extraction.

Live feeds interleave records from many drivers at slightly different
timestamps per polling tick.  The extractor finds the newest cross-section
holding one record for every expected entity, walking backward from the
newest cursor one timestamp group at a time.  It never returns a partial
set.
"""

from __future__ import annotations

import itertools
from collections.abc import Collection, Iterator
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from pylivetiming.ingestion.fetch import RawBatch
from pylivetiming.state.events import Category, Cursor, RawRecord


class Snapshot(BaseModel):
    """A complete one-per-entity cross-section of a category."""

    model_config = ConfigDict(frozen=True)

    category: Category
    records: dict[int, RawRecord] = Field(default_factory=dict)
    cursor: Cursor | None = Field(default=None, description="Newest cursor in the set; the next watermark")
    groups: int = Field(default=1, ge=0, description="Number of cursor groups merged to complete the set")
    untracked: frozenset[int] = Field(default_factory=frozenset, description="Ids in the batch outside the tracked set")

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self.records

    @property
    def entity_ids(self) -> frozenset[int]:
        return frozenset(self.records)

    def items(self) -> Iterator[tuple[int, RawRecord]]:
        return iter(self.records.items())


@dataclass(frozen=True, slots=True)
class Incomplete:
    """Fewer than the expected entities could be assembled from the batch."""

    category: Category
    captured: int
    expected: int
    untracked: frozenset[int] = frozenset()

    def __str__(self) -> str:
        return f"{self.category}: {self.captured}/{self.expected} entities"


def _walk_newest_first(records: tuple[RawRecord, ...], newest_first: bool) -> list[RawRecord]:
    """Order records by cursor, newest first.

    Records sharing a cursor keep the order in which a backward walk of
    the upstream stream meets them: latest-arriving first for an
    oldest-first feed, as delivered for a newest-first feed.
    """
    if newest_first:
        indexed = [(-index, record) for index, record in enumerate(records)]
    else:
        indexed = list(enumerate(records))
    indexed.sort(key=lambda pair: (pair[1].cursor, pair[0]), reverse=True)
    return [record for _, record in indexed]


def extract_latest_set(
    batch: RawBatch,
    expected_entity_count: int,
    *,
    entity_ids: Collection[int] | None = None,
    newest_first: bool = False,
) -> Snapshot | Incomplete:
    """Find the newest complete cross-section of *batch*.

    Parameters
    ----------
    batch
        Records of one category.
    expected_entity_count
        Distinct entities a snapshot must cover.
    entity_ids
        When given, records for other ids are ignored so they cannot make
        up for a missing tracked entity.  Their ids are reported in
        ``untracked`` on the result.
    newest_first
        Set when the upstream delivers the newest record first.

    The newest cursor group is taken whole.  While fewer than
    *expected_entity_count* entities are captured, the next-older group is
    merged, adding new entity ids only: an entity already captured at a
    newer cursor keeps that record.
    """
    if expected_entity_count < 1:
        raise ValueError(f"expected_entity_count must be at least 1, got {expected_entity_count}")

    tracked = frozenset(entity_ids) if entity_ids is not None else None
    untracked = frozenset(
        record.entity_id
        for record in batch.records
        if tracked is not None and record.entity_id is not None and record.entity_id not in tracked
    )
    usable = tuple(
        record
        for record in batch.records
        if record.cursor is not None
        and record.entity_id is not None
        and (tracked is None or record.entity_id in tracked)
    )
    if not usable:
        return Incomplete(category=batch.category, captured=0, expected=expected_entity_count, untracked=untracked)

    captured: dict[int, RawRecord] = {}
    newest: Cursor | None = None
    groups = 0
    for cursor, group in itertools.groupby(_walk_newest_first(usable, newest_first), key=lambda r: r.cursor):
        if newest is None:
            newest = cursor
        groups += 1
        for record in group:
            assert record.entity_id is not None  # noqa: S101
            captured.setdefault(record.entity_id, record)
        if len(captured) >= expected_entity_count:
            return Snapshot(
                category=batch.category,
                records=captured,
                cursor=newest,
                groups=groups,
                untracked=untracked,
            )

    return Incomplete(
        category=batch.category,
        captured=len(captured),
        expected=expected_entity_count,
        untracked=untracked,
    )


def collect_roster(batch: RawBatch) -> Snapshot:
    """Roster records carry no cursor: the last record per id wins."""
    records: dict[int, RawRecord] = {}
    for record in batch.records:
        if record.entity_id is not None:
            records[record.entity_id] = record
    return Snapshot(category=batch.category, records=records, cursor=None, groups=0 if not records else 1)


def order_events(batch: RawBatch, after: Cursor | None = None) -> list[RawRecord]:
    """Event records newer than *after*, oldest first.

    Ties keep upstream order.  The filter repeats the exclusive ``since``
    bound for categories that are fetched without a window.
    """
    records = [r for r in batch.records if r.cursor is not None and (after is None or r.cursor > after)]
    return sorted(records, key=lambda r: r.cursor)  # type: ignore[arg-type,return-value]

