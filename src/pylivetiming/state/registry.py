"""In-memory entity registry.

The registry owns every entity, the per-category watermarks and the race
control log.  Writes go through :meth:`EntityRegistry.transaction`, which
stages changes and publishes them in one step when the block finishes
without an exception.  Readers always see a fully committed state.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Iterator, Mapping

from pylivetiming.models.events import RaceControlMessage
from pylivetiming.state.entity import Entity
from pylivetiming.state.events import Category, Cursor
from pylivetiming.state.policy import board_order_key, should_advance

_logger = logging.getLogger(__name__)


class RegistryTransaction:
    """Staged writes against a registry; discarded unless committed."""

    def __init__(self, entities: Mapping[int, Entity], watermarks: Mapping[Category, Cursor]) -> None:
        self._base = entities
        self._base_watermarks = watermarks
        self.staged: dict[int, Entity] = {}
        self.watermarks: dict[Category, Cursor] = {}
        self.messages: list[RaceControlMessage] = []

    def get(self, entity_id: int) -> Entity | None:
        staged = self.staged.get(entity_id)
        if staged is not None:
            return staged
        return self._base.get(entity_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self.staged or entity_id in self._base

    def put(self, entity: Entity) -> None:
        self.staged[entity.id] = entity

    def iter_entities(self) -> Iterator[Entity]:
        for entity_id in self._base.keys() | self.staged.keys():
            entity = self.get(entity_id)
            if entity is not None:
                yield entity

    def release_rank(self, position: int, *, holder: int) -> list[int]:
        """Clear *position* from every entity other than *holder*.

        Returns the ids whose position became unknown.
        """
        released: list[int] = []
        for entity in list(self.iter_entities()):
            if entity.id != holder and entity.state.position == position:
                self.put(entity.with_state(entity.state.model_copy(update={"position": None})))
                released.append(entity.id)
        return released

    def advance_watermark(self, category: Category, cursor: Cursor | None) -> None:
        current = self.watermarks.get(category, self._base_watermarks.get(category))
        if should_advance(current, cursor):
            assert cursor is not None  # noqa: S101
            self.watermarks[category] = cursor

    def add_message(self, message: RaceControlMessage) -> None:
        self.messages.append(message)

    @property
    def has_changes(self) -> bool:
        return bool(self.staged or self.watermarks or self.messages)


class EntityRegistry:
    """Single owner of all entities of one monitored session.

    Committed state is never mutated in place: each commit swaps in new
    containers, so a reader holding a reference keeps a consistent view.
    """

    def __init__(self, session_key: int | None = None, *, race_control_history: int = 20) -> None:
        self._write_lock = threading.Lock()
        self._session_key = session_key
        self._race_control_history = race_control_history
        self._entities: dict[int, Entity] = {}
        self._watermarks: dict[Category, Cursor] = {}
        self._race_control: tuple[RaceControlMessage, ...] = ()
        self._version = 0

    @property
    def session_key(self) -> int | None:
        return self._session_key

    @property
    def version(self) -> int:
        """Incremented on every commit or reset."""
        return self._version

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entities

    def get(self, entity_id: int) -> Entity | None:
        return self._entities.get(entity_id)

    def entity_ids(self) -> frozenset[int]:
        return frozenset(self._entities)

    def entities(self) -> tuple[Entity, ...]:
        """Entities in board order."""
        return tuple(sorted(self._entities.values(), key=board_order_key))

    def watermark(self, category: Category) -> Cursor | None:
        return self._watermarks.get(category)

    def watermarks(self) -> dict[Category, Cursor]:
        return dict(self._watermarks)

    def race_control(self) -> tuple[RaceControlMessage, ...]:
        return self._race_control

    @contextlib.contextmanager
    def transaction(self) -> Iterator[RegistryTransaction]:
        """Stage writes and commit them together.

        One writer at a time across all categories.  If the block raises,
        nothing it staged becomes visible.
        """
        with self._write_lock:
            txn = RegistryTransaction(self._entities, self._watermarks)
            yield txn
            if not txn.has_changes:
                return
            if txn.staged:
                self._entities = {**self._entities, **txn.staged}
            if txn.watermarks:
                self._watermarks = {**self._watermarks, **txn.watermarks}
            if txn.messages:
                messages = self._race_control + tuple(txn.messages)
                keep = self._race_control_history
                self._race_control = messages[-keep:] if keep else ()
            self._version += 1

    def reset(self, session_key: int | None) -> None:
        """Drop everything for a new upstream session."""
        with self._write_lock:
            _logger.info("Resetting registry for session %s (was %s)", session_key, self._session_key)
            self._session_key = session_key
            self._entities = {}
            self._watermarks = {}
            self._race_control = ()
            self._version += 1
