"""Poll scheduling.

Each category runs its own fetch -> extract -> reconcile loop as an
independent asyncio task on its own cadence, so a slow or failing category
never holds up the others.  A cycle that fails to fetch, or finds no
complete snapshot, leaves the watermark alone: the next cycle asks for the
same window again and simply sees more records.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from pylivetiming._transport import Transport
from pylivetiming.config import LiveTimingConfig
from pylivetiming.exceptions import ReconcileError
from pylivetiming.ingestion.categories import POLLED_CATEGORIES, CategoryProfile, profile_for
from pylivetiming.ingestion.extract import Incomplete, extract_latest_set, order_events
from pylivetiming.ingestion.fetch import FetchError, fetch_category
from pylivetiming.models.session import MeetingInfo, SessionInfo
from pylivetiming.state.board import Board, CategoryPhase, CategoryStatus, build_board
from pylivetiming.state.events import Category, CategoryKind
from pylivetiming.state.policy import is_persistently_incomplete
from pylivetiming.state.reconcile import Reconciler
from pylivetiming.state.registry import EntityRegistry

_logger = logging.getLogger(__name__)

BoardCallback = Callable[[Board], None]


class CycleOutcome(StrEnum):
    RECONCILED = "reconciled"
    NOTHING_NEW = "nothing_new"
    INCOMPLETE = "incomplete"
    FETCH_FAILED = "fetch_failed"
    RECONCILE_FAILED = "reconcile_failed"

    @property
    def is_backoff(self) -> bool:
        return self in (CycleOutcome.INCOMPLETE, CycleOutcome.FETCH_FAILED, CycleOutcome.RECONCILE_FAILED)


@dataclass(slots=True)
class _CategoryRun:
    """Mutable poll state of one category."""

    profile: CategoryProfile
    cadence: float
    window_opened_at: float
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    phase: CategoryPhase = CategoryPhase.IDLE
    cycles: int = 0
    consecutive_failures: int = 0
    persistently_incomplete: bool = False
    last_error: str | None = None
    task: asyncio.Task[None] | None = None


class PollScheduler:
    """Drives the poll cycle of every category and publishes boards.

    Usage::

        scheduler = PollScheduler(config=config, transport=transport, reconciler=reconciler, session_key=9161)
        scheduler.subscribe(print_board)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        *,
        config: LiveTimingConfig,
        transport: Transport,
        reconciler: Reconciler,
        session_key: int,
        categories: Iterable[Category] = POLLED_CATEGORIES,
        session: SessionInfo | None = None,
        meeting: MeetingInfo | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._transport = transport
        self._reconciler = reconciler
        self._session_key = session_key
        self._session = session
        self._meeting = meeting
        self._clock = clock
        self._sleep = sleep
        self._categories = tuple(Category(c) for c in categories)
        for category in self._categories:
            if profile_for(category).kind is CategoryKind.ROSTER:
                raise ValueError(f"{category} is loaded at startup, not polled")
        self._runs = self._new_runs()
        self._subscribers: list[BoardCallback] = []
        self._published = 0
        self._board = self._build_board()

    def _new_runs(self) -> dict[Category, _CategoryRun]:
        now = self._clock()
        return {
            category: _CategoryRun(
                profile=profile_for(category),
                cadence=self._config.cadence_for(category),
                window_opened_at=now,
            )
            for category in self._categories
        }

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def registry(self) -> EntityRegistry:
        return self._reconciler.registry

    @property
    def session_key(self) -> int:
        return self._session_key

    @property
    def categories(self) -> tuple[Category, ...]:
        return self._categories

    @property
    def board(self) -> Board:
        """The latest published board."""
        return self._board

    @property
    def is_running(self) -> bool:
        return any(run.task is not None and not run.task.done() for run in self._runs.values())

    def status(self, category: Category) -> CategoryStatus:
        run = self._runs[Category(category)]
        return CategoryStatus(
            category=run.profile.category,
            phase=run.phase,
            watermark=self.registry.watermark(run.profile.category),
            cycles=run.cycles,
            consecutive_failures=run.consecutive_failures,
            persistently_incomplete=run.persistently_incomplete,
            last_error=run.last_error,
        )

    def statuses(self) -> dict[Category, CategoryStatus]:
        return {category: self.status(category) for category in self._categories}

    def subscribe(self, callback: BoardCallback) -> Callable[[], None]:
        """Call *callback* with every published board.  Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _build_board(self) -> Board:
        return build_board(
            self.registry,
            statuses=self.statuses(),
            session=self._session,
            meeting=self._meeting,
            version=self._published,
        )

    def publish(self) -> Board:
        """Publish a fresh board to every subscriber."""
        self._published += 1
        board = self._build_board()
        self._board = board
        for callback in list(self._subscribers):
            try:
                callback(board)
            except Exception:
                _logger.warning("Board subscriber %r failed", callback, exc_info=True)
        return board

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def run_cycle(self, category: Category) -> CycleOutcome:
        """Run one fetch -> extract -> reconcile cycle for *category*.

        Cycles of the same category never overlap; a second call waits for
        the first to finish.
        """
        run = self._runs[Category(category)]
        async with run.lock:
            run.cycles += 1
            try:
                return await self._cycle(run)
            except asyncio.CancelledError:
                # An abandoned fetch never reaches the reconciler.
                run.phase = CategoryPhase.IDLE
                raise

    async def _cycle(self, run: _CategoryRun) -> CycleOutcome:
        profile = run.profile
        category = profile.category
        watermark = self.registry.watermark(category)
        since = watermark if profile.windowed else None

        run.phase = CategoryPhase.FETCHING
        batch = await fetch_category(self._transport, profile, self._session_key, since=since)
        if isinstance(batch, FetchError):
            return self._backoff(run, CycleOutcome.FETCH_FAILED, str(batch.cause))

        run.phase = CategoryPhase.EXTRACTING
        if profile.kind is CategoryKind.EVENT:
            events = order_events(batch, after=watermark)
            if not events:
                return self._idle(run)
            run.phase = CategoryPhase.RECONCILING
            try:
                self._reconciler.apply_events(category, events)
            except ReconcileError as exc:
                _logger.warning("%s", exc)
                return self._backoff(run, CycleOutcome.RECONCILE_FAILED, str(exc))
            return self._succeed(run)

        extracted = extract_latest_set(
            batch,
            self._reconciler.expected_entity_count,
            entity_ids=self.registry.entity_ids(),
        )
        for entity_id in sorted(extracted.untracked):
            _logger.warning("Skipping %s records for unknown entity %d", category, entity_id)
        if isinstance(extracted, Incomplete):
            _logger.debug("No complete %s snapshot yet (%s)", category, extracted)
            return self._backoff(run, CycleOutcome.INCOMPLETE, str(extracted))

        run.phase = CategoryPhase.RECONCILING
        try:
            self._reconciler.reconcile(category, extracted)
        except ReconcileError as exc:
            _logger.warning("%s", exc)
            return self._backoff(run, CycleOutcome.RECONCILE_FAILED, str(exc))
        return self._succeed(run)

    def _succeed(self, run: _CategoryRun) -> CycleOutcome:
        run.phase = CategoryPhase.IDLE
        run.consecutive_failures = 0
        run.last_error = None
        run.window_opened_at = self._clock()
        if run.persistently_incomplete:
            run.persistently_incomplete = False
            _logger.info("%s is complete again", run.profile.category)
        self.publish()
        return CycleOutcome.RECONCILED

    def _idle(self, run: _CategoryRun) -> CycleOutcome:
        """Nothing new for an event category; there is no completeness to wait for."""
        run.phase = CategoryPhase.IDLE
        run.consecutive_failures = 0
        run.last_error = None
        run.window_opened_at = self._clock()
        return CycleOutcome.NOTHING_NEW

    def _backoff(self, run: _CategoryRun, outcome: CycleOutcome, error: str) -> CycleOutcome:
        run.phase = CategoryPhase.BACKOFF
        run.consecutive_failures += 1
        run.last_error = error
        if not run.persistently_incomplete and is_persistently_incomplete(
            self._clock(), run.window_opened_at, self._config.max_incomplete_window
        ):
            run.persistently_incomplete = True
            _logger.warning(
                "%s has not reconciled for over %.0fs (%d failed cycles, last: %s)",
                run.profile.category,
                self._config.max_incomplete_window,
                run.consecutive_failures,
                error,
            )
            self.publish()
        return outcome

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _poll_forever(self, run: _CategoryRun) -> None:
        category = run.profile.category
        while True:
            try:
                await self.run_cycle(category)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                _logger.warning("Poll cycle for %s failed unexpectedly", category, exc_info=True)
                self._backoff(run, CycleOutcome.FETCH_FAILED, str(exc) or type(exc).__name__)
            await self._sleep(run.cadence)

    def start(self) -> None:
        """Start one polling task per category.  Requires a running loop."""
        for run in self._runs.values():
            if run.task is None or run.task.done():
                run.task = asyncio.create_task(
                    self._poll_forever(run),
                    name=f"pylivetiming-poll-{run.profile.category}",
                )
        _logger.debug("Polling %s for session %s", ", ".join(self._categories), self._session_key)

    async def stop(self) -> None:
        """Cancel all polling tasks and wait for them to finish."""
        tasks = [run.task for run in self._runs.values() if run.task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for run in self._runs.values():
            run.task = None
            run.phase = CategoryPhase.IDLE

    async def switch_session(
        self,
        session_key: int,
        *,
        session: SessionInfo | None = None,
        meeting: MeetingInfo | None = None,
    ) -> None:
        """Point the scheduler at a new session.

        The caller resets the registry and loads the new roster.  Polling
        restarts if it was running.
        """
        was_running = self.is_running
        await self.stop()
        self._session_key = session_key
        self._session = session
        self._meeting = meeting
        self._runs = self._new_runs()
        self.publish()
        if was_running:
            self.start()
