"""High-level async monitor for a live timing session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import aiohttp

from pylivetiming._transport import HttpTransport, Transport
from pylivetiming.config import LiveTimingConfig
from pylivetiming.exceptions import LiveTimingError, RosterUnavailableError, TransportError
from pylivetiming.ingestion.extract import collect_roster
from pylivetiming.ingestion.fetch import RawBatch
from pylivetiming.ingestion.session import fetch_meeting, fetch_roster, fetch_session
from pylivetiming.models.session import MeetingInfo, SessionInfo
from pylivetiming.scheduler import BoardCallback, PollScheduler
from pylivetiming.state.board import Board
from pylivetiming.state.events import Category
from pylivetiming.state.reconcile import Reconciler
from pylivetiming.state.registry import EntityRegistry

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class LiveTimingMonitor:
    """Follows one live session and keeps a reconciled board.

    Usage::

        async with LiveTimingMonitor(config) as monitor:
            monitor.subscribe(lambda board: print(render_board(board)))
            await monitor.run()
    """

    def __init__(
        self,
        config: LiveTimingConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config or LiveTimingConfig()
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._sleep = sleep
        self._session_info: SessionInfo | None = None
        self._meeting: MeetingInfo | None = None
        self._registry: EntityRegistry | None = None
        self._reconciler: Reconciler | None = None
        self._scheduler: PollScheduler | None = None
        self._pending_subscribers: list[BoardCallback] = []
        self._watch_task: asyncio.Task[None] | None = None
        self._stopped: asyncio.Event | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> LiveTimingMonitor:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._config, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def config(self) -> LiveTimingConfig:
        return self._config

    @property
    def session_info(self) -> SessionInfo | None:
        return self._session_info

    @property
    def meeting(self) -> MeetingInfo | None:
        return self._meeting

    @property
    def registry(self) -> EntityRegistry:
        if self._registry is None:
            raise LiveTimingError("Monitor not started. Call 'await monitor.start()' first")
        return self._registry

    @property
    def scheduler(self) -> PollScheduler:
        if self._scheduler is None:
            raise LiveTimingError("Monitor not started. Call 'await monitor.start()' first")
        return self._scheduler

    @property
    def board(self) -> Board:
        return self.scheduler.board

    def subscribe(self, callback: BoardCallback) -> None:
        """Receive every published board, including those published before polling starts."""
        if self._scheduler is not None:
            self._scheduler.subscribe(callback)
        else:
            self._pending_subscribers.append(callback)

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise LiveTimingError("Monitor not initialized. Use 'async with LiveTimingMonitor(...) as monitor:'")
        return self._transport

    async def _with_retries(self, what: str, fetch: Callable[[], Awaitable[T | None]]) -> T:
        """Try *fetch* until it returns something, up to ``startup_attempts`` times."""
        attempts = self._config.startup_attempts
        last_error: str = "no data"
        for attempt in range(1, attempts + 1):
            try:
                result = await fetch()
            except TransportError as exc:
                last_error = str(exc)
                _logger.warning("Loading %s failed (attempt %d/%d): %s", what, attempt, attempts, exc)
            else:
                if result is not None and not (isinstance(result, RawBatch) and result.is_empty):
                    return result
                last_error = "no data"
                _logger.info("No %s available yet (attempt %d/%d)", what, attempt, attempts)
            if attempt < attempts and self._config.startup_retry_delay > 0:
                await self._sleep(self._config.startup_retry_delay)
        raise RosterUnavailableError(f"Could not load {what} after {attempts} attempt(s): {last_error}")

    async def _load_meeting(self, session: SessionInfo) -> MeetingInfo | None:
        if session.meeting_key is None:
            return None
        transport = self._require_transport()
        try:
            return await fetch_meeting(transport, session.meeting_key)
        except TransportError as exc:
            # The meeting only feeds the header; polling can go on without it.
            _logger.warning("Loading meeting %s failed: %s", session.meeting_key, exc)
            return None

    async def _load_session(self, session_key: int | str) -> tuple[SessionInfo, MeetingInfo | None, RawBatch]:
        transport = self._require_transport()
        session = await self._with_retries(
            f"session {session_key}",
            lambda: fetch_session(transport, session_key),
        )
        meeting = await self._load_meeting(session)
        roster = await self._with_retries(
            f"roster of session {session.session_key}",
            lambda: fetch_roster(transport, session.session_key),
        )
        return session, meeting, roster

    async def start(self) -> Board:
        """Resolve the session, load the roster and start polling.

        Raises :class:`RosterUnavailableError` when the session or roster
        cannot be loaded; nothing can be shown without them.
        """
        if self._scheduler is not None:
            return self._scheduler.board

        transport = self._require_transport()
        session, meeting, roster = await self._load_session(self._config.session_key)
        self._session_info = session
        self._meeting = meeting
        _logger.info("Following session %s (%s)", session.session_key, session.session_name or "unnamed")

        self._registry = EntityRegistry(
            session.session_key,
            race_control_history=self._config.race_control_history,
        )
        self._reconciler = Reconciler(
            self._registry,
            expected_entity_count=self._config.expected_entity_count,
        )
        self._reconciler.reconcile(Category.DRIVERS, collect_roster(roster))
        _logger.info("Roster loaded: %d drivers", len(self._registry))

        self._scheduler = PollScheduler(
            config=self._config,
            transport=transport,
            reconciler=self._reconciler,
            session_key=session.session_key,
            session=session,
            meeting=meeting,
        )
        for callback in self._pending_subscribers:
            self._scheduler.subscribe(callback)
        self._pending_subscribers.clear()

        self._stopped = asyncio.Event()
        board = self._scheduler.publish()
        self._scheduler.start()
        if self._config.follows_latest and self._config.session_check_interval > 0:
            self._watch_task = asyncio.create_task(self._watch_session(), name="pylivetiming-session-watch")
        return board

    async def run(self) -> None:
        """Start (if needed) and poll until :meth:`stop` is called."""
        await self.start()
        assert self._stopped is not None  # noqa: S101
        await self._stopped.wait()

    async def stop(self) -> None:
        if self._watch_task is not None:
            self._watch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._watch_task
            self._watch_task = None
        if self._scheduler is not None:
            await self._scheduler.stop()
        if self._stopped is not None:
            self._stopped.set()

    # ------------------------------------------------------------------
    # Session changes
    # ------------------------------------------------------------------

    async def check_session(self) -> bool:
        """Switch to a new upstream session if ``latest`` moved on.

        Returns True when the session changed.
        """
        transport = self._require_transport()
        current = self.registry.session_key
        try:
            latest = await fetch_session(transport, self._config.session_key)
        except TransportError as exc:
            _logger.debug("Session check failed: %s", exc)
            return False
        if latest is None or latest.session_key == current:
            return False

        _logger.info("Session changed from %s to %s", current, latest.session_key)
        try:
            session, meeting, roster = await self._load_session(latest.session_key)
        except RosterUnavailableError as exc:
            _logger.warning("Staying on session %s: %s", current, exc)
            return False

        scheduler = self.scheduler
        was_running = scheduler.is_running
        await scheduler.stop()
        self.registry.reset(session.session_key)
        assert self._reconciler is not None  # noqa: S101
        self._reconciler.reconcile(Category.DRIVERS, collect_roster(roster))
        self._session_info = session
        self._meeting = meeting
        await scheduler.switch_session(session.session_key, session=session, meeting=meeting)
        if was_running:
            scheduler.start()
        return True

    async def _watch_session(self) -> None:
        while True:
            await self._sleep(self._config.session_check_interval)
            try:
                await self.check_session()
            except asyncio.CancelledError:
                raise
            except Exception:
                _logger.warning("Session check failed unexpectedly", exc_info=True)
