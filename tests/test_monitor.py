from __future__ import annotations

import asyncio
from typing import Any

import pytest

from pylivetiming.config import LiveTimingConfig
from pylivetiming.exceptions import LiveTimingError, RosterUnavailableError, TransportError
from pylivetiming.monitor import LiveTimingMonitor
from pylivetiming.state.board import Board

SESSION = {"session_key": 9161, "session_name": "Race", "session_type": "Race", "meeting_key": 1250}
MEETING = {
    "meeting_key": 1250,
    "meeting_official_name": "FORMULA 1 PIRELLI GRAN PREMIO D'ITALIA 2026",
    "country_name": "Italy",
    "location": "Monza",
    "circuit_short_name": "Monza",
}
DRIVERS = [
    {"driver_number": 1, "name_acronym": "VER", "team_name": "Red Bull Racing", "session_key": 9161},
    {"driver_number": 16, "name_acronym": "LEC", "team_name": "Ferrari", "session_key": 9161},
]


class _FakeApi:
    """Serves queued responses per endpoint; the last one repeats."""

    def __init__(self, **responses: list[Any]) -> None:
        self.responses: dict[str, list[Any]] = {endpoint: list(items) for endpoint, items in responses.items()}
        self.calls: list[tuple[str, str]] = []

    async def get_json(self, endpoint: str, query: str = "") -> Any:
        self.calls.append((endpoint, query))
        queue = self.responses.get(endpoint)
        if not queue:
            return []
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _config(**overrides: Any) -> LiveTimingConfig:
    defaults: dict[str, Any] = {"startup_attempts": 3, "startup_retry_delay": 0.5}
    defaults.update(overrides)
    return LiveTimingConfig(**defaults)


@pytest.mark.asyncio
async def test_start_loads_session_meeting_and_roster() -> None:
    api = _FakeApi(sessions=[[SESSION]], meetings=[[MEETING]], drivers=[DRIVERS])

    async with LiveTimingMonitor(_config(), transport=api) as monitor:
        board = await monitor.start()

        assert board.session_key == 9161
        assert board.meeting is not None
        assert board.meeting.header_parts() == ["Italy", "Monza"]
        assert [view.id for view in board.entities] == [1, 16]
        assert monitor.scheduler.is_running
        assert monitor.registry.get(16).team == "Ferrari"  # type: ignore[union-attr]

    assert api.calls[:3] == [
        ("sessions", "session_key=latest"),
        ("meetings", "meeting_key=1250"),
        ("drivers", "session_key=9161"),
    ]


@pytest.mark.asyncio
async def test_missing_roster_is_fatal() -> None:
    api = _FakeApi(sessions=[[SESSION]], meetings=[[MEETING]], drivers=[[]])
    sleep = _RecordingSleep()

    async with LiveTimingMonitor(_config(), transport=api, sleep=sleep) as monitor:
        with pytest.raises(RosterUnavailableError):
            await monitor.start()

    assert [c for c in api.calls if c[0] == "drivers"] == [("drivers", "session_key=9161")] * 3
    assert sleep.delays == [0.5, 0.5]
    with pytest.raises(LiveTimingError):
        _ = monitor.board


@pytest.mark.asyncio
async def test_roster_retried_after_transport_error() -> None:
    api = _FakeApi(
        sessions=[[SESSION]],
        meetings=[TransportError("HTTP 500", status_code=500)],
        drivers=[TransportError("timed out"), DRIVERS],
    )

    async with LiveTimingMonitor(_config(), transport=api, sleep=_RecordingSleep()) as monitor:
        board = await monitor.start()

    # The meeting is optional.
    assert board.meeting is None
    assert len(board.entities) == 2


@pytest.mark.asyncio
async def test_subscriber_added_before_start_gets_first_board() -> None:
    api = _FakeApi(sessions=[[SESSION]], meetings=[[MEETING]], drivers=[DRIVERS])
    boards: list[Board] = []

    async with LiveTimingMonitor(_config(), transport=api) as monitor:
        monitor.subscribe(boards.append)
        await monitor.start()

    assert boards
    assert boards[0].session is not None
    assert boards[0].session.session_name == "Race"


@pytest.mark.asyncio
async def test_run_returns_after_stop() -> None:
    api = _FakeApi(sessions=[[SESSION]], meetings=[[MEETING]], drivers=[DRIVERS])

    async with LiveTimingMonitor(_config(), transport=api) as monitor:
        runner = asyncio.create_task(monitor.run())
        while monitor.session_info is None:
            await asyncio.sleep(0)
        await monitor.stop()
        await asyncio.wait_for(runner, timeout=2.0)

    assert runner.done()
    assert not monitor.scheduler.is_running


@pytest.mark.asyncio
async def test_new_latest_session_resets_registry() -> None:
    next_session = {**SESSION, "session_key": 9200, "session_name": "Sprint"}
    next_drivers = [{**DRIVERS[0], "session_key": 9200}, {"driver_number": 44, "name_acronym": "HAM"}]
    api = _FakeApi(sessions=[[SESSION]], meetings=[[MEETING]], drivers=[DRIVERS])

    async with LiveTimingMonitor(_config(), transport=api) as monitor:
        await monitor.start()
        assert await monitor.check_session() is False

        api.responses["sessions"] = [[next_session]]
        api.responses["drivers"] = [next_drivers]
        assert await monitor.check_session() is True

        assert monitor.registry.session_key == 9200
        assert monitor.registry.entity_ids() == frozenset({1, 44})
        assert monitor.scheduler.session_key == 9200
        assert monitor.scheduler.is_running
        assert monitor.board.session is not None
        assert monitor.board.session.session_name == "Sprint"
