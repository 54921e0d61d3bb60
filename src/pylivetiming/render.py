"""Plain-text rendering of a published board."""

from __future__ import annotations

from pylivetiming.models.timing import Gap
from pylivetiming.state.board import Board, EntityView
from pylivetiming.state.entity import PitStatus

COLUMNS = (
    "POS",
    "DRIVER",
    "INTERVAL",
    "TO LEAD",
    "SECTOR 1",
    "SECTOR 2",
    "SECTOR 3",
    "LAST LAP",
    "BEST LAP",
    "PIT/OUT",
    "TYRES",
    "TYRE AGE",
)

_PIT_LABELS = {
    PitStatus.NONE: "",
    PitStatus.IN_PIT: "IN PITS",
    PitStatus.OUT_LAP: "OUT LAP",
}


def format_duration(seconds: float | None) -> str:
    """``92.345`` -> ``"1:32.345"``, ``5.1`` -> ``"05.100"``."""
    if seconds is None:
        return ""
    millis = round(seconds * 1000)
    minutes, millis = divmod(millis, 60_000)
    secs, millis = divmod(millis, 1000)
    if minutes:
        return f"{minutes}:{secs:02d}.{millis:03d}"
    return f"{secs:02d}.{millis:03d}"


def format_gap(gap: Gap | None) -> str:
    if gap is None:
        return ""
    if gap.laps is not None:
        return f"+{gap.laps} LAP" if gap.laps == 1 else f"+{gap.laps} LAPS"
    return f"+{format_duration(gap.seconds)}"


def header_lines(board: Board) -> list[str]:
    """Meeting name and location line, repeated names left out."""
    lines: list[str] = []
    if board.meeting is not None:
        if board.meeting.meeting_official_name or board.meeting.meeting_name:
            lines.append(board.meeting.meeting_official_name or board.meeting.meeting_name)
        parts = board.meeting.header_parts()
        if parts:
            lines.append(" -- ".join(parts))
    if board.session is not None and board.session.session_name:
        lines.append(board.session.session_name)
    return lines


def _row(view: EntityView) -> list[str]:
    entity = view.entity
    state = entity.state
    lap = state.last_lap
    position = str(state.position) if state.position is not None else "-"
    name = f"{entity.name} [{entity.team}]" if entity.team else entity.name
    if view.is_stale:
        name += " *"
    tyre_age = state.tyre_age
    return [
        position,
        name,
        format_gap(state.interval),
        format_gap(state.gap),
        format_duration(lap.sector_1) if lap else "",
        format_duration(lap.sector_2) if lap else "",
        format_duration(lap.sector_3) if lap else "",
        format_duration(state.last_completed_lap.total) if state.last_completed_lap else "",
        format_duration(state.best_lap.total) if state.best_lap else "",
        _PIT_LABELS[state.pit_status],
        f"({state.tyre.compound.short})" if state.tyre else "",
        f"{tyre_age:02d} LAPS" if tyre_age is not None else "",
    ]


def render_board(board: Board, *, race_control: int = 5) -> str:
    """Render *board* as an aligned text table.

    Rows flagged with ``*`` belong to a board where at least one category
    has been incomplete for too long; the footer names those categories.
    The newest *race_control* messages are listed last.
    """
    rows = [list(COLUMNS)] + [_row(view) for view in board.entities]
    widths = [max(len(row[col]) for row in rows) for col in range(len(COLUMNS))]
    lines = header_lines(board)
    if lines:
        lines.append("")
    for row in rows:
        lines.append("  ".join(cell.ljust(width) for cell, width in zip(row, widths, strict=True)).rstrip())

    stale = sorted(board.stale_categories)
    if stale:
        lines.append("")
        lines.append(f"* stale: {', '.join(stale)}")

    if race_control and board.race_control:
        lines.append("")
        lines.append("RACE CONTROL")
        for message in board.race_control[-race_control:]:
            stamp = message.date.strftime("%H:%M:%S")
            lap = f" L{message.lap_number}" if message.lap_number is not None else ""
            lines.append(f"{stamp}{lap}  {message.message}")
    return "\n".join(lines)
