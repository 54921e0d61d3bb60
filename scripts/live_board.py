#!/usr/bin/env python3
"""Show a live timing board in the terminal.

The board is redrawn every time a category reconciles.

Usage
-----
::

    python scripts/live_board.py                  # follow the latest session
    python scripts/live_board.py --session 9161   # a specific session

Options::

    --session KEY        Session key (default: $LIVETIMING_SESSION_KEY or "latest")
    --expected N         Entities a complete snapshot must cover (default: roster size)
    --race-control N     Race control messages shown under the table
    --no-clear           Print boards one after another instead of redrawing
    -v, --verbose        Debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pylivetiming import Board, LiveTimingConfig, LiveTimingError, LiveTimingMonitor, render_board  # noqa: E402

_CLEAR = "\x1b[2J\x1b[H"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Live timing board")
    parser.add_argument("--session", default=None, help="Session key or 'latest'")
    parser.add_argument("--expected", type=int, default=None, help="Expected entities per snapshot")
    parser.add_argument("--race-control", type=int, default=5, help="Race control messages to show")
    parser.add_argument("--no-clear", action="store_true", help="Do not clear the screen between boards")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.session:
        overrides["session_key"] = args.session
    if args.expected is not None:
        overrides["expected_entity_count"] = args.expected
    config = LiveTimingConfig.from_env(**overrides)

    def _draw(board: Board) -> None:
        text = render_board(board, race_control=args.race_control)
        prefix = "" if args.no_clear else _CLEAR
        print(f"{prefix}{text}", flush=True)

    async with LiveTimingMonitor(config) as monitor:
        monitor.subscribe(_draw)
        try:
            await monitor.run()
        except LiveTimingError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
    return 0


def main() -> None:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        sys.exit(asyncio.run(_run(args)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
