"""Session, meeting and roster loading."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from pylivetiming._transport import Transport
from pylivetiming.exceptions import TransportError
from pylivetiming.ingestion.categories import profile_for
from pylivetiming.ingestion.fetch import FetchError, RawBatch, fetch_category
from pylivetiming.models.session import MeetingInfo, SessionInfo
from pylivetiming.state.events import Category

_logger = logging.getLogger(__name__)


def _newest(payload: Any, model: type[SessionInfo] | type[MeetingInfo]) -> Any:
    if not isinstance(payload, list):
        raise TransportError(f"Expected a list of {model.__name__} records, got {type(payload).__name__}")
    parsed = []
    for raw in payload:
        try:
            parsed.append(model.model_validate(raw))
        except ValidationError:
            _logger.debug("Ignoring malformed %s record", model.__name__)
    return parsed[-1] if parsed else None


async def fetch_session(transport: Transport, session_key: int | str) -> SessionInfo | None:
    """Resolve a session key (``"latest"`` included).  ``None`` when unknown."""
    payload = await transport.get_json("sessions", f"session_key={session_key}")
    session: SessionInfo | None = _newest(payload, SessionInfo)
    return session


async def fetch_meeting(transport: Transport, meeting_key: int | str) -> MeetingInfo | None:
    payload = await transport.get_json("meetings", f"meeting_key={meeting_key}")
    meeting: MeetingInfo | None = _newest(payload, MeetingInfo)
    return meeting


async def fetch_roster(transport: Transport, session_key: int) -> RawBatch:
    """Fetch the driver roster of a session.

    Raises :class:`TransportError` on failure so the caller can retry.
    """
    result = await fetch_category(transport, profile_for(Category.DRIVERS), session_key)
    if isinstance(result, FetchError):
        raise result.cause
    return result
