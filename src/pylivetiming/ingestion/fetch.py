"""Time-windowed fetching of one category.

The fetcher never retries: a failed request is returned as a
:class:`FetchError` value and the poll scheduler decides what to do next.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field

from pylivetiming._transport import Transport
from pylivetiming.exceptions import MalformedRecordError, TransportError
from pylivetiming.ingestion.categories import CategoryProfile
from pylivetiming.state.events import Category, Cursor, RawRecord

_logger = logging.getLogger(__name__)

# Percent-encoded filter operators.
_GREATER_THAN = "%3E"
_LESS_OR_EQUAL = "%3C%3D"


class RawBatch(BaseModel):
    """Records returned by one fetch, in upstream order.

    An empty batch is a normal "nothing new yet" outcome.
    """

    model_config = ConfigDict(frozen=True)

    category: Category
    records: tuple[RawRecord, ...] = ()
    since: Cursor | None = None
    until: Cursor | None = None
    dropped: int = Field(default=0, ge=0, description="Malformed records left out of the batch")

    def __len__(self) -> int:
        return len(self.records)

    @property
    def is_empty(self) -> bool:
        return not self.records


@dataclass(frozen=True, slots=True)
class FetchError:
    """A fetch that failed at the transport level."""

    category: Category
    cause: TransportError
    since: Cursor | None = None
    until: Cursor | None = None

    def __str__(self) -> str:
        return f"{self.category}: {self.cause}"


def build_query(
    profile: CategoryProfile,
    session_key: int | str,
    *,
    since: Cursor | None = None,
    until: Cursor | None = None,
) -> str:
    """Build the percent-encoded query string for a category request.

    ``since`` is exclusive so the record sitting exactly on the watermark
    is not fetched again; ``until`` is inclusive.  Both are ignored for
    categories that are not windowed or have no cursor field.
    """
    parts = [f"session_key={quote(str(session_key), safe='')}"]
    field = profile.cursor_field
    if profile.windowed and field is not None:
        if since is not None:
            parts.append(f"{field}{_GREATER_THAN}{quote(profile.format_cursor(since), safe='')}")
        if until is not None:
            parts.append(f"{field}{_LESS_OR_EQUAL}{quote(profile.format_cursor(until), safe='')}")
    return "&".join(parts)


def parse_records(profile: CategoryProfile, payload: object) -> tuple[tuple[RawRecord, ...], int]:
    """Parse a decoded response body into records.

    Returns the usable records and the number of malformed ones dropped.
    Raises :class:`TransportError` when the body is not a list at all.
    """
    if not isinstance(payload, list):
        raise TransportError(f"Expected a list of {profile.category} records, got {type(payload).__name__}")

    records: list[RawRecord] = []
    dropped = 0
    for raw in payload:
        try:
            records.append(profile.to_record(raw))
        except MalformedRecordError as exc:
            dropped += 1
            _logger.debug("Dropping malformed record: %s", exc)
    return tuple(records), dropped


async def fetch_category(
    transport: Transport,
    profile: CategoryProfile,
    session_key: int | str,
    *,
    since: Cursor | None = None,
    until: Cursor | None = None,
) -> RawBatch | FetchError:
    """Fetch one category between two bounds.

    Transport failures, non-2xx responses and malformed top-level JSON
    all come back as :class:`FetchError`; nothing is raised.
    """
    query = build_query(profile, session_key, since=since, until=until)
    try:
        payload = await transport.get_json(profile.endpoint, query)
        records, dropped = parse_records(profile, payload)
    except TransportError as exc:
        _logger.warning("Fetching %s failed: %s", profile.category, exc)
        return FetchError(category=profile.category, cause=exc, since=since, until=until)

    if dropped:
        _logger.debug("Dropped %d malformed %s record(s)", dropped, profile.category)

    return RawBatch(
        category=profile.category,
        records=records,
        since=since,
        until=until,
        dropped=dropped,
    )
