"""Custom exception hierarchy for pylivetiming."""

from __future__ import annotations


class LiveTimingError(Exception):
    """Base exception for all pylivetiming errors."""


class ConfigError(LiveTimingError):
    """Invalid or missing configuration."""


class TransportError(LiveTimingError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class MalformedRecordError(LiveTimingError):
    """A single upstream record could not be used.

    Raised while parsing one record; the fetcher drops the record and keeps
    the rest of the batch.
    """


class UnknownEntityError(LiveTimingError):
    """A record referenced an entity id that is not in the registry."""

    def __init__(self, entity_id: int, category: str) -> None:
        self.entity_id = entity_id
        self.category = category
        super().__init__(f"Unknown entity {entity_id} referenced by {category}")


class ReconcileError(LiveTimingError):
    """Merging a snapshot failed; nothing from it was committed."""

    def __init__(self, message: str, *, category: str = "") -> None:
        self.category = category
        super().__init__(message)


class RosterUnavailableError(LiveTimingError):
    """The session or its roster could not be loaded at startup.

    This is the only fatal condition: without a roster no entity state
    can ever be produced.
    """
