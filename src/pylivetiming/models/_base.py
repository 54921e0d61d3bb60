"""Base model and enum for upstream timing records.

Every record model inherits from :class:`TimingBaseModel` which
provides:

* A ``model_validator(mode="before")`` that strips sentinel values
  (``None``, ``""``, NaN) so the field default is used.
* A ``raw`` dict that captures the original record.

String enums inherit from :class:`TimingEnum` which adds an ``UNKNOWN``
member and a ``_missing_`` hook that matches case-insensitively and
otherwise returns ``UNKNOWN``.
"""

from __future__ import annotations

import enum
import math
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

_SENTINELS = frozenset({"", "NaN", "nan", "None", "null"})


def parse_timestamp(value: Any) -> datetime:
    """Convert an ISO-8601 timestamp to a timezone-aware UTC datetime.

    Naive values are assumed to be UTC.  Raises :class:`ValueError` for
    anything that cannot be parsed, so the enclosing record is rejected.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"unparseable timestamp {value!r}") from exc
    else:
        raise ValueError(f"timestamp must be an ISO-8601 string, got {type(value).__name__}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


Timestamp = Annotated[datetime, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces ISO-8601 strings to UTC datetimes."""


class TimingEnum(enum.StrEnum):
    """Base for upstream string enums.

    Every subclass **must** define ``UNKNOWN``.
    """

    @classmethod
    def _missing_(cls, value: object) -> TimingEnum:
        if isinstance(value, str):
            wanted = value.strip().upper()
            for member in cls:
                if member.value.upper() == wanted:
                    return member
        unknown: TimingEnum = cls.UNKNOWN  # type: ignore[attr-defined]
        return unknown


class TimingBaseModel(BaseModel):
    """Base for upstream record models.

    Handles:
    * sentinel values (``None``, ``""``, NaN) -> dropped so the field
      default is used instead
    * stashes the original record in ``raw``
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, repr=False)
    """Original record dict."""

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Strip sentinel values and stash the raw record."""
        if not isinstance(values, dict):
            return values
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        # Keep the caller's raw when constructing with keyword arguments.
        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned
