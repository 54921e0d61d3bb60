"""Monitor configuration for pylivetiming."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from pylivetiming._constants import BASE_URL, DEFAULT_CADENCE, DEFAULT_CADENCES, LATEST
from pylivetiming.exceptions import ConfigError


def _env_float(env: Mapping[str, str], key: str) -> float | None:
    value = env.get(key)
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {value!r}") from exc


def _env_int(env: Mapping[str, str], key: str) -> int | None:
    value = env.get(key)
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc


def _parse_cadences(value: str) -> dict[str, float]:
    """Parse ``"position=2,laps=5"`` into a cadence mapping."""
    cadences: dict[str, float] = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, seconds = item.partition("=")
        if not sep:
            raise ConfigError(f"Cadence entry must look like 'category=seconds', got {item!r}")
        try:
            cadences[name.strip()] = float(seconds)
        except ValueError as exc:
            raise ConfigError(f"Cadence for {name.strip()!r} must be a number, got {seconds!r}") from exc
    return cadences


@dataclasses.dataclass(frozen=True)
class LiveTimingConfig:
    """Monitor configuration.

    Parameters
    ----------
    base_url : str
        API base URL, without a trailing slash.
    session_key : str
        Upstream session key, or ``"latest"`` to follow the current session.
    expected_entity_count : int or None
        Number of entities a complete snapshot must cover.  ``None`` uses
        the roster size loaded at startup.
    cadences : dict
        Polling cadence in seconds per category name.  Categories not
        listed use ``default_cadence``.
    default_cadence : float
        Fallback polling cadence in seconds.
    max_incomplete_window : float
        Seconds a category may go without a successful reconciliation
        before it is flagged persistently incomplete.  The flag is a
        diagnostic shown on the board, never a fatal condition.
    request_timeout : float
        Total timeout in seconds for a single GET request.
    startup_attempts : int
        How many times the session and roster fetches are tried at startup
        before giving up.
    startup_retry_delay : float
        Seconds between startup attempts.
    race_control_history : int
        Number of race control messages retained on the board.
    session_check_interval : float
        Seconds between checks for a new upstream session when following
        ``"latest"``.  ``0`` disables the check.
    """

    base_url: str = BASE_URL
    session_key: str = LATEST
    expected_entity_count: int | None = None
    cadences: dict[str, float] = dataclasses.field(default_factory=lambda: dict(DEFAULT_CADENCES))
    default_cadence: float = DEFAULT_CADENCE
    max_incomplete_window: float = 60.0
    request_timeout: float = 10.0
    startup_attempts: int = 5
    startup_retry_delay: float = 1.0
    race_control_history: int = 20
    session_check_interval: float = 0.0

    def __post_init__(self) -> None:
        if self.expected_entity_count is not None and self.expected_entity_count < 1:
            raise ConfigError("expected_entity_count must be at least 1")
        for name, seconds in self.cadences.items():
            if seconds <= 0:
                raise ConfigError(f"cadence for {name!r} must be positive, got {seconds}")
        if self.default_cadence <= 0:
            raise ConfigError("default_cadence must be positive")
        if self.max_incomplete_window <= 0:
            raise ConfigError("max_incomplete_window must be positive")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")
        if self.startup_attempts < 1:
            raise ConfigError("startup_attempts must be at least 1")
        if self.race_control_history < 0:
            raise ConfigError("race_control_history must not be negative")
        if self.session_check_interval < 0:
            raise ConfigError("session_check_interval must not be negative")

    def cadence_for(self, category: str) -> float:
        """Polling cadence in seconds for *category*."""
        return self.cadences.get(str(category), self.default_cadence)

    @property
    def follows_latest(self) -> bool:
        return self.session_key == LATEST

    @classmethod
    def from_env(cls, **overrides: Any) -> LiveTimingConfig:
        """Create configuration from environment variables.

        Reads the optional ``LIVETIMING_*`` variables.  Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        LiveTimingConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        base_url = env.get("LIVETIMING_BASE_URL")
        if base_url:
            config_kwargs["base_url"] = base_url.rstrip("/")
        session_key = env.get("LIVETIMING_SESSION_KEY")
        if session_key:
            config_kwargs["session_key"] = session_key.strip()

        _ENV_INT_MAP = {
            "LIVETIMING_EXPECTED_ENTITIES": "expected_entity_count",
            "LIVETIMING_STARTUP_ATTEMPTS": "startup_attempts",
            "LIVETIMING_RACE_CONTROL_HISTORY": "race_control_history",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            int_value = _env_int(env, env_key)
            if int_value is not None:
                config_kwargs[field_name] = int_value

        _ENV_FLOAT_MAP = {
            "LIVETIMING_DEFAULT_CADENCE": "default_cadence",
            "LIVETIMING_MAX_INCOMPLETE_WINDOW": "max_incomplete_window",
            "LIVETIMING_REQUEST_TIMEOUT": "request_timeout",
            "LIVETIMING_STARTUP_RETRY_DELAY": "startup_retry_delay",
            "LIVETIMING_SESSION_CHECK_INTERVAL": "session_check_interval",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            float_value = _env_float(env, env_key)
            if float_value is not None:
                config_kwargs[field_name] = float_value

        # Cadences merge over the defaults rather than replacing them.
        cadences = dict(DEFAULT_CADENCES)
        cadence_env = env.get("LIVETIMING_CADENCES")
        if cadence_env:
            cadences.update(_parse_cadences(cadence_env))
        cadence_overrides = overrides.pop("cadences", None)
        if isinstance(cadence_overrides, Mapping):
            cadences.update({str(k): float(v) for k, v in cadence_overrides.items()})
        config_kwargs["cadences"] = cadences

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
