from __future__ import annotations

import pytest

from pylivetiming.config import LiveTimingConfig
from pylivetiming.exceptions import ConfigError
from pylivetiming.state.events import Category


def test_defaults_follow_latest_session() -> None:
    config = LiveTimingConfig()

    assert config.follows_latest
    assert config.cadence_for(Category.POSITION) == 4.0
    assert config.cadence_for(Category.DRIVERS) == config.default_cadence


def test_from_env_reads_livetiming_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LIVETIMING_BASE_URL", "http://localhost:8000/v1/")
    monkeypatch.setenv("LIVETIMING_SESSION_KEY", "9161")
    monkeypatch.setenv("LIVETIMING_EXPECTED_ENTITIES", "20")
    monkeypatch.setenv("LIVETIMING_MAX_INCOMPLETE_WINDOW", "45")
    monkeypatch.setenv("LIVETIMING_CADENCES", "position=2, laps=6.5")

    config = LiveTimingConfig.from_env()

    assert config.base_url == "http://localhost:8000/v1"
    assert config.session_key == "9161"
    assert not config.follows_latest
    assert config.expected_entity_count == 20
    assert config.max_incomplete_window == 45.0
    assert config.cadence_for(Category.POSITION) == 2.0
    assert config.cadence_for(Category.LAPS) == 6.5
    # Unlisted categories keep their default cadence.
    assert config.cadence_for(Category.STINTS) == 10.0


def test_overrides_beat_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LIVETIMING_SESSION_KEY", "9161")
    monkeypatch.setenv("LIVETIMING_CADENCES", "position=2")

    config = LiveTimingConfig.from_env(session_key="latest", cadences={"position": 3})

    assert config.session_key == "latest"
    assert config.cadence_for(Category.POSITION) == 3.0


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("LIVETIMING_EXPECTED_ENTITIES", "twenty"),
        ("LIVETIMING_REQUEST_TIMEOUT", "soon"),
        ("LIVETIMING_CADENCES", "position"),
        ("LIVETIMING_CADENCES", "position=fast"),
        ("LIVETIMING_EXPECTED_ENTITIES", "0"),
        ("LIVETIMING_CADENCES", "laps=0"),
    ],
)
def test_invalid_environment_raises(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigError):
        LiveTimingConfig.from_env()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"startup_attempts": 0},
        {"request_timeout": 0},
        {"race_control_history": -1},
        {"session_check_interval": -5},
    ],
)
def test_invalid_values_raise(kwargs: dict[str, object]) -> None:
    with pytest.raises(ConfigError):
        LiveTimingConfig(**kwargs)  # type: ignore[arg-type]
