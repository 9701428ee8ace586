import pytest

from solver import settings


def test_defaults(monkeypatch) -> None:
    for key in settings.DEFAULT_SETTINGS:
        monkeypatch.delenv(settings.ENV_PREFIX + key.upper(), raising=False)
    s = settings.get_settings()
    assert s["gamma"] == "0.9"
    assert s["transition_matrix"] == "0.5,0.5\n0.2,0.8"
    assert s["log_level"] == "INFO"


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("BELLMAN_PORT", "9000")
    monkeypatch.setenv("BELLMAN_TRANSITION_MATRIX", "1,0;0,1")
    monkeypatch.setenv("BELLMAN_LOG_LEVEL", "debug")
    s = settings.get_settings()
    assert s["port"] == 9000
    assert s["transition_matrix"] == "1,0\n0,1"
    assert s["log_level"] == "DEBUG"


def test_explicit_overrides_win_and_none_is_ignored(monkeypatch) -> None:
    monkeypatch.setenv("BELLMAN_HOST", "0.0.0.0")
    monkeypatch.delenv("BELLMAN_PORT", raising=False)
    s = settings.get_settings({"host": "localhost", "port": None})
    assert s["host"] == "localhost"
    assert s["port"] == settings.DEFAULT_SETTINGS["port"]


def test_bad_integer(monkeypatch) -> None:
    monkeypatch.setenv("BELLMAN_PORT", "eighty")
    with pytest.raises(ValueError, match="must be an integer"):
        settings.get_settings()


def test_unknown_override() -> None:
    with pytest.raises(ValueError, match="Unknown settings"):
        settings.get_settings({"colour": "red"})
