import pytest
from pydantic import ValidationError

from orgdesign.config import Settings
from orgdesign.utils.timeparse import parse_duration


@pytest.mark.parametrize("text,seconds", [
    ("300ms", 0.3),
    ("15s", 15),
    ("1.5s", 1.5),
    ("10m", 600),
    ("1h", 3600),
    (" 2s ", 2),
])
def test_parse_duration(text, seconds):
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ["", "10", "5d", "s", "10s extra", None])
def test_parse_duration_invalid(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_settings_reject_bad_debounce():
    with pytest.raises(ValidationError):
        Settings(AUTOSAVE_DEBOUNCE="soon")


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("ORGDESIGN_MAX_ACCOUNTS", "250")
    monkeypatch.setenv("ORGDESIGN_AUTOSAVE_DEBOUNCE", "1s")
    config = Settings()
    assert config.MAX_ACCOUNTS == 250
    assert config.autosave_delay_seconds == 1.0
