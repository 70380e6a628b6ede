import pytest
from pydantic import ValidationError

from core.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.port == 8010
    assert settings.relay_pairing_code == "default"
    assert settings.sensor_kind == "synthetic"
    assert settings.audio_tracks["rain"] == 1800.0
    assert not settings.is_development


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("RELAY_PAIRING_CODE", "bedroom")
    monkeypatch.setenv("SENSOR_KIND", "ble")
    monkeypatch.setenv("SENSOR_SAMPLE_INTERVAL", "1.5")
    settings = Settings(_env_file=None)
    assert settings.relay_pairing_code == "bedroom"
    assert settings.sensor_kind == "ble"
    assert settings.sensor_sample_interval == 1.5


def test_invalid_sensor_kind():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, sensor_kind="camera")


def test_tracks_must_have_positive_length():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, audio_tracks={"rain": 0})


def test_sqlite_directory_created(tmp_path):
    db_file = tmp_path / "nested" / "relay.db"
    Settings(_env_file=None, database_url=f"sqlite+aiosqlite:///{db_file}")
    assert db_file.parent.is_dir()


def test_display_timezone(monkeypatch):
    assert Settings(_env_file=None).display_tzinfo is None

    monkeypatch.setenv("DISPLAY_TIMEZONE", "Europe/Berlin")
    settings = Settings(_env_file=None)
    assert settings.display_tzinfo.key == "Europe/Berlin"


def test_unknown_display_timezone():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, display_timezone="Mars/Olympus_Mons")
