"""Environment-driven configuration with Pydantic v2."""

from datetime import tzinfo
from typing import Dict, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from constants import DEFAULT_AUDIO_TRACKS


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=8010, env="PORT", ge=1024, le=65535)
    debug: bool = Field(default=False, env="DEBUG")

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/sleep_relay.db", env="DATABASE_URL")
    database_echo: bool = Field(default=False, env="DATABASE_ECHO")

    # Relay Transport
    relay_url: str = Field(default="ws://localhost:8010/ws/relay", env="RELAY_URL")
    relay_pairing_code: str = Field(default="default", env="RELAY_PAIRING_CODE", min_length=1)
    relay_reconnect_delay: float = Field(default=2.0, env="RELAY_RECONNECT_DELAY", ge=0.1, le=60.0)
    relay_keepalive_interval: float = Field(default=25.0, env="RELAY_KEEPALIVE_INTERVAL", ge=1.0)
    relay_hub_enabled: bool = Field(default=True, env="RELAY_HUB_ENABLED")

    # Sensor (wearable side)
    sensor_kind: Literal["synthetic", "ble"] = Field(default="synthetic", env="SENSOR_KIND")
    sensor_device_name: Optional[str] = Field(default=None, env="SENSOR_DEVICE_NAME")
    sensor_sample_interval: float = Field(default=5.0, env="SENSOR_SAMPLE_INTERVAL", gt=0.0)
    sensor_startup_delay: float = Field(default=1.0, env="SENSOR_STARTUP_DELAY", ge=0.0)
    sensor_authorized: bool = Field(default=True, env="SENSOR_AUTHORIZED")
    synthetic_start_bpm: float = Field(default=72.0, env="SYNTHETIC_START_BPM", gt=0.0)
    synthetic_resting_bpm: float = Field(default=56.0, env="SYNTHETIC_RESTING_BPM", gt=0.0)

    # Calendar days for reports (IANA name, system local when unset)
    display_timezone: Optional[str] = Field(default=None, env="DISPLAY_TIMEZONE")

    # Audio
    audio_tracks: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_AUDIO_TRACKS), env="AUDIO_TRACKS")

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("display_timezone")
    @classmethod
    def validate_display_timezone(cls, v):
        if v:
            try:
                ZoneInfo(v)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError(f"Unknown timezone '{v}'") from e
        return v

    @field_validator("audio_tracks")
    @classmethod
    def validate_audio_tracks(cls, v):
        for name, length in v.items():
            if length <= 0:
                raise ValueError(f"Track '{name}' must have a positive length")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    @property
    def display_tzinfo(self) -> Optional[tzinfo]:
        """Timezone for calendar-day reports; None means system local."""
        return ZoneInfo(self.display_timezone) if self.display_timezone else None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "forbid",
        "env_parse_none_str": "none",
        "env_nested_delimiter": "__",
    }
