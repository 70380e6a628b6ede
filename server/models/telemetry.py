"""SQLModel tables for heart-rate telemetry sessions."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel, Field, Column, JSON


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetimes stored as UTC.

    SQLite keeps no offset, so values are written as UTC wall time and read
    back with tzinfo=UTC. Naive values are rejected.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires a timezone-aware datetime")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BpmSample:
    """One heart-rate sample, timestamped on receipt."""
    timestamp: datetime
    bpm: float

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "bpm": self.bpm}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BpmSample":
        return cls(timestamp=datetime.fromisoformat(data["timestamp"]), bpm=float(data["bpm"]))


class TelemetrySession(SQLModel, table=True):
    """A monitoring session built from the relayed sample stream.

    Timestamps are aware UTC; calendar days are resolved by the aggregator
    in the display's local timezone.
    """

    __tablename__ = "telemetry_sessions"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True, max_length=36)
    start_date: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(), index=True, nullable=False)
    )
    end_date: Optional[datetime] = Field(
        default=None,
        sa_column=Column(UTCDateTime(), index=True, nullable=True)
    )
    samples: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    min_bpm: Optional[float] = Field(default=None)
    max_bpm: Optional[float] = Field(default=None)

    @property
    def is_open(self) -> bool:
        return self.end_date is None

    @property
    def bpm_samples(self) -> List[BpmSample]:
        return [BpmSample.from_dict(s) for s in self.samples]

    def add_sample(self, timestamp: datetime, bpm: float) -> None:
        """Append a sample and fold it into the running range.

        The range is seeded from the first sample and never recomputed,
        so min only decreases and max only increases.
        """
        self.samples.append(BpmSample(timestamp, bpm).to_dict())
        self.min_bpm = bpm if self.min_bpm is None else min(self.min_bpm, bpm)
        self.max_bpm = bpm if self.max_bpm is None else max(self.max_bpm, bpm)

    def last_sample_at(self) -> Optional[datetime]:
        if not self.samples:
            return None
        return datetime.fromisoformat(self.samples[-1]["timestamp"])

    def to_dict(self, include_samples: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "sample_count": len(self.samples),
            "min_bpm": self.min_bpm,
            "max_bpm": self.max_bpm,
        }
        if include_samples:
            data["samples"] = list(self.samples)
        return data
