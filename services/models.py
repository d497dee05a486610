"""
Analytics records and results.

Events and counters are plain dataclasses that map to and from the stored
Firestore documents (the stored field names are shared with the other
platform services). Query results are pydantic models with named,
non-overlapping fields.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from services.periods import utcnow

ANONYMOUS = "anonymous"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def is_anonymous(user_id: Optional[str]) -> bool:
    return not user_id or user_id == ANONYMOUS


def normalize_duration(value: Any) -> int:
    """Seconds played as a non-negative int; anything unparseable counts as 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not math.isfinite(value):
            return 0
        number = int(value)
    elif isinstance(value, str):
        match = _LEADING_INT.match(value)
        if not match:
            return 0
        number = int(match.group(1))
    else:
        return 0
    return max(0, number)


def normalize_timestamp(value: Any, now: Optional[datetime] = None) -> datetime:
    """Timezone-aware UTC datetime for a client timestamp.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings and
    epoch milliseconds. Missing or malformed values become ``now``.
    """
    now = now or utcnow()
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return now
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return now
    else:
        return now

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class PlayEvent:
    song_id: str
    user_id: Optional[str] = None
    duration_played: int = 0
    timestamp: datetime = field(default_factory=utcnow)
    id: Optional[str] = None

    def to_document(self) -> dict:
        return {
            "userId": self.user_id,
            "songId": self.song_id,
            "duration_played": self.duration_played,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_document(cls, doc_id: str, doc: dict) -> "PlayEvent":
        return cls(
            id=doc_id,
            song_id=doc.get("songId"),
            user_id=doc.get("userId"),
            duration_played=normalize_duration(doc.get("duration_played")),
            timestamp=doc.get("timestamp"),
        )

    def to_history_entry(self) -> dict:
        return {"id": self.id, **self.to_document()}


@dataclass
class EngagementEvent:
    user_id: str
    type: str
    target_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
    id: Optional[str] = None

    def to_document(self) -> dict:
        return {
            "userId": self.user_id,
            "type": self.type,
            "targetId": self.target_id,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }


class SongAnalyticsReport(BaseModel):
    songId: str
    period: str
    # computed from the play events inside the period
    playCount: int = 0
    uniqueListeners: int = 0
    averageDuration: int = 0
    totalDuration: int = 0
    periodPlays: int = 0
    # all-time counters from the song_analytics document, absent until the first refresh
    totalPlays: Optional[int] = None
    storedUniqueListeners: Optional[int] = None
    lastPlayed: Optional[datetime] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class TrendingSong(BaseModel):
    songId: str
    playCount: int
    averageDuration: int
    lastPlayed: datetime


class UserSongRecommendation(BaseModel):
    songId: str
    play_count: int
    total_time_played: int
    last_played: Optional[datetime] = None
    averageDuration: int


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int


class UserHistory(BaseModel):
    userId: str
    history: List[Dict[str, Any]]
    pagination: Pagination


class PlatformAnalytics(BaseModel):
    period: str
    totalPlays: int
    uniqueUsers: int
    totalDuration: int
    averageSessionDuration: int
    popularSongs: List[TrendingSong]
