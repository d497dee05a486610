import math
from datetime import datetime
from typing import Iterable, List, Optional

from errors import ValidationError
from services.models import (
    Pagination,
    PlatformAnalytics,
    PlayEvent,
    SongAnalyticsReport,
    TrendingSong,
    UserHistory,
    is_anonymous,
)
from services.periods import period_start
from storage.collections import SONG_ANALYTICS

POPULAR_SONGS_LIMIT = 5


def rounded_average(total: int, count: int) -> int:
    # rounds half up
    return int(math.floor(total / count + 0.5)) if count else 0


def rank_songs(plays: Iterable[PlayEvent], limit: int) -> List[TrendingSong]:
    """Groups plays by song and ranks by play count, highest first.

    Songs with equal counts keep the order in which they were first seen,
    so with plays scanned oldest-first the song played first wins the tie.
    """
    grouped = {}
    for play in plays:
        stats = grouped.get(play.song_id)
        if stats is None:
            stats = grouped[play.song_id] = {
                "playCount": 0,
                "totalDuration": 0,
                "lastPlayed": play.timestamp,
            }
        stats["playCount"] += 1
        stats["totalDuration"] += play.duration_played
        if play.timestamp > stats["lastPlayed"]:
            stats["lastPlayed"] = play.timestamp

    ranked = sorted(grouped.items(), key=lambda item: item[1]["playCount"], reverse=True)
    return [
        TrendingSong(
            songId=song_id,
            playCount=stats["playCount"],
            averageDuration=rounded_average(stats["totalDuration"], stats["playCount"]),
            lastPlayed=stats["lastPlayed"],
        )
        for song_id, stats in ranked[:max(0, limit)]
    ]


class QueryEngine:
    """Point-in-time read views over the event store and the persisted aggregates."""

    def __init__(self, store, events):
        self._store = store
        self._events = events

    def get_song_analytics(self, song_id: str, period: str = "7d", now: Optional[datetime] = None) -> SongAnalyticsReport:
        """Period-scoped play stats for a song, plus its all-time counters when they exist.

        Period fields (playCount, uniqueListeners, averageDuration, totalDuration)
        always come from the events; the stored document only fills the all-time
        fields, so neither side can shadow the other.
        """
        if not song_id:
            raise ValidationError("songId is required")

        start = period_start(period, now, fallback="all")
        plays = self._events.query_by_time_window(start, song_id=song_id)

        total_duration = sum(play.duration_played for play in plays)
        listeners = {play.user_id for play in plays if not is_anonymous(play.user_id)}
        report = SongAnalyticsReport(
            songId=song_id,
            period=period,
            playCount=len(plays),
            uniqueListeners=len(listeners),
            averageDuration=rounded_average(total_duration, len(plays)),
            totalDuration=total_duration,
            periodPlays=len(plays),
        )

        stored = self._store.get(SONG_ANALYTICS, song_id)
        if stored:
            report.totalPlays = stored.get("totalPlays")
            report.storedUniqueListeners = stored.get("uniqueListeners")
            report.lastPlayed = stored.get("lastPlayed")
            report.createdAt = stored.get("createdAt")
            report.updatedAt = stored.get("updatedAt")
        return report

    def get_trending_songs(self, limit: int = 20, period: str = "24h", now: Optional[datetime] = None) -> List[TrendingSong]:
        start = period_start(period, now, fallback="24h")
        return rank_songs(self._events.query_by_time_window(start), limit)

    def get_user_history(self, user_id: str, limit: int = 50, offset: int = 0) -> UserHistory:
        if not user_id:
            raise ValidationError("userId is required")
        plays = self._events.query_by_user(user_id, limit=limit, offset=offset)
        return UserHistory(
            userId=user_id,
            history=[play.to_history_entry() for play in plays],
            pagination=Pagination(
                total=self._events.count_by_user(user_id),
                limit=limit,
                offset=offset,
            ),
        )

    def get_platform_analytics(self, period: str = "7d", now: Optional[datetime] = None) -> PlatformAnalytics:
        """Platform totals and the top songs, computed from a single scan of the period."""
        start = period_start(period, now, fallback="7d")
        plays = self._events.query_by_time_window(start)

        total_duration = sum(play.duration_played for play in plays)
        users = {play.user_id for play in plays if not is_anonymous(play.user_id)}
        return PlatformAnalytics(
            period=period,
            totalPlays=len(plays),
            uniqueUsers=len(users),
            totalDuration=total_duration,
            averageSessionDuration=rounded_average(total_duration, len(plays)),
            popularSongs=rank_songs(plays, POPULAR_SONGS_LIMIT),
        )
