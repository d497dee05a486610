"""
Listening-history Recommendation Engine

Signals used:
  1. Per-user play counts   → the user's most played songs (user_song_stats)
  2. Platform trending (7d) → cold-start users, and any failure of (1)
"""

import logging
from typing import List, Union

from services.models import TrendingSong, UserSongRecommendation
from services.queries import rounded_average
from storage.collections import USER_SONG_STATS

logger = logging.getLogger(__name__)

FALLBACK_PERIOD = "7d"

Recommendation = Union[UserSongRecommendation, TrendingSong]


def _from_stat(stat: dict) -> UserSongRecommendation:
    play_count = stat.get("play_count") or 0
    total_time = stat.get("total_time_played") or 0
    return UserSongRecommendation(
        songId=stat.get("songId"),
        play_count=play_count,
        total_time_played=total_time,
        last_played=stat.get("last_played"),
        averageDuration=rounded_average(total_time, play_count),
    )


class RecommendationEngine:
    def __init__(self, store, queries):
        self._store = store
        self._queries = queries

    def top_played(self, user_id: str, limit: int) -> List[UserSongRecommendation]:
        rows = self._store.query(
            USER_SONG_STATS,
            filters=[("userId", "==", user_id)],
            order_by="play_count",
            descending=True,
            limit=limit,
        )
        return [_from_stat(stat) for _, stat in rows]

    def get_recommendations(self, user_id: str, limit: int = 10) -> List[Recommendation]:
        """The user's most played songs; trending songs when there are none or the lookup fails."""
        try:
            recommendations = self.top_played(user_id, limit)
        except Exception:
            logger.exception("Error generating recommendations for %s, falling back to trending", user_id)
            return self._queries.get_trending_songs(limit, FALLBACK_PERIOD)

        if not recommendations:
            return self._queries.get_trending_songs(limit, FALLBACK_PERIOD)
        return recommendations
