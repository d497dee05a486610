"""
Counter Aggregator

Keeps the denormalized counters in step with accepted events. Only the
play append and its user/song stat share one atomic unit; the song, user
and engagement aggregates are refreshed afterwards on a best-effort basis.
Counters only ever grow, and a resubmitted event is counted again.
"""

import logging
from typing import Optional

from services.models import PlayEvent
from services.periods import utcnow
from storage.base import Increment
from storage.collections import (
    ENGAGEMENT_ANALYTICS,
    SONG_ANALYTICS,
    USER_ANALYTICS,
    USER_ENGAGEMENT_PROFILES,
    USER_SONG_STATS,
    engagement_analytics_id,
    user_song_stat_id,
)

logger = logging.getLogger(__name__)


class CounterAggregator:
    def __init__(self, store, events):
        self._store = store
        self._events = events

    def record_play_atomic(self, event: PlayEvent) -> str:
        """Appends the play and bumps the user/song stat as one transaction.

        The transaction reads the ``{userId}_{songId}`` stat document before
        writing, so concurrent plays of the same pair serialize on it.
        """
        stat_id = user_song_stat_id(event.user_id, event.song_id) if event.user_id else None

        def _record(transaction):
            existing = transaction.get(USER_SONG_STATS, stat_id) if stat_id else None
            play_id = self._events.append_play(event, transaction=transaction)
            if stat_id is None:
                return play_id

            if existing is not None:
                transaction.update(USER_SONG_STATS, stat_id, {
                    "play_count": Increment(1),
                    "total_time_played": Increment(event.duration_played),
                    "last_played": event.timestamp,
                })
            else:
                transaction.set(USER_SONG_STATS, stat_id, {
                    "userId": event.user_id,
                    "songId": event.song_id,
                    "play_count": 1,
                    "total_time_played": event.duration_played,
                    "last_played": event.timestamp,
                })
            return play_id

        play_id = self._store.run_transaction(_record)
        logger.debug("Recorded play %s of song %s", play_id, event.song_id)
        return play_id

    def refresh_song_analytics(self, song_id: str):
        """Read-modify-write of the song's all-time counters in a transaction keyed by song.

        uniqueListeners is seeded at 1 and carried over unchanged; it is not
        an exact distinct count.
        """

        def _refresh(transaction):
            now = utcnow()
            data = transaction.get(SONG_ANALYTICS, song_id)
            if data is None:
                transaction.set(SONG_ANALYTICS, song_id, {
                    "songId": song_id,
                    "totalPlays": 1,
                    "uniqueListeners": 1,
                    "averageDuration": 0,
                    "lastPlayed": now,
                    "createdAt": now,
                    "updatedAt": now,
                })
            else:
                transaction.update(SONG_ANALYTICS, song_id, {
                    "totalPlays": (data.get("totalPlays") or 0) + 1,
                    "uniqueListeners": data.get("uniqueListeners") or 1,
                    "lastPlayed": now,
                    "updatedAt": now,
                })

        self._store.run_transaction(_refresh)

    def refresh_user_analytics(self, user_id: str, song_id: str):
        now = utcnow()
        self._store.set(USER_ANALYTICS, user_id, {
            "userId": user_id,
            "lastActive": now,
            "lastSongId": song_id,
            "totalSongsPlayed": Increment(1),
            "updatedAt": now,
        }, merge=True)

    def refresh_engagement_analytics(self, engagement_type: str, target_id: Optional[str], user_id: Optional[str]):
        now = utcnow()
        if target_id is not None:
            self._store.set(ENGAGEMENT_ANALYTICS, engagement_analytics_id(engagement_type, target_id), {
                "type": engagement_type,
                "targetId": target_id,
                "count": Increment(1),
                "lastEngaged": now,
                "updatedAt": now,
            }, merge=True)

        if user_id:
            # one counter per engagement type, keyed by the type itself
            self._store.set(USER_ENGAGEMENT_PROFILES, user_id, {
                "userId": user_id,
                engagement_type: Increment(1),
                "lastEngagement": now,
                "updatedAt": now,
            }, merge=True)
