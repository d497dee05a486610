import logging
from typing import Any, Dict, Optional

from errors import StoreError

logger = logging.getLogger(__name__)


class TrackingService:
    """Request-facing write path for plays and engagements."""

    def __init__(self, events, counters, refresh_queue):
        self._events = events
        self._counters = counters
        self._refresh = refresh_queue

    def track_play(
        self,
        song_id: Optional[str],
        user_id: Optional[str] = None,
        duration: Any = None,
        timestamp: Any = None,
    ) -> str:
        """Records a play and returns its id once the primary write has committed.

        The song and user aggregates are refreshed afterwards on the refresh
        queue; their failures are logged there and never reach the caller.
        """
        event = self._events.new_play(song_id, user_id=user_id, duration=duration, timestamp=timestamp)
        try:
            play_id = self._counters.record_play_atomic(event)
        except StoreError:
            logger.exception("Error tracking play of song %s for user %s", event.song_id, event.user_id)
            raise

        self._refresh.submit(
            f"song_analytics:{event.song_id}",
            self._counters.refresh_song_analytics,
            event.song_id,
        )
        if event.user_id:
            self._refresh.submit(
                f"user_analytics:{event.user_id}",
                self._counters.refresh_user_analytics,
                event.user_id,
                event.song_id,
            )
        return play_id

    def record_engagement(
        self,
        user_id: Optional[str],
        engagement_type: Optional[str],
        target_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Appends the engagement, then updates its counters before returning.

        Unlike plays, the counter refresh runs inline; a failure there is
        still only logged.
        """
        event_id = self._events.append_engagement(user_id, engagement_type, target_id, metadata)
        try:
            self._counters.refresh_engagement_analytics(engagement_type, target_id, user_id)
        except Exception:
            logger.exception("Error updating engagement analytics for %s %s", engagement_type, target_id)
        return event_id
