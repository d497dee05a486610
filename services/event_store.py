import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from errors import ValidationError
from services.models import (
    EngagementEvent,
    PlayEvent,
    is_anonymous,
    normalize_duration,
    normalize_timestamp,
)
from storage.collections import ENGAGEMENTS, PLAYS

logger = logging.getLogger(__name__)

# engagement types become field names on the user engagement profile
RESERVED_ENGAGEMENT_TYPES = {"userId", "lastEngagement", "updatedAt"}


class EventStore:
    """Append-only play and engagement events, the source of truth for every aggregate."""

    def __init__(self, store):
        self._store = store

    def new_play(
        self,
        song_id: Optional[str],
        user_id: Optional[str] = None,
        duration: Any = None,
        timestamp: Any = None,
    ) -> PlayEvent:
        """Validates and normalizes an incoming play."""
        if not song_id:
            raise ValidationError("songId is required")
        return PlayEvent(
            song_id=song_id,
            user_id=None if is_anonymous(user_id) else user_id,
            duration_played=normalize_duration(duration),
            timestamp=normalize_timestamp(timestamp),
        )

    def append_play(self, event: PlayEvent, transaction=None) -> str:
        """Persists a play, inside ``transaction`` when one is given."""
        if not event.song_id:
            raise ValidationError("songId is required")
        event_id = self._store.new_id(PLAYS)
        if transaction is not None:
            transaction.set(PLAYS, event_id, event.to_document())
        else:
            self._store.set(PLAYS, event_id, event.to_document())
        event.id = event_id
        return event_id

    def append_engagement(
        self,
        user_id: Optional[str],
        engagement_type: Optional[str],
        target_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        if not user_id or not engagement_type:
            raise ValidationError("userId and type are required")
        if engagement_type in RESERVED_ENGAGEMENT_TYPES:
            raise ValidationError(f"Invalid engagement type: {engagement_type}")
        event = EngagementEvent(
            user_id=user_id,
            type=engagement_type,
            target_id=target_id,
            metadata=metadata or {},
        )
        event.id = self._store.add(ENGAGEMENTS, event.to_document())
        logger.debug("Recorded %s engagement %s for user %s", engagement_type, event.id, user_id)
        return event.id

    def query_by_user(self, user_id: str, limit: int = 50, offset: int = 0) -> List[PlayEvent]:
        """Plays by one user, newest first."""
        rows = self._store.query(
            PLAYS,
            filters=[("userId", "==", user_id)],
            order_by="timestamp",
            descending=True,
            limit=limit,
            offset=offset,
        )
        return [PlayEvent.from_document(doc_id, doc) for doc_id, doc in rows]

    def query_by_time_window(self, since: datetime, song_id: Optional[str] = None) -> List[PlayEvent]:
        """Every play at or after ``since``, oldest first. The result is unbounded."""
        filters = [("timestamp", ">=", since)]
        if song_id is not None:
            filters.insert(0, ("songId", "==", song_id))
        rows = self._store.query(PLAYS, filters=filters, order_by="timestamp")
        return [PlayEvent.from_document(doc_id, doc) for doc_id, doc in rows]

    def count_by_user(self, user_id: str) -> int:
        return self._store.count(PLAYS, filters=[("userId", "==", user_id)])
