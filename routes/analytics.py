import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator

from errors import StoreError
from middleware.auth import get_current_user, optional_user, require_admin, require_self
from services.wiring import AnalyticsServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


def _id_as_text(value):
    # catalog ids may be serial integers
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class PlayIn(BaseModel):
    songId: Optional[str] = None
    userId: Optional[str] = None
    duration: Any = None
    timestamp: Any = None

    @field_validator("songId", "userId", mode="before")
    @classmethod
    def ids_as_text(cls, value):
        return _id_as_text(value)


class EngagementIn(BaseModel):
    userId: Optional[str] = None
    type: Optional[str] = None
    targetId: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("userId", "targetId", mode="before")
    @classmethod
    def ids_as_text(cls, value):
        return _id_as_text(value)


@contextmanager
def failure_message(message: str):
    """Replaces store failure detail with a generic message for the client."""
    try:
        yield
    except StoreError as e:
        logger.error("%s: %s", message, e.message)
        raise StoreError(message) from e


def _generated_at() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.post("/plays", status_code=201)
def track_play(
    play: PlayIn,
    user: dict = Depends(get_current_user),
    services: AnalyticsServices = Depends(get_services),
):
    """Records a song play. The response is sent once the play itself is stored."""
    with failure_message("Failed to track play"):
        play_id = services.tracking.track_play(
            play.songId,
            user_id=play.userId,
            duration=play.duration,
            timestamp=play.timestamp,
        )
    return {"success": True, "playId": play_id, "message": "Play tracked successfully"}


@router.get("/songs/{songId}")
def song_analytics(
    songId: str,
    period: str = Query("7d"),
    services: AnalyticsServices = Depends(get_services),
):
    with failure_message("Failed to get song analytics"):
        report = services.queries.get_song_analytics(songId, period)
    return report.model_dump(exclude_none=True)


@router.get("/trending")
def trending(
    limit: int = Query(20, ge=1),
    period: str = Query("24h"),
    services: AnalyticsServices = Depends(get_services),
):
    with failure_message("Failed to get trending songs"):
        songs = services.queries.get_trending_songs(limit, period)
    return {"period": period, "trending": songs, "generatedAt": _generated_at()}


@router.get("/users/{userId}/history")
def user_history(
    userId: str,
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    user: dict = Depends(require_self),
    services: AnalyticsServices = Depends(get_services),
):
    with failure_message("Failed to get user history"):
        return services.queries.get_user_history(userId, limit=limit, offset=offset)


@router.get("/users/{userId}/recommendations")
def recommendations(
    userId: str,
    limit: int = Query(10, ge=1),
    user: dict = Depends(require_self),
    services: AnalyticsServices = Depends(get_services),
):
    with failure_message("Failed to get recommendations"):
        recs = services.recommender.get_recommendations(userId, limit)
    return {"userId": userId, "recommendations": recs, "generatedAt": _generated_at()}


@router.get("/platform")
def platform_analytics(
    period: str = Query("7d"),
    user: dict = Depends(require_admin),
    services: AnalyticsServices = Depends(get_services),
):
    with failure_message("Failed to get platform analytics"):
        data = services.queries.get_platform_analytics(period)
    return {**data.model_dump(), "generatedAt": _generated_at()}


@router.post("/engagements", status_code=201)
def record_engagement(
    engagement: EngagementIn,
    user: Optional[dict] = Depends(optional_user),
    services: AnalyticsServices = Depends(get_services),
):
    """Records a like, share, download, playlist_add, search, ... engagement."""
    user_id = engagement.userId or (user["userId"] if user else None)
    with failure_message("Failed to record engagement"):
        services.tracking.record_engagement(
            user_id,
            engagement.type,
            target_id=engagement.targetId,
            metadata=engagement.metadata,
        )
    return {"success": True, "message": "Engagement recorded successfully"}


@router.get("/queue")
def refresh_queue_stats(
    user: dict = Depends(require_admin),
    services: AnalyticsServices = Depends(get_services),
):
    return services.refresh_queue.stats()
