# Firestore collection names shared with the other platform services.

PLAYS = "song_plays"
USER_SONG_STATS = "user_song_stats"
SONG_ANALYTICS = "song_analytics"
USER_ANALYTICS = "user_analytics"
ENGAGEMENTS = "user_engagement"
ENGAGEMENT_ANALYTICS = "engagement_analytics"
USER_ENGAGEMENT_PROFILES = "user_engagement_profiles"
HEALTH_CHECKS = "_health_check"


def user_song_stat_id(user_id: str, song_id: str) -> str:
    return f"{user_id}_{song_id}"


def engagement_analytics_id(engagement_type: str, target_id) -> str:
    return f"{engagement_type}_{target_id}"
