from datetime import timedelta

import pytest

from errors import ValidationError


def _play(services, song_id, user_id=None, duration=0, at=None):
    return services.tracking.track_play(song_id, user_id=user_id, duration=duration, timestamp=at)


class TestSongAnalytics:
    def test_unknown_song_has_zeroed_period_stats(self, services):
        report = services.queries.get_song_analytics("unknown-song", "7d")

        assert report.model_dump(exclude_none=True) == {
            "songId": "unknown-song",
            "period": "7d",
            "playCount": 0,
            "uniqueListeners": 0,
            "averageDuration": 0,
            "totalDuration": 0,
            "periodPlays": 0,
        }

    def test_period_stats_and_stored_counters(self, services, now):
        _play(services, "s1", "u1", 100, now - timedelta(hours=1))
        _play(services, "s1", "u1", 50, now - timedelta(hours=2))
        _play(services, "s1", "u2", 75, now - timedelta(hours=3))
        _play(services, "s1", None, 10, now - timedelta(hours=4))
        _play(services, "s2", "u1", 500, now - timedelta(hours=1))
        services.refresh_queue.join(timeout=5)

        report = services.queries.get_song_analytics("s1", "24h", now=now)
        assert report.playCount == 4
        assert report.uniqueListeners == 2
        assert report.totalDuration == 235
        assert report.averageDuration == 59
        assert report.totalPlays == 4
        assert report.storedUniqueListeners == 1
        assert report.lastPlayed is not None

    def test_shorter_period_never_counts_more_plays(self, services, now):
        _play(services, "s1", "u1", 60, now - timedelta(hours=2))
        _play(services, "s1", "u1", 60, now - timedelta(days=3))
        _play(services, "s1", "u2", 60, now - timedelta(days=20))
        _play(services, "s1", "u3", 60, now - timedelta(days=400))

        counts = {
            period: services.queries.get_song_analytics("s1", period, now=now).playCount
            for period in ("24h", "7d", "30d", "all")
        }
        assert counts == {"24h": 1, "7d": 2, "30d": 3, "all": 4}

    def test_unknown_period_covers_all_time(self, services, now):
        _play(services, "s1", "u1", 60, now - timedelta(days=400))
        assert services.queries.get_song_analytics("s1", "forever", now=now).playCount == 1

    def test_song_id_is_required(self, services):
        with pytest.raises(ValidationError):
            services.queries.get_song_analytics("", "7d")


class TestTrending:
    def test_ranks_by_play_count(self, services, now):
        for minutes in (10, 20, 30):
            _play(services, "s3", "u1", 200, now - timedelta(minutes=minutes))
        _play(services, "s4", "u2", 100, now - timedelta(minutes=5))

        trending = services.queries.get_trending_songs(2, "24h", now=now)

        assert [song.songId for song in trending] == ["s3", "s4"]
        assert trending[0].playCount == 3
        assert trending[0].averageDuration == 200
        assert trending[0].lastPlayed == now - timedelta(minutes=10)

    def test_sorted_and_truncated(self, services, now):
        for index, song in enumerate(["a", "b", "c", "d", "e"]):
            for _ in range(index + 1):
                _play(services, song, "u1", 1, now - timedelta(hours=1))

        trending = services.queries.get_trending_songs(3, "7d", now=now)

        counts = [song.playCount for song in trending]
        assert len(trending) == 3
        assert counts == sorted(counts, reverse=True)
        assert [song.songId for song in trending] == ["e", "d", "c"]

    def test_ties_go_to_the_song_played_first(self, services, now):
        _play(services, "late", "u1", 1, now - timedelta(minutes=5))
        _play(services, "early", "u1", 1, now - timedelta(minutes=50))

        trending = services.queries.get_trending_songs(10, "24h", now=now)
        assert [song.songId for song in trending] == ["early", "late"]

    def test_excludes_plays_outside_the_window(self, services, now):
        _play(services, "old", "u1", 1, now - timedelta(days=2))
        _play(services, "new", "u1", 1, now - timedelta(hours=1))

        assert [s.songId for s in services.queries.get_trending_songs(10, "24h", now=now)] == ["new"]
        # unrecognized periods use the last 24 hours
        assert [s.songId for s in services.queries.get_trending_songs(10, "month", now=now)] == ["new"]
        assert len(services.queries.get_trending_songs(10, "7d", now=now)) == 2


class TestUserHistory:
    def test_newest_first_with_pagination(self, services, now):
        ids = [_play(services, f"s{i}", "u1", i, now - timedelta(hours=i)) for i in range(1, 6)]
        _play(services, "other", "u2", 1, now)

        page = services.queries.get_user_history("u1", limit=2, offset=1)

        assert [entry["id"] for entry in page.history] == [ids[1], ids[2]]
        assert page.history[0]["songId"] == "s2"
        assert page.pagination.total == 5
        assert page.pagination.limit == 2
        assert page.pagination.offset == 1

    def test_unknown_user_has_empty_history(self, services):
        page = services.queries.get_user_history("nobody")
        assert page.history == []
        assert page.pagination.total == 0


class TestPlatformAnalytics:
    def test_totals_and_popular_songs(self, services, now):
        _play(services, "s1", "u1", 100, now - timedelta(hours=1))
        _play(services, "s1", "u2", 200, now - timedelta(hours=2))
        _play(services, "s2", None, 30, now - timedelta(days=1))
        _play(services, "s3", "u1", 999, now - timedelta(days=10))

        platform = services.queries.get_platform_analytics("7d", now=now)

        assert platform.totalPlays == 3
        assert platform.uniqueUsers == 2
        assert platform.totalDuration == 330
        assert platform.averageSessionDuration == 110
        assert [song.songId for song in platform.popularSongs] == ["s1", "s2"]

    def test_popular_songs_capped_at_five(self, services, now):
        for i in range(8):
            _play(services, f"s{i}", "u1", 1, now - timedelta(minutes=i + 1))

        platform = services.queries.get_platform_analytics("24h", now=now)
        assert platform.totalPlays == 8
        assert len(platform.popularSongs) == 5

    def test_empty_period(self, services, now):
        platform = services.queries.get_platform_analytics("30d", now=now)
        assert platform.totalPlays == 0
        assert platform.averageSessionDuration == 0
        assert platform.popularSongs == []
