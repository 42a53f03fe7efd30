import math
from datetime import datetime, timedelta, timezone

import pytest

from soundmap.proximity import (
    age_in_days,
    bounding_box,
    clip_score,
    clips_in_range,
    filter_in_range,
    haversine_distance,
    is_in_range,
    rank_clips,
    recency_score,
    within_distance,
)

NOW = datetime(2025, 7, 10, 12, 0, tzinfo=timezone.utc)
USER = {"lat": 52.5200, "lng": 13.4050}


def make_clip(id, lat=52.5200, lng=13.4050, radius=50, like_count=0, age_days=0.0, **extra):
    clip = {"id": id, "lat": lat, "lng": lng, "radius": radius, "like_count": like_count,
            "created_at": NOW - timedelta(days=age_days)}
    clip.update(extra)
    return clip


class TestHaversineDistance:
    def test_identical_points_are_zero(self):
        assert haversine_distance(52.52, 13.405, 52.52, 13.405) == 0.0

    def test_symmetric(self):
        a = haversine_distance(52.5200, 13.4050, 52.5163, 13.3777)
        b = haversine_distance(52.5163, 13.3777, 52.5200, 13.4050)
        assert a == pytest.approx(b)

    def test_short_distance_near_alexanderplatz(self):
        distance = haversine_distance(52.5200, 13.4050, 52.5210, 13.4060)
        assert 120 < distance < 140

    def test_one_degree_of_latitude(self):
        assert haversine_distance(52.0, 13.0, 53.0, 13.0) == pytest.approx(111195, abs=5)

    def test_non_finite_input_gives_nan(self):
        assert math.isnan(haversine_distance(float("nan"), 13.4, 52.5, 13.4))
        assert math.isnan(haversine_distance(52.5, None, 52.5, 13.4))


def test_bounding_box_contains_circle():
    min_lat, max_lat, min_lng, max_lng = bounding_box(52.52, 13.405, 500)
    assert haversine_distance(52.52, 13.405, max_lat, 13.405) == pytest.approx(500, abs=1)
    assert haversine_distance(52.52, 13.405, 52.52, max_lng) == pytest.approx(500, abs=1)
    assert min_lat < 52.52 < max_lat
    assert min_lng < 13.405 < max_lng


class TestRangeFilter:
    def test_clip_at_user_position_is_in_range(self):
        assert is_in_range(USER, make_clip("a", radius=1))

    def test_clip_beyond_radius_is_excluded(self):
        clip = make_clip("a", lat=52.5210, lng=13.4060, radius=100)
        assert not is_in_range(USER, clip)

    def test_example_clip_is_in_range(self):
        clip = make_clip("a", lat=52.5210, lng=13.4060, radius=200)
        assert is_in_range(USER, clip)

    def test_excluded_ids_are_dropped(self):
        clips = [make_clip("a"), make_clip("b"), make_clip("c")]
        result = filter_in_range(USER, clips, excluded_ids={"b"})
        assert [c["id"] for c in result] == ["a", "c"]

    def test_malformed_clips_are_excluded(self):
        clips = [
            make_clip("nan", lat=float("nan")),
            make_clip("missing", lng=None),
            make_clip("negative", radius=-5),
            make_clip("no-radius", radius=None),
            make_clip("ok"),
        ]
        assert [c["id"] for c in filter_in_range(USER, clips)] == ["ok"]

    def test_works_on_objects(self):
        class Row:
            id = "row"
            lat = 52.5201
            lng = 13.4050
            radius = 30

        assert filter_in_range(USER, [Row()])[0].id == "row"

    def test_input_not_mutated(self):
        clips = [make_clip("a"), make_clip("far", lat=53.0)]
        filter_in_range(USER, clips)
        assert len(clips) == 2


def test_within_distance_sorts_nearest_first():
    clips = [
        make_clip("far", lat=52.5208),
        make_clip("near", lat=52.5201),
        make_clip("outside", lat=52.5300),
    ]
    result = within_distance(USER, clips, 100)
    assert [c["id"] for c in result] == ["near", "far"]


class TestRecency:
    def test_brand_new_clip_scores_full(self):
        assert recency_score(NOW, NOW) == pytest.approx(100)

    def test_decays_exponentially(self):
        assert recency_score(NOW - timedelta(days=30), NOW) == pytest.approx(100 / math.e)

    def test_missing_or_invalid_created_at_counts_as_new(self):
        assert age_in_days(None, NOW) == 0
        assert age_in_days("not a date", NOW) == 0
        assert recency_score(None, NOW) == pytest.approx(100)

    def test_future_created_at_clamped(self):
        assert recency_score(NOW + timedelta(days=3), NOW) == pytest.approx(100)

    def test_iso_strings_and_naive_datetimes(self):
        assert age_in_days("2025-07-09T12:00:00Z", NOW) == pytest.approx(1)
        assert age_in_days(datetime(2025, 7, 8, 12, 0), NOW) == pytest.approx(2)


class TestRanking:
    def test_score_combines_likes_and_recency(self):
        assert clip_score(make_clip("a", like_count=5), NOW) == pytest.approx(150)

    def test_liked_clip_ranks_first(self):
        a = make_clip("a", like_count=5)
        b = make_clip("b", like_count=0)
        assert [c["id"] for c in rank_clips([b, a], NOW)] == ["a", "b"]

    def test_newer_clip_ranks_first_on_equal_likes(self):
        old = make_clip("old", like_count=3, age_days=10)
        new = make_clip("new", like_count=3, age_days=1)
        assert [c["id"] for c in rank_clips([old, new], NOW)] == ["new", "old"]

    def test_example_ordering(self):
        clips = [
            make_clip("clip3", like_count=0, age_days=60),
            make_clip("clip2", like_count=0, age_days=0),
            make_clip("clip1", like_count=10, age_days=0),
        ]
        assert [c["id"] for c in rank_clips(clips, NOW)] == ["clip1", "clip2", "clip3"]

    def test_equal_scores_keep_input_order(self):
        clips = [make_clip(str(i), like_count=2, age_days=4) for i in range(6)]
        assert [c["id"] for c in rank_clips(clips, NOW)] == ["0", "1", "2", "3", "4", "5"]

    def test_returns_new_list(self):
        clips = [make_clip("b"), make_clip("a", like_count=1)]
        ranked = rank_clips(clips, NOW)
        assert ranked is not clips
        assert [c["id"] for c in clips] == ["b", "a"]


def test_clips_in_range_filters_then_ranks():
    clips = [
        make_clip("quiet", like_count=0),
        make_clip("disliked", like_count=50),
        make_clip("popular", like_count=4),
        make_clip("too-far", lat=52.53, like_count=99),
    ]
    result = clips_in_range(USER, clips, excluded_ids=["disliked"], now=NOW)
    assert [c["id"] for c in result] == ["popular", "quiet"]
