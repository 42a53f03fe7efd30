"""Geofencing and ranking for clips.

Everything here is pure: it works on any clip-like object exposing ``id``,
``lat``, ``lng``, ``radius``, ``like_count`` and ``created_at`` attributes
(ORM rows, pydantic schemas) or on plain dicts with the same keys.
"""
import math
from datetime import datetime, timezone
from typing import Iterable, List, Optional

EARTH_RADIUS_M = 6371000.0
LIKE_WEIGHT = 10.0
RECENCY_MAX = 100.0
RECENCY_DECAY_DAYS = 30.0
SECONDS_PER_DAY = 86400.0


def _field(obj, name, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _finite(*values) -> bool:
    try:
        return all(math.isfinite(float(v)) for v in values)
    except (TypeError, ValueError):
        return False


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two WGS84 points."""
    if not _finite(lat1, lng1, lat2, lng2):
        return math.nan

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance_to(position, clip) -> float:
    return haversine_distance(
        _field(position, "lat"), _field(position, "lng"),
        _field(clip, "lat"), _field(clip, "lng"),
    )


def bounding_box(lat: float, lng: float, meters: float):
    """(min_lat, max_lat, min_lng, max_lng) enclosing a circle of ``meters``."""
    d_lat = math.degrees(meters / EARTH_RADIUS_M)
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-12:
        d_lng = 180.0
    else:
        d_lng = min(180.0, math.degrees(meters / (EARTH_RADIUS_M * cos_lat)))
    return lat - d_lat, lat + d_lat, lng - d_lng, lng + d_lng


def is_in_range(position, clip) -> bool:
    radius = _field(clip, "radius")
    if not _finite(radius) or float(radius) < 0:
        return False
    distance = distance_to(position, clip)
    # nan compares False, so bad coordinates fall out here
    return distance <= float(radius)


def filter_in_range(position, clips: Iterable, excluded_ids: Iterable = ()) -> List:
    excluded = set(excluded_ids or ())
    return [
        clip for clip in clips
        if _field(clip, "id") not in excluded and is_in_range(position, clip)
    ]


def within_distance(position, clips: Iterable, max_distance: float) -> List:
    """Clips strictly closer than ``max_distance``, nearest first."""
    scored = []
    for clip in clips:
        distance = distance_to(position, clip)
        if distance < max_distance:
            scored.append((distance, clip))
    scored.sort(key=lambda pair: pair[0])
    return [clip for _, clip in scored]


def _as_datetime(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def age_in_days(created_at, now: Optional[datetime] = None) -> float:
    """Fractional days since ``created_at``; 0 when unknown or in the future."""
    created = _as_datetime(created_at)
    if created is None:
        return 0.0
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    age = (now - created).total_seconds() / SECONDS_PER_DAY
    return max(0.0, age)


def recency_score(created_at, now: Optional[datetime] = None,
                  decay_days: float = RECENCY_DECAY_DAYS) -> float:
    return max(0.0, RECENCY_MAX * math.exp(-age_in_days(created_at, now) / decay_days))


def clip_score(clip, now: Optional[datetime] = None, like_weight: float = LIKE_WEIGHT,
               decay_days: float = RECENCY_DECAY_DAYS) -> float:
    likes = _field(clip, "like_count") or 0
    return likes * like_weight + recency_score(_field(clip, "created_at"), now, decay_days)


def rank_clips(clips: Iterable, now: Optional[datetime] = None, like_weight: float = LIKE_WEIGHT,
               decay_days: float = RECENCY_DECAY_DAYS) -> List:
    """Highest score first; sorted() is stable so ties keep input order."""
    now = now or datetime.now(timezone.utc)
    return sorted(
        clips,
        key=lambda clip: clip_score(clip, now, like_weight, decay_days),
        reverse=True,
    )


def clips_in_range(position, clips: Iterable, excluded_ids: Iterable = (),
                   now: Optional[datetime] = None, like_weight: float = LIKE_WEIGHT,
                   decay_days: float = RECENCY_DECAY_DAYS) -> List:
    return rank_clips(filter_in_range(position, clips, excluded_ids), now, like_weight, decay_days)
