"""Data access for clips and profiles.

``SoundMapBackend`` is built explicitly (see ``build_backend``) and handed to
the web layer through a dependency, so tests can swap in their own instance.
Every call goes through one ``RetryPolicy``; reads fall back to the offline
cache once the database is unreachable.
"""
import logging
import uuid
from typing import List, Optional

from . import crud, schemas
from .cache import OfflineCache
from .database import create_database_engine, create_session_factory, create_tables
from .errors import BackendUnavailable, ClipNotFound, NotClipOwner, ProfileNotFound
from .proximity import within_distance
from .retry import RetryPolicy
from .seed import seed_clips

logger = logging.getLogger(__name__)

MAX_FETCH_LIMIT = 200
PROFILE_LIST_LIMIT = 50


class SoundMapBackend:
    def __init__(self, session_factory, retry_policy: RetryPolicy = None, cache: OfflineCache = None,
                 engine=None):
        self.session_factory = session_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self.cache = cache or OfflineCache()
        self.engine = engine

    def setup_tables(self) -> None:
        if self.engine is None:
            raise BackendUnavailable("No database engine configured")
        self.retry_policy.call(create_tables, self.engine)

    def count_clips(self) -> int:
        return self._run(crud.count_clips)

    def seed(self) -> List[str]:
        """Insert the Berlin sample clips into an empty table."""
        def seed_if_empty(db):
            if crud.count_clips(db) > 0:
                return []
            return seed_clips(db)
        return self._run(seed_if_empty)

    def _run(self, fn, *args):
        def attempt():
            with self.session_factory() as db:
                return fn(db, *args)
        return self.retry_policy.call(attempt)

    # Clips

    def fetch_all_clips(self, limit: int = MAX_FETCH_LIMIT) -> List[schemas.Clip]:
        limit = max(0, min(limit, MAX_FETCH_LIMIT))
        try:
            clips = self._run(lambda db: [schemas.Clip.model_validate(c) for c in crud.get_clips(db, limit=limit)])
        except BackendUnavailable:
            logger.warning("📴 Database unavailable, serving cached clips")
            return self.cached_clips()[:limit]
        self.cache.store_clips([c.model_dump(mode="json") for c in clips])
        return clips

    def fetch_clips_near(self, position, max_distance: float) -> List[schemas.Clip]:
        try:
            candidates = self._run(
                lambda db: [
                    schemas.Clip.model_validate(c)
                    for c in crud.get_clips_in_box(db, position.lat, position.lng, max_distance)
                ]
            )
        except BackendUnavailable:
            logger.warning("📴 Database unavailable, searching cached clips")
            candidates = self.cached_clips()
        return within_distance(position, candidates, max_distance)

    def fetch_in_range_candidates(self, position) -> List[schemas.Clip]:
        """Every clip whose geofence could reach the position.

        The search box is sized by the widest radius stored, so the per-clip
        ``distance <= radius`` check downstream sees all possible matches.
        """
        def load(db):
            reach = crud.max_radius(db)
            # 1 m slack keeps clips sitting exactly on the box edge
            rows = crud.get_clips_in_box(db, position.lat, position.lng, reach + 1)
            return [schemas.Clip.model_validate(c) for c in rows]
        try:
            return self._run(load)
        except BackendUnavailable:
            logger.warning("📴 Database unavailable, searching cached clips")
            return self.cached_clips()

    def cached_clips(self) -> List[schemas.Clip]:
        return [schemas.Clip.model_validate(c) for c in self.cache.get_clips()]

    def _read_collection(self, name: str, load) -> List[schemas.Clip]:
        try:
            clips = self._run(lambda db: [schemas.Clip.model_validate(c) for c in load(db)])
        except BackendUnavailable:
            logger.warning(f"📴 Database unavailable, serving cached {name}")
            return [schemas.Clip.model_validate(c) for c in self.cache.get_collection(name)]
        self.cache.store_collection(name, [c.model_dump(mode="json") for c in clips])
        return clips

    def fetch_clips_by_owner(self, owner: str, limit: int = PROFILE_LIST_LIMIT) -> List[schemas.Clip]:
        """Clips the profile recorded, newest first."""
        return self._read_collection(f"recorded:{owner}", lambda db: crud.get_clips_by_owner(db, owner, limit))

    def fetch_liked_clips(self, profile_id: str) -> List[schemas.Clip]:
        return self._read_reacted(profile_id, "likes", "liked")

    def fetch_disliked_clips(self, profile_id: str) -> List[schemas.Clip]:
        return self._read_reacted(profile_id, "dislikes", "archived")

    def _read_reacted(self, profile_id, field, label):
        def load(db):
            db_profile = crud.get_profile(db, profile_id)
            if db_profile is None:
                raise ProfileNotFound(f"Profile {profile_id} not found")
            ids = list(getattr(db_profile, field) or [])[:PROFILE_LIST_LIMIT]
            return crud.get_clips_by_ids(db, ids)
        return self._read_collection(f"{label}:{profile_id}", load)

    def get_clip(self, clip_id: str) -> schemas.Clip:
        def load(db):
            db_clip = crud.get_clip(db, clip_id)
            if db_clip is None:
                raise ClipNotFound(f"Clip {clip_id} not found")
            return schemas.Clip.model_validate(db_clip)
        return self._run(load)

    def create_clip(self, clip: schemas.ClipCreate) -> schemas.Clip:
        # Id fixed up front so a retry after a committed insert finds the row
        clip_id = str(uuid.uuid4())

        def create(db):
            existing = crud.get_clip(db, clip_id)
            if existing is not None:
                return schemas.Clip.model_validate(existing)
            if clip.owner and crud.get_profile(db, clip.owner) is None:
                raise ProfileNotFound(f"Profile {clip.owner} not found")
            return schemas.Clip.model_validate(crud.create_clip(db, clip, clip_id=clip_id))
        new_clip = self._run(create)
        logger.info(f"🎙️ Clip {new_clip.id} '{new_clip.title}' created at ({new_clip.lat}, {new_clip.lng})")
        return new_clip

    def delete_clip(self, clip_id: str, owner: Optional[str]) -> None:
        def delete(db):
            db_clip = crud.get_clip(db, clip_id)
            if db_clip is None:
                raise ClipNotFound(f"Clip {clip_id} not found")
            if not owner or db_clip.owner != owner:
                raise NotClipOwner(f"{owner} does not own clip {clip_id}")
            crud.delete_clip(db, db_clip)
        self._run(delete)
        logger.info(f"🗑️ Clip {clip_id} deleted by {owner}")

    def update_like_count(self, clip_id: str) -> schemas.Clip:
        return self._run(self._bump, clip_id, crud.increment_like_count)

    def update_dislike_count(self, clip_id: str) -> schemas.Clip:
        return self._run(self._bump, clip_id, crud.increment_dislike_count)

    @staticmethod
    def _bump(db, clip_id, increment):
        db_clip = increment(db, clip_id)
        if db_clip is None:
            raise ClipNotFound(f"Clip {clip_id} not found")
        return schemas.Clip.model_validate(db_clip)

    # Profiles

    def get_profile(self, profile_id: str) -> schemas.Profile:
        def load(db):
            db_profile = crud.get_profile(db, profile_id)
            if db_profile is None:
                raise ProfileNotFound(f"Profile {profile_id} not found")
            return schemas.Profile.model_validate(db_profile)
        return self._run(load)

    def create_profile(self, profile: schemas.ProfileCreate) -> schemas.Profile:
        def create(db):
            if profile.id:
                existing = crud.get_profile(db, profile.id)
                if existing is not None:
                    return schemas.Profile.model_validate(existing)
            return schemas.Profile.model_validate(crud.create_profile(db, profile))
        return self._run(create)

    def excluded_clip_ids(self, profile_id: Optional[str]) -> List[str]:
        """Dislikes for the profile, from the cache when the database is down."""
        if not profile_id:
            return []
        try:
            return self.get_profile(profile_id).dislikes
        except BackendUnavailable:
            return self.cache.get_preferences(profile_id)["dislikes"]

    def update_profile_name(self, profile_id: str, name: str) -> schemas.Profile:
        def rename(db):
            db_profile = crud.get_profile(db, profile_id)
            if db_profile is None:
                raise ProfileNotFound(f"Profile {profile_id} not found")
            return schemas.Profile.model_validate(crud.update_profile_name(db, db_profile, name))
        profile = self._run(rename)
        logger.info(f"✏️ Profile {profile_id} renamed to '{name}'")
        return profile

    def record_like(self, profile_id: str, clip_id: str) -> schemas.Clip:
        return self._react(profile_id, clip_id, like=True)

    def record_dislike(self, profile_id: str, clip_id: str) -> schemas.Clip:
        return self._react(profile_id, clip_id, like=False)

    def _react(self, profile_id, clip_id, like):
        def react(db):
            db_profile = crud.get_profile(db, profile_id)
            if db_profile is None:
                raise ProfileNotFound(f"Profile {profile_id} not found")
            db_clip = crud.get_clip(db, clip_id)
            if db_clip is None:
                raise ClipNotFound(f"Clip {clip_id} not found")

            likes = list(db_profile.likes or [])
            dislikes = list(db_profile.dislikes or [])
            chosen, other = (likes, dislikes) if like else (dislikes, likes)
            # Lists and counter commit together, so a listed id means it was counted
            if clip_id in chosen:
                return schemas.Clip.model_validate(db_clip), likes, dislikes

            chosen.append(clip_id)
            if clip_id in other:
                other.remove(clip_id)
            db_clip = crud.apply_reaction(db, db_profile, db_clip, likes, dislikes, like)
            return schemas.Clip.model_validate(db_clip), likes, dislikes

        clip, likes, dislikes = self._run(react)
        self.cache.store_preferences(profile_id, likes, dislikes)
        logger.info(f"{'👍' if like else '👎'} {profile_id} -> {clip_id}")
        return clip


def build_backend(settings) -> SoundMapBackend:
    engine = create_database_engine(settings.database_url)
    return SoundMapBackend(
        create_session_factory(engine),
        retry_policy=RetryPolicy.from_settings(settings),
        cache=OfflineCache(settings.offline_cache_path),
        engine=engine,
    )
