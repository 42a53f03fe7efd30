from sqlalchemy import func
from sqlalchemy.orm import Session
from . import models, schemas
from .proximity import bounding_box

def get_clip(db: Session, clip_id: str):
    return db.query(models.Clip).filter(models.Clip.id == clip_id).first()

def get_clips(db: Session, skip: int = 0, limit: int = 100):
    return (
        db.query(models.Clip)
        .order_by(models.Clip.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

def get_clips_by_owner(db: Session, owner: str, limit: int = 50):
    return (
        db.query(models.Clip)
        .filter(models.Clip.owner == owner)
        .order_by(models.Clip.created_at.desc())
        .limit(limit)
        .all()
    )

def get_clips_by_ids(db: Session, clip_ids):
    if not clip_ids:
        return []
    return (
        db.query(models.Clip)
        .filter(models.Clip.id.in_(list(clip_ids)))
        .order_by(models.Clip.created_at.desc())
        .all()
    )

def get_clips_in_box(db: Session, lat: float, lng: float, meters: float):
    min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, meters)
    return (
        db.query(models.Clip)
        .filter(models.Clip.lat.between(min_lat, max_lat))
        .filter(models.Clip.lng.between(min_lng, max_lng))
        .all()
    )

def max_radius(db: Session):
    return db.query(func.max(models.Clip.radius)).scalar() or 0

def count_clips(db: Session):
    return db.query(models.Clip).count()

def create_clip(db: Session, clip: schemas.ClipCreate, clip_id: str = None):
    db_clip = models.Clip(**clip.model_dump())
    if clip_id:
        db_clip.id = clip_id
    db.add(db_clip)
    db.commit()
    db.refresh(db_clip)
    return db_clip

def delete_clip(db: Session, db_clip: models.Clip):
    db.delete(db_clip)
    db.commit()

def increment_like_count(db: Session, clip_id: str):
    db_clip = get_clip(db, clip_id)
    if db_clip:
        db_clip.like_count = (db_clip.like_count or 0) + 1
        db.commit()
        db.refresh(db_clip)
    return db_clip

def increment_dislike_count(db: Session, clip_id: str):
    db_clip = get_clip(db, clip_id)
    if db_clip:
        db_clip.dislike_count = (db_clip.dislike_count or 0) + 1
        db.commit()
        db.refresh(db_clip)
    return db_clip

def get_profile(db: Session, profile_id: str):
    return db.query(models.Profile).filter(models.Profile.id == profile_id).first()

def create_profile(db: Session, profile: schemas.ProfileCreate):
    data = profile.model_dump(exclude_none=True)
    db_profile = models.Profile(**data, likes=[], dislikes=[])
    db.add(db_profile)
    db.commit()
    db.refresh(db_profile)
    return db_profile

def update_profile_name(db: Session, db_profile: models.Profile, name: str):
    db_profile.name = name
    db.commit()
    db.refresh(db_profile)
    return db_profile

def apply_reaction(db: Session, db_profile: models.Profile, db_clip: models.Clip, likes, dislikes, like: bool):
    """Profile lists and clip counter change in one commit."""
    # JSON columns need a new list object to register as changed
    db_profile.likes = list(likes)
    db_profile.dislikes = list(dislikes)
    if like:
        db_clip.like_count = (db_clip.like_count or 0) + 1
    else:
        db_clip.dislike_count = (db_clip.dislike_count or 0) + 1
    db.commit()
    db.refresh(db_clip)
    return db_clip
