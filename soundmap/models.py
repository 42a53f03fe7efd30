from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, JSON, ForeignKey
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone
import uuid

Base = declarative_base()

def _new_id():
    return str(uuid.uuid4())

def _utcnow():
    return datetime.now(timezone.utc)

class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String)
    email = Column(String)
    anonymous = Column(Boolean, default=False)
    likes = Column(JSON, default=list)
    dislikes = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

class Clip(Base):
    __tablename__ = "clips"

    id = Column(String(36), primary_key=True, default=_new_id)
    owner = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String, nullable=False)
    lat = Column(Float, nullable=False, index=True)
    lng = Column(Float, nullable=False, index=True)
    radius = Column(Integer, default=30)
    url = Column(String, nullable=False)
    like_count = Column(Integer, default=0)
    dislike_count = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
