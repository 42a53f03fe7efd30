from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import List, Optional
import math

BLOCKED_TITLE_WORDS = ("spam", "test123", "asdf")
MIN_RADIUS = 20
MAX_RADIUS = 500

class Position(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    accuracy: Optional[float] = None

    @field_validator("lat", "lng")
    @classmethod
    def must_be_finite(cls, v):
        if not math.isfinite(v):
            raise ValueError("coordinate must be a finite number")
        return v

class ClipBase(BaseModel):
    title: str
    url: str
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    radius: int = 30

class ClipCreate(ClipBase):
    radius: int = Field(default=100, ge=MIN_RADIUS, le=MAX_RADIUS)
    owner: Optional[str] = None

    @field_validator("title")
    @classmethod
    def check_title(cls, v):
        title = v.strip()
        if not title:
            raise ValueError("Title is required")
        if len(title) > 100:
            raise ValueError("Title must be no more than 100 characters")
        if any(word in title.lower() for word in BLOCKED_TITLE_WORDS):
            raise ValueError("Please use a more descriptive title.")
        return title

    @field_validator("url")
    @classmethod
    def check_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("Invalid audio URL")
        return v

    @field_validator("lat", "lng")
    @classmethod
    def must_be_finite(cls, v):
        if not math.isfinite(v):
            raise ValueError("coordinate must be a finite number")
        return v

class Clip(ClipBase):
    id: str
    owner: Optional[str] = None
    like_count: int = 0
    dislike_count: int = 0
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class NearbyClip(Clip):
    distance: float

class RankedClip(NearbyClip):
    score: float

class InRangeResponse(BaseModel):
    position: Position
    clips: List[RankedClip]

class ProfileCreate(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    anonymous: bool = False

class Profile(ProfileCreate):
    id: str
    likes: List[str] = []
    dislikes: List[str] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class Reaction(BaseModel):
    profile_id: Optional[str] = None

class ProfileUpdate(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        name = v.strip()
        if not name:
            raise ValueError("Name is required")
        if len(name) > 100:
            raise ValueError("Name must be no more than 100 characters")
        return name
