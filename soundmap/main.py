from collections import defaultdict
from functools import wraps
from fastapi import FastAPI, HTTPException, Depends, Request, Query
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
import time
import logging
from typing import List, Optional
from datetime import datetime, timezone
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST

from . import proximity, schemas
from .backend import SoundMapBackend, build_backend, MAX_FETCH_LIMIT
from .config import settings
from .errors import SoundMapError, ValidationFailed, soundmap_error_handler

app = FastAPI(
    title="SoundMap API",
    description="Geolocated audio clips for walking through Berlin",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=600
)

app.add_exception_handler(SoundMapError, soundmap_error_handler)

# Prometheus Metrics
HTTP_REQUESTS = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
REQUEST_DURATION = Histogram('http_request_duration_seconds', 'Request duration', ['method', 'endpoint'])
CLIPS_IN_RANGE = Histogram('clips_in_range', 'In-range clips returned per position update',
                           buckets=(0, 1, 2, 5, 10, 25, 50, 100))
CLIP_REACTIONS = Counter('clip_reactions_total', 'Likes and dislikes', ['reaction'])
ACTIVE_CLIPS = Gauge('clips_total', 'Total clips in database')
DB_OPERATIONS = Counter('database_operations_total', 'Database operations', ['operation'])

# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

# Backend dependency, built once from settings unless a test overrides it
def get_backend(request: Request) -> SoundMapBackend:
    backend = getattr(request.app.state, "backend", None)
    if backend is None:
        try:
            backend = build_backend(settings)
        except Exception as e:
            logger.error(f"Backend initialization failed: {e}")
            raise HTTPException(status_code=503, detail="Database connection failed")
        request.app.state.backend = backend
    return backend

# Rate limiting
request_counts = defaultdict(list)

def rate_limit(max_requests: int = 100, window: int = 300):
    def decorator(func):
        @wraps(func)
        def wrapper(request: Request, *args, **kwargs):
            client_ip = request.client.host if request.client else "unknown"
            now = time.time()

            request_counts[client_ip] = [t for t in request_counts[client_ip] if now - t < window]

            if len(request_counts[client_ip]) >= max_requests:
                raise HTTPException(status_code=429, detail="Rate limit exceeded")

            request_counts[client_ip].append(now)
            return func(request, *args, **kwargs)
        return wrapper
    return decorator

# Metrics middleware
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start_time = time.time()

    try:
        response = await call_next(request)
        process_time = time.time() - start_time

        HTTP_REQUESTS.labels(
            method=request.method,
            endpoint=request.url.path,
            status=str(response.status_code)
        ).inc()

        REQUEST_DURATION.labels(
            method=request.method,
            endpoint=request.url.path
        ).observe(process_time)

        status_emoji = "✅" if response.status_code < 400 else "❌"
        logger.info(f"{status_emoji} {request.method} {request.url.path} - {response.status_code} - {process_time:.3f}s")

        response.headers["X-Process-Time"] = str(process_time)
        return response

    except Exception as e:
        process_time = time.time() - start_time
        logger.error(f"💥 {request.method} {request.url.path} - ERROR: {e} - {process_time:.3f}s")

        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(e), "timestamp": time.time()}
        )

def resolve_position(backend: SoundMapBackend, lat: Optional[float], lng: Optional[float]) -> schemas.Position:
    """Reported position, else the last known one, else Berlin."""
    if lat is not None and lng is not None:
        try:
            position = schemas.Position(lat=lat, lng=lng)
        except ValidationError as e:
            raise ValidationFailed(str(e), user_message="Invalid coordinates.")
        backend.cache.store_position(position.lat, position.lng)
        return position

    last = backend.cache.get_position()
    if last:
        return schemas.Position(**last)
    return schemas.Position(lat=settings.default_lat, lng=settings.default_lng)

# Root endpoint
@app.get("/")
async def root():
    return {
        "message": "🎧 SoundMap API - Geolocated audio clips",
        "version": "1.0.0",
        "status": "online",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
            "setup": "/admin/setup-db",
            "seed": "/admin/seed-db",
            "clips": "/clips",
            "nearby": "/clips/nearby",
            "in_range": "/clips/in-range",
            "like": "/clips/{id}/like",
            "dislike": "/clips/{id}/dislike",
            "profiles": "/profiles",
            "recorded": "/profiles/{id}/clips",
            "liked": "/profiles/{id}/liked",
            "archived": "/profiles/{id}/archived"
        }
    }

# Metrics endpoint
@app.get("/metrics")
def get_metrics(backend: SoundMapBackend = Depends(get_backend)):
    """Prometheus metrics endpoint"""
    try:
        ACTIVE_CLIPS.set(backend.count_clips())
    except SoundMapError as e:
        logger.warning(f"Skipping clip gauge refresh: {e}")

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

# Health check
@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.environment
    }

# Setup database
@app.post("/admin/setup-db")
def setup_database(backend: SoundMapBackend = Depends(get_backend)):
    backend.setup_tables()
    DB_OPERATIONS.labels(operation="CREATE_TABLES").inc()
    return {
        "message": "✅ Database tables created successfully!",
        "next_step": "Run POST /admin/seed-db"
    }

# Seed database
@app.post("/admin/seed-db")
def seed_database(backend: SoundMapBackend = Depends(get_backend)):
    created = backend.seed()
    if not created:
        return {"message": "Database already has data", "existing_clips": backend.count_clips()}

    DB_OPERATIONS.labels(operation="INSERT").inc()
    ACTIVE_CLIPS.set(len(created))
    return {
        "message": f"✅ Database seeded with {len(created)} clips!",
        "created_clip_ids": created
    }

# All clips, newest first
@app.get("/clips", response_model=List[schemas.Clip])
@rate_limit(max_requests=50, window=300)
def get_clips(request: Request, limit: Optional[int] = None, backend: SoundMapBackend = Depends(get_backend)):
    DB_OPERATIONS.labels(operation="SELECT").inc()
    return backend.fetch_all_clips(min(limit or settings.clip_fetch_limit, MAX_FETCH_LIMIT))

# Clips within a fixed distance, nearest first
@app.get("/clips/nearby", response_model=List[schemas.NearbyClip])
@rate_limit(max_requests=100, window=300)
def get_nearby_clips(request: Request, lat: Optional[float] = None, lng: Optional[float] = None,
                     max_distance: Optional[float] = Query(default=None, gt=0, le=5000),
                     backend: SoundMapBackend = Depends(get_backend)):
    position = resolve_position(backend, lat, lng)
    DB_OPERATIONS.labels(operation="SELECT").inc()
    clips = backend.fetch_clips_near(position, max_distance or settings.nearby_radius)
    return [
        schemas.NearbyClip(**clip.model_dump(), distance=proximity.distance_to(position, clip))
        for clip in clips
    ]

# Walk mode: clips whose geofence contains the user, best first
@app.get("/clips/in-range", response_model=schemas.InRangeResponse)
@rate_limit(max_requests=200, window=300)
def get_clips_in_range(request: Request, lat: Optional[float] = None, lng: Optional[float] = None,
                       profile_id: Optional[str] = None, backend: SoundMapBackend = Depends(get_backend)):
    position = resolve_position(backend, lat, lng)
    DB_OPERATIONS.labels(operation="SELECT").inc()

    candidates = backend.fetch_in_range_candidates(position)
    excluded = backend.excluded_clip_ids(profile_id)

    now = datetime.now(timezone.utc)
    ranked = proximity.clips_in_range(
        position, candidates, excluded, now=now,
        like_weight=settings.like_weight, decay_days=settings.recency_decay_days,
    )
    CLIPS_IN_RANGE.observe(len(ranked))

    return schemas.InRangeResponse(
        position=position,
        clips=[
            schemas.RankedClip(
                **clip.model_dump(),
                distance=proximity.distance_to(position, clip),
                score=proximity.clip_score(clip, now, like_weight=settings.like_weight,
                                           decay_days=settings.recency_decay_days),
            )
            for clip in ranked
        ],
    )

# Single clip
@app.get("/clips/{clip_id}", response_model=schemas.Clip)
def get_clip(clip_id: str, backend: SoundMapBackend = Depends(get_backend)):
    DB_OPERATIONS.labels(operation="SELECT").inc()
    return backend.get_clip(clip_id)

# Create clip (audio already in the storage bucket)
@app.post("/clips", response_model=schemas.Clip, status_code=201)
@rate_limit(max_requests=10, window=300)
def create_clip(request: Request, clip: schemas.ClipCreate, backend: SoundMapBackend = Depends(get_backend)):
    DB_OPERATIONS.labels(operation="INSERT").inc()
    new_clip = backend.create_clip(clip)
    ACTIVE_CLIPS.inc()
    return new_clip

# Delete clip, owner only
@app.delete("/clips/{clip_id}", status_code=204)
def delete_clip(clip_id: str, owner: Optional[str] = None, backend: SoundMapBackend = Depends(get_backend)):
    DB_OPERATIONS.labels(operation="DELETE").inc()
    backend.delete_clip(clip_id, owner)
    ACTIVE_CLIPS.dec()
    return Response(status_code=204)

@app.post("/clips/{clip_id}/like", response_model=schemas.Clip)
def like_clip(clip_id: str, reaction: Optional[schemas.Reaction] = None,
              backend: SoundMapBackend = Depends(get_backend)):
    DB_OPERATIONS.labels(operation="UPDATE").inc()
    CLIP_REACTIONS.labels(reaction="like").inc()
    if reaction and reaction.profile_id:
        return backend.record_like(reaction.profile_id, clip_id)
    return backend.update_like_count(clip_id)

@app.post("/clips/{clip_id}/dislike", response_model=schemas.Clip)
def dislike_clip(clip_id: str, reaction: Optional[schemas.Reaction] = None,
                 backend: SoundMapBackend = Depends(get_backend)):
    DB_OPERATIONS.labels(operation="UPDATE").inc()
    CLIP_REACTIONS.labels(reaction="dislike").inc()
    if reaction and reaction.profile_id:
        return backend.record_dislike(reaction.profile_id, clip_id)
    return backend.update_dislike_count(clip_id)

# Profiles
@app.post("/profiles", response_model=schemas.Profile, status_code=201)
def create_profile(profile: schemas.ProfileCreate, backend: SoundMapBackend = Depends(get_backend)):
    DB_OPERATIONS.labels(operation="INSERT").inc()
    return backend.create_profile(profile)

@app.get("/profiles/{profile_id}", response_model=schemas.Profile)
def get_profile(profile_id: str, backend: SoundMapBackend = Depends(get_backend)):
    DB_OPERATIONS.labels(operation="SELECT").inc()
    return backend.get_profile(profile_id)

@app.patch("/profiles/{profile_id}", response_model=schemas.Profile)
def rename_profile(profile_id: str, update: schemas.ProfileUpdate, backend: SoundMapBackend = Depends(get_backend)):
    DB_OPERATIONS.labels(operation="UPDATE").inc()
    return backend.update_profile_name(profile_id, update.name)

# Profile page lists
@app.get("/profiles/{profile_id}/clips", response_model=List[schemas.Clip])
def get_recorded_clips(profile_id: str, backend: SoundMapBackend = Depends(get_backend)):
    DB_OPERATIONS.labels(operation="SELECT").inc()
    return backend.fetch_clips_by_owner(profile_id)

@app.get("/profiles/{profile_id}/liked", response_model=List[schemas.Clip])
def get_liked_clips(profile_id: str, backend: SoundMapBackend = Depends(get_backend)):
    DB_OPERATIONS.labels(operation="SELECT").inc()
    return backend.fetch_liked_clips(profile_id)

@app.get("/profiles/{profile_id}/archived", response_model=List[schemas.Clip])
def get_archived_clips(profile_id: str, backend: SoundMapBackend = Depends(get_backend)):
    DB_OPERATIONS.labels(operation="SELECT").inc()
    return backend.fetch_disliked_clips(profile_id)
