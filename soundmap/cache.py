"""Last-known clips, position and preferences, used when the database is unreachable."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class OfflineCache:
    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self.clips: List[Dict[str, Any]] = []
        self.position: Optional[Dict[str, float]] = None
        self.preferences: Dict[str, Dict[str, List[str]]] = {}
        # Per-profile lists: recorded / liked / archived clips
        self.collections: Dict[str, List[Dict[str, Any]]] = {}
        self._load()

    def _load(self) -> None:
        if not self.path or not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load offline cache {self.path}: {e}")
            return
        if not isinstance(data, dict):
            logger.warning(f"Ignoring offline cache {self.path}: expected an object, got {type(data).__name__}")
            return
        self.clips = data.get("clips") or []
        self.position = data.get("position")
        self.preferences = data.get("preferences") or {}
        self.collections = data.get("collections") or {}
        logger.info(f"Loaded {len(self.clips)} clips from offline cache")

    def _save(self) -> None:
        if not self.path:
            return
        payload = {
            "clips": self.clips,
            "position": self.position,
            "preferences": self.preferences,
            "collections": self.collections,
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2, default=str))
        except OSError as e:
            logger.warning(f"Failed to save offline cache {self.path}: {e}")

    def store_clips(self, clips: List[Dict[str, Any]]) -> None:
        self.clips = list(clips)
        self._save()

    def get_clips(self) -> List[Dict[str, Any]]:
        return list(self.clips)

    def store_collection(self, name: str, clips: List[Dict[str, Any]]) -> None:
        self.collections[name] = list(clips)
        self._save()

    def get_collection(self, name: str) -> List[Dict[str, Any]]:
        return list(self.collections.get(name, []))

    def store_position(self, lat: float, lng: float) -> None:
        self.position = {"lat": lat, "lng": lng}
        self._save()

    def get_position(self) -> Optional[Dict[str, float]]:
        return self.position

    def store_preferences(self, profile_id: str, likes: List[str], dislikes: List[str]) -> None:
        self.preferences[profile_id] = {"likes": list(likes), "dislikes": list(dislikes)}
        self._save()

    def get_preferences(self, profile_id: str) -> Dict[str, List[str]]:
        return self.preferences.get(profile_id, {"likes": [], "dislikes": []})

    def clear(self) -> None:
        self.clips = []
        self.position = None
        self.preferences = {}
        self.collections = {}
        self._save()
