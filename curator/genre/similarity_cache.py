"""
Genre Similarity Cache - persistent storage for genre pair similarity verdicts
"""
import json
import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def pair_key(genre_a: str, genre_b: str) -> str:
    """Order-independent cache key for a genre pair."""
    first, second = sorted((genre_a.lower().strip(), genre_b.lower().strip()))
    return f"{first}|{second}"


class GenreSimilarityCache:
    """JSON file cache of genre pair verdicts with per-entry expiry."""

    def __init__(self, cache_file: str = "data/genre_similarity_cache.json", expiry_days: int = 90):
        """
        Args:
            cache_file: Path to cache file
            expiry_days: Number of days before cache entries expire
        """
        self.cache_file = Path(cache_file)
        self.expiry_days = expiry_days
        self._lock = threading.Lock()
        self._dirty = False
        self.cache_data = self._load_cache()
        logger.debug(
            f"Genre similarity cache: {self.cache_file} "
            f"({len(self.cache_data['pairs'])} pairs, expiry {self.expiry_days} days)"
        )

    def _load_cache(self) -> Dict[str, Any]:
        if not self.cache_file.exists():
            return {"cache_version": "1.0", "pairs": {}}
        try:
            with open(self.cache_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load genre similarity cache, starting fresh: {e}")
            return {"cache_version": "1.0", "pairs": {}}
        data.setdefault("pairs", {})
        return data

    def _save_cache(self) -> None:
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.cache_file.with_suffix(self.cache_file.suffix + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(self.cache_data, f, indent=2)
        tmp_path.replace(self.cache_file)

    def _is_expired(self, fetched_at: str, now: Optional[datetime] = None) -> bool:
        try:
            fetched_time = datetime.fromisoformat(fetched_at)
        except (TypeError, ValueError):
            return True
        return (now or datetime.now()) - fetched_time > timedelta(days=self.expiry_days)

    def get(self, genre_a: str, genre_b: str, now: Optional[datetime] = None) -> Optional[bool]:
        """Cached verdict for the pair, None when missing or expired."""
        with self._lock:
            entry = self.cache_data["pairs"].get(pair_key(genre_a, genre_b))
        if not entry or self._is_expired(entry.get("fetched_at", ""), now):
            return None
        return bool(entry.get("similar"))

    def set(self, genre_a: str, genre_b: str, similar: bool, now: Optional[datetime] = None) -> None:
        """Record a verdict in memory. Call flush() to write it to disk."""
        with self._lock:
            self.cache_data["pairs"][pair_key(genre_a, genre_b)] = {
                "similar": bool(similar),
                "fetched_at": (now or datetime.now()).isoformat(),
            }
            self._dirty = True

    def flush(self) -> bool:
        """Write pending verdicts to disk. Returns True when the file was written."""
        with self._lock:
            if not self._dirty:
                return False
            self._save_cache()
            self._dirty = False
        logger.debug(f"Saved {len(self.cache_data['pairs'])} genre similarity pairs to {self.cache_file}")
        return True

    def clear_expired(self, now: Optional[datetime] = None) -> int:
        """Drop expired entries. Returns the number removed."""
        with self._lock:
            pairs = self.cache_data["pairs"]
            fresh = {
                key: entry for key, entry in pairs.items()
                if not self._is_expired(entry.get("fetched_at", ""), now)
            }
            removed = len(pairs) - len(fresh)
            if removed:
                self.cache_data["pairs"] = fresh
                self._save_cache()
                self._dirty = False
                logger.info(f"Cleared {removed} expired genre similarity entries")
        return removed
