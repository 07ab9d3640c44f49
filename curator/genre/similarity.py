"""
Genre Similarity Service
Boolean genre relatedness backed by a curated similarity matrix and two cache layers
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Dict, List, Optional, Sequence

import yaml

from curator.genre.similarity_cache import GenreSimilarityCache, pair_key

logger = logging.getLogger(__name__)


def load_similarity_matrix(filepath: str) -> Dict[str, Dict[str, float]]:
    """Load a {genre: {related_genre: score}} matrix from YAML (empty if missing)."""
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning(f"Genre similarity file not found: {filepath}")
        return {}
    return {
        str(genre).lower().strip(): {
            str(other).lower().strip(): float(score) for other, score in (related or {}).items()
        }
        for genre, related in raw.items()
    }


class GenreSimilarityService:
    """
    Decides whether two genres are related.

    Identical genres are never "similar"; identity is handled by the exact
    match tier of genre scoring. Verdicts are cached in memory for the
    duration of a run (clear_memory_cache between runs) and optionally in a
    persistent cache with a time-to-live.
    """

    def __init__(
        self,
        matrix: Optional[Dict[str, Dict[str, float]]] = None,
        threshold: float = 0.5,
        persistent_cache: Optional[GenreSimilarityCache] = None,
    ):
        """
        Args:
            matrix: Similarity matrix, see load_similarity_matrix
            threshold: Minimum matrix score for two genres to count as similar
            persistent_cache: Optional cache shared across runs
        """
        self.matrix = matrix or {}
        self.threshold = threshold
        self.persistent_cache = persistent_cache
        self._memory_cache: Dict[str, bool] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_file(
        cls,
        similarity_file: str,
        threshold: float = 0.5,
        persistent_cache: Optional[GenreSimilarityCache] = None,
    ) -> "GenreSimilarityService":
        matrix = load_similarity_matrix(similarity_file)
        logger.info(f"Loaded genre similarity matrix with {len(matrix)} genres")
        return cls(matrix, threshold=threshold, persistent_cache=persistent_cache)

    def _lookup_similarity(self, genre1: str, genre2: str) -> float:
        """Matrix score in either direction, 0.0 when unrelated."""
        forward = self.matrix.get(genre1, {}).get(genre2)
        if forward is not None:
            return forward
        return self.matrix.get(genre2, {}).get(genre1, 0.0)

    async def are_similar(self, genre_a: str, genre_b: str) -> bool:
        if not genre_a or not genre_b:
            return False
        g1 = genre_a.lower().strip()
        g2 = genre_b.lower().strip()
        if g1 == g2:
            return False

        key = pair_key(g1, g2)
        with self._lock:
            cached = self._memory_cache.get(key)
        if cached is not None:
            return cached

        verdict = self.persistent_cache.get(g1, g2) if self.persistent_cache else None
        if verdict is None:
            verdict = self._lookup_similarity(g1, g2) >= self.threshold
            if self.persistent_cache is not None:
                self.persistent_cache.set(g1, g2, verdict)

        with self._lock:
            self._memory_cache[key] = verdict
        return verdict

    def clear_memory_cache(self) -> None:
        with self._lock:
            size = len(self._memory_cache)
            self._memory_cache.clear()
        logger.debug(f"Cleared {size} in-memory genre similarity verdicts")

    def flush(self) -> None:
        """Persist verdicts recorded since the last flush."""
        if self.persistent_cache is not None:
            self.persistent_cache.flush()

    async def group_genres_into_families(self, genres: Sequence[str]) -> Dict[str, str]:
        """
        Group genres into families of mutually related genres.

        Families are connected components of the similarity graph; each genre
        maps to the alphabetically first member of its family.
        """
        normalized: List[str] = list(dict.fromkeys(g.lower().strip() for g in genres if g and g.strip()))
        graph: Dict[str, set] = {genre: {genre} for genre in normalized}

        for i, first in enumerate(normalized):
            for second in normalized[i + 1:]:
                if await self.are_similar(first, second):
                    graph[first].add(second)
                    graph[second].add(first)
        self.flush()

        family_map: Dict[str, str] = {}
        visited: set = set()
        families = 0
        for genre in normalized:
            if genre in visited:
                continue
            family = []
            queue = deque([genre])
            visited.add(genre)
            while queue:
                current = queue.popleft()
                family.append(current)
                for neighbour in graph[current]:
                    if neighbour not in visited:
                        visited.add(neighbour)
                        queue.append(neighbour)
            representative = min(family)
            for member in family:
                family_map[member] = representative
            families += 1

        logger.debug(f"Grouped {len(normalized)} genres into {families} families")
        return family_map
