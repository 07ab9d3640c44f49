"""
Playlist Runner - drives one generation run per playlist window.

A daily run goes through these stages:

    history -> candidate pool -> library fallback (when short)
      -> exclusions -> genre families -> selection
      -> sonic expansion + reselection (when under-filled) -> persistence

Discovery and throwback windows replace the first two stages with their own
library scans. Progress is reported as ProgressEvent messages on an optional
queue.Queue so a caller on another thread can follow along.
"""
from __future__ import annotations

import asyncio
import logging
import queue
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import AbstractSet, Dict, List, Optional, Sequence

from curator.behavior import LocalBehaviorTracker
from curator.cancellation import CancellationToken, check_cancelled
from curator.config_loader import Config
from curator.exceptions import (
    BatchGenerationError,
    CancellationError,
    ConfigurationError,
    PlaylistGenerationError,
)
from curator.genre.similarity import GenreSimilarityService
from curator.genre.similarity_cache import GenreSimilarityCache
from curator.history.aggregate import aggregate_history
from curator.history.history_service import HistoryService
from curator.library_db import connect
from curator.local_library_client import LocalLibraryClient
from curator.logging_utils import format_count, stage_timer
from curator.playlist.candidate import CandidateTrack
from curator.playlist.candidate_builder import (
    BuildOptions,
    build_candidate_tracks,
    merge_candidates,
)
from curator.playlist.discovery import fetch_discovery_candidates
from curator.playlist.fallback import fetch_fallback_candidates
from curator.playlist.selector import (
    SelectionConstraints,
    SelectionResult,
    calculate_exploration_rate,
    log_genre_distribution,
    select_tracks,
)
from curator.playlist.sonic_expander import expand_with_sonic_similarity
from curator.playlist.throwback import fetch_throwback_candidates
from curator.playlist.windows import (
    DEFAULT_TIME_WINDOWS,
    DISCOVERY,
    THROWBACK,
    is_daily_window,
    is_valid_window,
    playlist_type_for_window,
    window_label,
)
from curator.playlist_store import PlaylistStore
from curator.scoring.patterns import analyze_hourly_genre_preferences, peak_listening_hours
from curator.scoring.registry import get_default_strategy, parse_strategy

logger = logging.getLogger(__name__)

RECENT_CONTEXT_HOURS = 24


@dataclass(frozen=True)
class ProgressEvent:
    """One progress message posted to the runner's queue."""
    window: str
    stage: str
    current: int
    total: int
    detail: Optional[str] = None


@dataclass
class RunReport:
    """
    Result of one playlist run.

    entries holds the ordered {track_id, title, artist, album, final_score,
    position} records handed to persistence.
    """
    window: str
    title: str
    strategy: str
    entries: List[dict]
    pool_size: int
    counts_by_source: Dict[str, int]
    exploration_count: int
    exploration_rate: float
    target_count: int
    pass_counts: Dict[int, int] = field(default_factory=dict)
    playlist_id: Optional[int] = None

    @property
    def under_filled(self) -> bool:
        return len(self.entries) < self.target_count

    @property
    def track_ids(self) -> List[str]:
        return [entry["track_id"] for entry in self.entries]

    def to_dict(self) -> dict:
        return {
            "window": self.window,
            "title": self.title,
            "strategy": self.strategy,
            "entries": list(self.entries),
            "pool_size": self.pool_size,
            "counts_by_source": dict(self.counts_by_source),
            "exploration_count": self.exploration_count,
            "exploration_rate": self.exploration_rate,
            "target_count": self.target_count,
            "under_filled": self.under_filled,
            "playlist_id": self.playlist_id,
        }


class PlaylistRunner:
    """Generates and stores playlists for the configured windows."""

    def __init__(
        self,
        catalog,
        history_service: HistoryService,
        store: PlaylistStore,
        config: Config,
        *,
        behavior=None,
        similarity: Optional[GenreSimilarityService] = None,
        progress_queue: Optional[queue.Queue] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        """
        Args:
            catalog: Catalog client (see curator.local_library_client)
            history_service: Play history queries
            store: Playlist persistence and exclusion queries
            config: Loaded configuration
            behavior: Optional behavior tracker for the dynamic exploration rate
            similarity: Optional genre similarity oracle
            progress_queue: Receives ProgressEvent messages when given
            cancel_token: Checked between windows and scan batches
        """
        self.catalog = catalog
        self.history_service = history_service
        self.store = store
        self.config = config
        self.behavior = behavior
        self.similarity = similarity
        self.progress_queue = progress_queue
        self.cancel_token = cancel_token
        self.settings = config.scoring_settings()

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        progress_queue: Optional[queue.Queue] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "PlaylistRunner":
        """Wire the runner to the library database named in the configuration."""
        conn = connect(config.library_database_path)
        persistent_cache = None
        if config.genre_cache_file:
            persistent_cache = GenreSimilarityCache(config.genre_cache_file, config.genre_cache_ttl_days)
        similarity = GenreSimilarityService.from_file(
            config.genre_similarity_file,
            threshold=config.genre_similarity_threshold,
            persistent_cache=persistent_cache,
        )
        return cls(
            LocalLibraryClient(config.library_database_path, conn=conn),
            HistoryService(conn),
            PlaylistStore(conn),
            config,
            behavior=LocalBehaviorTracker(conn),
            similarity=similarity,
            progress_queue=progress_queue,
            cancel_token=cancel_token,
        )

    def _emit(self, window: str, stage: str, current: int, total: int, detail: Optional[str] = None) -> None:
        if self.progress_queue is not None:
            self.progress_queue.put(ProgressEvent(window, stage, current, total, detail))

    def run(
        self,
        window: str,
        *,
        strategy: Optional[str] = None,
        now: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> RunReport:
        """
        Generate one playlist.

        Args:
            window: morning, afternoon, evening, discovery or throwback
            strategy: Scoring strategy (defaults by playlist type)
            now: Reference time, injectable for tests
            dry_run: Skip persistence

        Returns:
            RunReport for the generated playlist

        Raises:
            ConfigurationError: unknown strategy or malformed settings
            PlaylistGenerationError: the window could not be filled at all
            CancellationError: cancellation was requested
        """
        try:
            return asyncio.run(self.generate(window, strategy=strategy, now=now, dry_run=dry_run))
        except (ConfigurationError, PlaylistGenerationError, CancellationError):
            raise
        except Exception as e:
            logger.error(f"{window} playlist failed: {e}", exc_info=True)
            raise PlaylistGenerationError(f"{window} playlist failed: {e}", window=window) from e
        finally:
            if self.similarity is not None:
                self.similarity.flush()

    async def generate(
        self,
        window: str,
        *,
        strategy: Optional[str] = None,
        now: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> RunReport:
        """Async body of run()."""
        if not is_valid_window(window):
            raise PlaylistGenerationError(f"Unknown playlist window: {window!r}", window=window)
        strategy = parse_strategy(strategy, default=get_default_strategy(playlist_type_for_window(window)))
        now = now or datetime.now()
        target = self.config.target_size

        if self.similarity is not None:
            self.similarity.clear_memory_cache()

        logger.info("=" * 60)
        logger.info(f"Generating {window_label(window)} ({strategy}, {target} tracks)")
        logger.info("=" * 60)
        self._emit(window, "start", 0, 100, f"strategy={strategy}")
        check_cancelled(self.cancel_token, f"{window} start")

        exclusion_days = self.config.exclusion_days
        excluded = self.store.fetch_recent_track_ids(days=exclusion_days, exclude_window=window, now=now)
        if excluded:
            logger.info(f"Excluding {format_count(len(excluded), 'track')} used in the last {exclusion_days} days")

        options = self._build_options(window, strategy, now)

        self._emit(window, "candidates", 10, 100)
        with stage_timer(f"{window} candidate pool", logger):
            pool = await self._candidate_pool(window, target, excluded, options)
        check_cancelled(self.cancel_token, f"{window} candidate pool")

        self._emit(window, "select", 60, 100, f"{len(pool)} candidates")
        rate = self._exploration_rate()
        result = await self._select(pool, target, excluded, rate)

        if result.under_filled and result.selected and is_daily_window(window):
            with stage_timer(f"{window} sonic expansion", logger):
                extra = await expand_with_sonic_similarity(
                    self.catalog,
                    result.selected,
                    excluded | {c.track_id for c in pool},
                    target - len(result.selected),
                    options,
                    max_seeds=self.config.sonic_max_seeds,
                    per_seed=self.config.sonic_per_seed,
                    max_distance=self.config.sonic_max_distance,
                    similarity=self.similarity,
                )
            if extra:
                pool = merge_candidates(pool, extra)
                result = await self._select(pool, target, excluded, rate)

        if not result.selected:
            raise PlaylistGenerationError(
                f"No tracks available for {window_label(window)} "
                f"({len(pool)} candidates, {len(excluded)} excluded)",
                window=window,
            )
        if result.under_filled:
            logger.warning(
                f"{window_label(window)} under-filled: {len(result.selected)}/{target} tracks"
            )
        log_genre_distribution(result, self.config.max_genre_share, window)

        report = RunReport(
            window=window,
            title=window_label(window),
            strategy=strategy,
            entries=result.to_playlist_entries(),
            pool_size=len(pool),
            counts_by_source=dict(Counter(track.source for track in result.selected)),
            exploration_count=result.exploration_count,
            exploration_rate=result.exploration_rate,
            target_count=target,
            pass_counts=result.pass_counts,
        )

        if dry_run:
            logger.info(f"Dry run: {report.title} not saved")
        else:
            self._emit(window, "save", 90, 100)
            report.playlist_id = self.store.save_playlist(
                window,
                report.title,
                strategy,
                report.entries,
                sources=[track.source for track in result.selected],
                passes=list(result.passes),
                exploration_rate=result.exploration_rate,
                pool_size=report.pool_size,
                created_at=now,
            )

        self._emit(window, "complete", 100, 100, f"{len(report.entries)} tracks")
        logger.info(
            f"{report.title}: {len(report.entries)}/{target} tracks from {report.pool_size} candidates "
            f"(sources={report.counts_by_source}, explore={report.exploration_count})"
        )
        return report

    def _build_options(self, window: str, strategy: str, now: datetime) -> BuildOptions:
        """Scoring context shared by every candidate source of this run."""
        if not is_daily_window(window):
            return BuildOptions(strategy=strategy, settings=self.settings, now=now)

        recent_artists, recent_genres = self.history_service.fetch_recent_artists_and_genres(
            hours=RECENT_CONTEXT_HOURS, now=now
        )
        history = self.history_service.fetch_history_range(
            now - timedelta(days=self.config.history_days), now
        )
        tracks = self.catalog.fetch_tracks_by_ids([entry.track_id for entry in history])
        patterns = analyze_hourly_genre_preferences(
            history, {track_id: track.genres for track_id, track in tracks.items()}
        )
        logger.debug(f"Peak listening hours: {peak_listening_hours(history)}")
        return BuildOptions(
            strategy=strategy,
            time_window=window,
            learned_patterns=tuple(patterns),
            recent_artists=tuple(recent_artists),
            recent_genres=tuple(recent_genres),
            settings=self.settings,
            now=now,
        )

    async def _candidate_pool(
        self,
        window: str,
        target: int,
        excluded: AbstractSet[str],
        options: BuildOptions,
    ) -> List[CandidateTrack]:
        if window == DISCOVERY:
            return await fetch_discovery_candidates(
                self.catalog,
                target,
                min_days_since_play=self.config.discovery_min_days_since_play,
                options=options,
                cancel_token=self.cancel_token,
            )
        if window == THROWBACK:
            return await fetch_throwback_candidates(
                self.history_service,
                self.catalog,
                target,
                lookback_start=self.settings.lookback_start,
                lookback_end=self.settings.lookback_end,
                recent_exclusion=self.config.throwback_recent_exclusion,
                options=options,
                cancel_token=self.cancel_token,
            )

        entries = self.history_service.fetch_history_for_window(
            window, days=self.config.history_days, now=options.now
        )
        pool = await build_candidate_tracks(
            aggregate_history(entries), self.catalog, options, similarity=self.similarity
        )
        usable = sum(1 for c in pool if c.track_id not in excluded)
        if usable < target:
            logger.info(f"History gave {usable}/{target} usable candidates, adding library fallback")
            fallback = await fetch_fallback_candidates(
                self.catalog, self.config.fallback_limit, options, similarity=self.similarity
            )
            pool = merge_candidates(pool, fallback)
        return pool

    def _exploration_rate(self) -> float:
        if self.config.exploration_rate is not None:
            return self.config.exploration_rate
        return calculate_exploration_rate(self.behavior, discovery_enabled=self.config.discovery_enabled)

    async def _select(
        self,
        pool: Sequence[CandidateTrack],
        target: int,
        excluded: AbstractSet[str],
        rate: float,
    ) -> SelectionResult:
        families: Dict[str, str] = {}
        if self.similarity is not None:
            families = await self.similarity.group_genres_into_families(
                [c.genre for c in pool if c.genre]
            )
        constraints = SelectionConstraints(
            target_count=target,
            max_per_artist=self.config.max_per_artist,
            genre_share_cap=self.config.max_genre_share,
            excluded_track_ids=frozenset(excluded),
            genre_families=families,
        )
        with stage_timer("Selection", logger):
            return select_tracks(
                pool, constraints, exploration_rate=rate, random_seed=self.config.random_seed
            )

    def run_all_daily(
        self,
        windows: Optional[Sequence[str]] = None,
        *,
        now: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> Dict[str, RunReport]:
        """
        Generate every daily window, continuing past individual failures.

        Returns:
            window -> RunReport when every window succeeded

        Raises:
            BatchGenerationError: one or more windows failed; carries every result
            CancellationError: cancellation was requested between windows
        """
        windows = list(windows) if windows is not None else [w.window for w in DEFAULT_TIME_WINDOWS]
        results: Dict[str, object] = {}
        for index, window in enumerate(windows, 1):
            check_cancelled(self.cancel_token, f"batch before {window}")
            logger.info(f"Playlist {index}/{len(windows)}: {window}")
            try:
                results[window] = self.run(window, now=now, dry_run=dry_run)
            except (PlaylistGenerationError, ConfigurationError) as e:
                logger.error(f"{window} failed, continuing with remaining windows: {e}")
                self._emit(window, "failed", 100, 100, str(e))
                results[window] = e

        if any(isinstance(outcome, Exception) for outcome in results.values()):
            raise BatchGenerationError(results)
        logger.info(f"Batch complete: {format_count(len(results), 'playlist')} generated")
        return results  # type: ignore[return-value]
