"""
Configuration Loader - Manages YAML configuration and environment variables
"""
import os
from typing import Any, Optional

import yaml

from curator.exceptions import ConfigurationError
from curator.scoring.types import ScoringSettings


class Config:
    """Configuration manager for playlist-curator"""

    def __init__(self, config_path: str = "config.yaml", data: Optional[dict] = None):
        """
        Args:
            config_path: Path to the YAML configuration file
            data: Already-parsed configuration (skips reading config_path)
        """
        self.config_path = config_path
        self.config = data if data is not None else self._load_config()
        self._validate_config()

    def _load_config(self) -> dict:
        """Load configuration from YAML file"""
        if not os.path.exists(self.config_path):
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}

    def _validate_config(self):
        """Validate required fields and numeric ranges"""
        if not isinstance(self.config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping in {self.config_path}")
        if not os.getenv('CURATOR_DB_PATH'):
            if 'library' not in self.config:
                raise ConfigurationError("Missing configuration section: library")
            if not self.config['library'].get('database_path'):
                raise ConfigurationError("Missing configuration field: library.database_path")

        # Builds and validates the scoring constants
        self.scoring_settings()

        if self.target_size < 0:
            raise ConfigurationError(f"playlists.target_size must be >= 0, got {self.target_size}")
        if self.max_per_artist < 0:
            raise ConfigurationError(f"playlists.max_per_artist must be >= 0, got {self.max_per_artist}")
        if not 0.0 <= self.max_genre_share <= 1.0:
            raise ConfigurationError(
                f"playlists.max_genre_share must be within [0, 1], got {self.max_genre_share}"
            )
        rate = self.exploration_rate
        if rate is not None and not 0.0 <= rate <= 1.0:
            raise ConfigurationError(f"playlists.exploration_rate must be within [0, 1], got {rate}")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get configuration value

        Args:
            section: Configuration section
            key: Configuration key
            default: Default value if not found

        Returns:
            Configuration value or default
        """
        if section not in self.config or not isinstance(self.config[section], dict):
            return default
        return self.config[section].get(key, default)

    def _playlists(self, *keys, default=None):
        """Helper to access nested playlists config values."""
        val = self.config.get('playlists', {})
        for key in keys:
            if not isinstance(val, dict):
                return default
            val = val.get(key, default)
            if val is default:
                return default
        return val

    @property
    def library_database_path(self) -> str:
        """Get library database path (CURATOR_DB_PATH overrides)"""
        return os.getenv('CURATOR_DB_PATH') or self.config['library']['database_path']

    # Scoring
    def scoring_settings(self) -> ScoringSettings:
        """Validated scoring constants; raises ConfigurationError for bad values"""
        scoring = self.config.get('scoring', {}) or {}
        throwback = self._playlists('throwback', default={}) or {}
        return ScoringSettings(
            half_life_days=float(scoring.get('half_life_days', 7)),
            play_count_saturation=int(scoring.get('play_count_saturation', 25)),
            max_skip_penalty=float(scoring.get('max_skip_penalty', 0.5)),
            lookback_start=int(throwback.get('lookback_start', 730)),
            lookback_end=int(throwback.get('lookback_end', 1825)),
        )

    # Playlists
    @property
    def target_size(self) -> int:
        """Get number of tracks per playlist"""
        return int(self._playlists('target_size', default=50))

    @property
    def max_per_artist(self) -> int:
        """Get maximum tracks per artist in a playlist"""
        return int(self._playlists('max_per_artist', default=2))

    @property
    def max_genre_share(self) -> float:
        """Get maximum share of a playlist one genre family may take"""
        return float(self._playlists('max_genre_share', default=0.4))

    @property
    def fallback_limit(self) -> int:
        """Get number of library fallback candidates to score"""
        return int(self._playlists('fallback_limit', default=200))

    @property
    def exclusion_days(self) -> int:
        """Get days a track stays excluded after appearing in a playlist"""
        return int(self._playlists('exclusion_days', default=7))

    @property
    def history_days(self) -> int:
        """Get days of play history used for daily playlists"""
        return int(self._playlists('history_days', default=30))

    @property
    def exploration_rate(self) -> Optional[float]:
        """Get fixed exploration rate (None = computed per run)"""
        rate = self._playlists('exploration_rate', default=None)
        return None if rate is None else float(rate)

    @property
    def random_seed(self) -> Optional[int]:
        """Get seed for exploration picks (None = nondeterministic)"""
        seed = self._playlists('random_seed', default=None)
        return None if seed is None else int(seed)

    @property
    def discovery_enabled(self) -> bool:
        """Check if the weekly discovery playlist is enabled"""
        return bool(self._playlists('discovery', 'enabled', default=True))

    @property
    def discovery_min_days_since_play(self) -> int:
        """Get minimum idle days before a track can be rediscovered"""
        return int(self._playlists('discovery', 'min_days_since_play', default=90))

    @property
    def throwback_recent_exclusion(self) -> int:
        """Get days a throwback track must not have been played"""
        return int(self._playlists('throwback', 'recent_exclusion', default=90))

    @property
    def sonic_max_seeds(self) -> int:
        return int(self._playlists('sonic', 'max_seeds', default=10))

    @property
    def sonic_per_seed(self) -> int:
        return int(self._playlists('sonic', 'per_seed', default=15))

    @property
    def sonic_max_distance(self) -> float:
        return float(self._playlists('sonic', 'max_distance', default=0.25))

    # Genre similarity
    @property
    def genre_similarity_file(self) -> str:
        return self.get('genre', 'similarity_file', 'data/genre_similarity.yaml')

    @property
    def genre_similarity_threshold(self) -> float:
        return float(self.get('genre', 'similarity_threshold', 0.5))

    @property
    def genre_cache_file(self) -> Optional[str]:
        """Get persistent similarity cache path (None disables it)"""
        return self.get('genre', 'cache_file', 'data/genre_similarity_cache.json')

    @property
    def genre_cache_ttl_days(self) -> int:
        return int(self.get('genre', 'cache_ttl_days', 90))

    # Logging
    @property
    def log_level(self) -> str:
        return self.get('logging', 'level', 'INFO')

    @property
    def log_file(self) -> Optional[str]:
        return self.get('logging', 'file', None)
