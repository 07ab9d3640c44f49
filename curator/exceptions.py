"""
Exception types raised by the curator engine.

Configuration problems surface at startup as ConfigurationError subclasses.
Generation failures for a single window raise PlaylistGenerationError; batch
runs collect those and raise BatchGenerationError once every window was tried.
"""
from typing import Dict, Optional


class ConfigurationError(ValueError):
    """Raised when settings, weight tables or constraints are malformed."""
    pass


class UnknownStrategyError(ConfigurationError):
    """Raised when a scoring strategy identifier is not registered."""

    def __init__(self, strategy_id: str):
        self.strategy_id = strategy_id
        super().__init__(f"Unknown scoring strategy: {strategy_id!r}")


class InvalidConstraintsError(ConfigurationError):
    """Raised when selection constraints are outside their valid ranges."""
    pass


class PlaylistGenerationError(RuntimeError):
    """Raised when a playlist for one window could not be produced."""

    def __init__(self, message: str, window: Optional[str] = None):
        self.window = window
        super().__init__(message)


class BatchGenerationError(PlaylistGenerationError):
    """
    Raised after a batch run when one or more windows failed.

    Attributes:
        results: window -> RunReport for successes, or the exception for failures
    """

    def __init__(self, results: Dict[str, object]):
        self.results = results
        failed = [window for window, outcome in results.items() if isinstance(outcome, Exception)]
        self.failed_windows = failed
        details = "; ".join(f"{window}: {results[window]}" for window in failed)
        super().__init__(f"{len(failed)} of {len(results)} playlists failed ({details})")


class CancellationError(Exception):
    """Raised when a run is cancelled."""
    pass
