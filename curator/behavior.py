"""
Behavior Tracker - listening behavior signals used to tune exploration.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Optional

from curator.library_db import to_timestamp

logger = logging.getLogger(__name__)


class LocalBehaviorTracker:
    """Skip rate and library size read from the local library database."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get_recent_skip_rate(self, window_days: int = 7, now: Optional[datetime] = None) -> float:
        """
        skips / (skips + completions) over the last window_days.

        Returns 0.0 when nothing was played in the window.
        """
        now = now or datetime.now()
        row = self.conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(skipped), 0) FROM play_history WHERE viewed_at >= ?",
            (to_timestamp(now - timedelta(days=window_days)),),
        ).fetchone()
        total, skips = row[0], row[1]
        if not total:
            return 0.0
        rate = skips / total
        logger.debug(f"Skip rate over {window_days} days: {rate:.2f} ({skips}/{total})")
        return rate

    def get_total_library_size(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM tracks").fetchone()[0]
