"""
Unified logging utilities for playlist-curator.

All entrypoints should call configure_logging() once at startup.
"""
import logging
import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

_logging_configured = False
_run_id: Optional[str] = None
_HANDLER_TAG = "_curator_handler"
_CONSOLE_FMT = '%(asctime)s | %(levelname)-5s | %(name)s | %(message)s'
_CONSOLE_FMT_WITH_RUN_ID = '%(asctime)s | %(levelname)-5s | %(name)s | run_id=%(run_id)s | %(message)s'
_FILE_FMT = '%(asctime)s | %(levelname)-5s | %(name)s | %(funcName)s:%(lineno)d | run_id=%(run_id)s | %(message)s'


class RunIdFilter(logging.Filter):
    """Inject run_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _run_id or "-"
        return True


def set_run_id(run_id: Optional[str]) -> None:
    """Set the run_id stamped onto log records."""
    global _run_id
    _run_id = run_id


def configure_logging(
    level: str = 'INFO',
    log_file: Optional[str] = None,
    file_level: str = 'DEBUG',
    force: bool = False,
    run_id: Optional[str] = None,
    show_run_id: bool = False,
) -> None:
    """
    Configure logging for the whole application.

    Subsequent calls are ignored unless force=True.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path to a log file
        file_level: Log level for file output
        force: Reconfigure even if already configured
        run_id: Optional run identifier injected into log records
        show_run_id: Include run_id in console output

    Environment variable overrides:
        LOG_LEVEL: Override the level parameter
        LOG_FILE: Override the log_file parameter
    """
    global _logging_configured

    if run_id:
        set_run_id(run_id)

    if _logging_configured and not force:
        return

    level = os.getenv('LOG_LEVEL', level).upper()
    if log_file is None:
        log_file = os.getenv('LOG_FILE')

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Only remove handlers this module installed
    for handler in root.handlers[:]:
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)

    root.filters = [f for f in root.filters if not isinstance(f, RunIdFilter)]
    root.addFilter(RunIdFilter())

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level, logging.INFO))
    use_run_id = show_run_id or level == "DEBUG"
    console_handler.setFormatter(logging.Formatter(
        _CONSOLE_FMT_WITH_RUN_ID if use_run_id else _CONSOLE_FMT,
        datefmt='%H:%M:%S',
    ))
    console_handler.addFilter(RunIdFilter())
    setattr(console_handler, _HANDLER_TAG, True)
    root.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(getattr(logging, file_level.upper(), logging.DEBUG))
        file_handler.setFormatter(logging.Formatter(_FILE_FMT, datefmt='%Y-%m-%d %H:%M:%S'))
        file_handler.addFilter(RunIdFilter())
        setattr(file_handler, _HANDLER_TAG, True)
        root.addHandler(file_handler)

    _logging_configured = True

    logger = logging.getLogger(__name__)
    logger.debug(f"Logging configured: level={level}, file={log_file or 'none'}, run_id={_run_id or '-'}")


@contextmanager
def stage_timer(stage_name: str, logger: Optional[logging.Logger] = None):
    """
    Context manager for timing pipeline stages.

    Logs stage start at DEBUG and completion with timing at INFO.

    Usage:
        with stage_timer("Candidate pool"):
            pool = build_candidate_tracks(...)
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    logger.debug(f"{stage_name} starting...")
    start = time.perf_counter()

    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if elapsed < 1:
            logger.info(f"{stage_name} completed in {elapsed*1000:.0f}ms")
        elif elapsed < 60:
            logger.info(f"{stage_name} completed in {elapsed:.1f}s")
        else:
            minutes = int(elapsed // 60)
            logger.info(f"{stage_name} completed in {minutes}m {elapsed % 60:.0f}s")


def format_count(n: int, singular: str, plural: Optional[str] = None) -> str:
    """Format a count as "1 track" or "5 tracks"."""
    if plural is None:
        plural = singular + 's'
    return f"{n:,} {singular if n == 1 else plural}"


def add_logging_args(parser) -> None:
    """Add the standard logging arguments to an argparse parser."""
    group = parser.add_argument_group('logging')
    group.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Set logging level (default: INFO)'
    )
    group.add_argument('--debug', action='store_true', help='Shortcut for --log-level DEBUG')
    group.add_argument('--quiet', action='store_true', help='Shortcut for --log-level WARNING')
    group.add_argument('--log-file', type=str, metavar='PATH', help='Write logs to file')


def resolve_log_level(args) -> str:
    """Resolve the log level from parsed arguments (--debug > --quiet > --log-level)."""
    if getattr(args, 'debug', False):
        return 'DEBUG'
    if getattr(args, 'quiet', False):
        return 'WARNING'
    return getattr(args, 'log_level', 'INFO')
