# gamedeals/config/logging_config.py

"""Per-run logging for gamedeals.

Every launch writes a ``logs/run_YYYYMMDD_HHMMSS.log`` file that
collects all ``gamedeals.*`` loggers at DEBUG, including the
coordinator's generation and cache decisions and every rate-limit
wait.  Only the newest ``Settings.LOG_KEEP_RUNS`` run files are kept.

Headless commands also echo warnings to stderr.  The TUI passes
``console=False``: Textual owns the terminal while it runs.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from gamedeals.config.settings import Settings

_DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(module)s:%(funcName)s:%(lineno)d | "
    "%(message)s"
)

_CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_RUN_GLOB = "run_*.log"


def _prune_old_runs(logs_dir: Path, keep: int) -> list[Path]:
    """Delete all but the newest *keep* run logs (names sort by time).

    Returns the files that could not be removed.
    """
    runs = sorted(logs_dir.glob(_RUN_GLOB))
    failed: list[Path] = []
    for stale in runs[: max(len(runs) - keep, 0)]:
        try:
            stale.unlink()
        except OSError:
            failed.append(stale)
    return failed


def _current_log_file(root_logger: logging.Logger) -> Path | None:
    for handler in root_logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)
    return None


def setup_logging(console: bool = True) -> Path:
    """Attach the per-run file handler (and optionally stderr) to ``gamedeals``.

    Args:
        console: Also print warnings to stderr.  Off for the TUI.

    Returns:
        Path of this run's log file.  Repeated calls keep the first
        configuration and return the file it writes to.
    """
    root_logger = logging.getLogger("gamedeals")
    root_logger.setLevel(logging.DEBUG)

    existing = _current_log_file(root_logger)
    if existing is not None:
        return existing

    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)
    # Leave room for the file about to be created
    undeletable = _prune_old_runs(logs_dir, Settings.LOG_KEEP_RUNS - 1)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"run_{timestamp}.log"

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT)
    )
    root_logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        root_logger.addHandler(console_handler)

    root_logger.info(
        "Logging initialised, log file: %s (country=%s, budget=%d/%.1fs, policy=%s)",
        log_file,
        Settings.COUNTRY,
        Settings.RATE_LIMIT_MAX_REQUESTS,
        Settings.RATE_LIMIT_WINDOW_SECONDS,
        Settings.RATE_LIMIT_POLICY,
    )
    for path in undeletable:
        root_logger.warning("Could not remove old log file %s", path)

    return log_file
