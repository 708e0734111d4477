# loadwatch/config/logging_config.py

"""Per-run logging for loadwatch.

Every launch writes ``logs/run_<YYYYmmdd_HHMMSS>.log`` at DEBUG and
mirrors WARNING (INFO with ``verbose``) to stderr. Only the newest
``Settings.LOG_RUNS_KEPT`` run logs are kept; a long ``watch`` session
can otherwise leave one file per restart forever.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from loadwatch.config.settings import Settings

_FILE_FORMAT = (
    "%(asctime)s.%(msecs)03d %(levelname)-7s [%(name)s] "
    "%(funcName)s:%(lineno)d %(message)s"
)
_CONSOLE_FORMAT = "%(levelname)-7s [%(name)s] %(message)s"
_DATE_FORMAT = "%H:%M:%S"


def _prune_old_runs(logs_dir: Path, keep: int) -> int:
    """Delete all but the newest *keep* run logs; returns the number removed."""
    runs = sorted(logs_dir.glob("run_*.log"))
    stale = runs[:-keep] if keep > 0 else runs
    removed = 0
    for path in stale:
        try:
            path.unlink()
            removed += 1
        except OSError:
            continue
    return removed


def setup_logging(verbose: bool = False) -> Path:
    """Attach file and console handlers to the ``loadwatch`` logger.

    Calling it again in the same process is a no-op apart from
    returning a fresh path; handlers are never stacked.
    """
    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / f"run_{datetime.now():%Y%m%d_%H%M%S}.log"

    root_logger = logging.getLogger("loadwatch")
    root_logger.setLevel(logging.DEBUG)
    if root_logger.handlers:
        return log_file

    # Leave room for the file about to be created
    removed = _prune_old_runs(logs_dir, Settings.LOG_RUNS_KEPT - 1)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT)
    )
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    for name in Settings.QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.debug(
        "Logging to %s (%d old run logs pruned)", log_file, removed
    )
    return log_file
