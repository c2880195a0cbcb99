"""
Log file setup and history retention.

MoneyVerse keeps two kinds of history on disk: the rotating backend log in
the app-data log directory and the activity feed in the ``activity_logs``
table. Both are pruned to the same retention window at startup.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict

from services.errors import PersistenceError
from services.state_store import StateStore

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "moneyverse.log"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

_HANDLER_NAME = "moneyverse_file"


def configure_file_logging(log_directory: str) -> Path:
    """
    Attach a rotating file handler for the backend log to the root logger.
    Calling it again replaces the previous handler.

    Returns:
        The resolved log directory
    """
    log_dir = Path(log_directory).expanduser().resolve()
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    for handler in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(handler)
        handler.close()

    handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"))
    root.addHandler(handler)
    if root.level > logging.INFO:
        root.setLevel(logging.INFO)
    return log_dir


def cleanup_old_files(directory: str, retention_days: int, pattern: str = f"{LOG_FILE_NAME}*") -> int:
    """Delete files matching ``pattern`` not modified within ``retention_days``."""
    target_dir = Path(directory).expanduser().resolve()
    if not target_dir.is_dir():
        return 0

    cutoff = (datetime.now() - timedelta(days=retention_days)).timestamp()
    deleted = 0
    for path in target_dir.glob(pattern):
        try:
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink()
                deleted += 1
        except OSError as exc:
            logger.debug("Could not prune %s: %s", path, exc)
    return deleted


def apply_retention(store: StateStore, log_directory: str, retention_days: int) -> Dict[str, int]:
    """
    Prune old log files and activity entries.

    Returns:
        Dict with ``log_files`` and ``activity_events`` removed counts
    """
    removed = {"log_files": 0, "activity_events": 0}
    try:
        removed["log_files"] = cleanup_old_files(log_directory, retention_days)
    except OSError as exc:
        logger.warning("Log file pruning skipped: %s", exc)
    try:
        removed["activity_events"] = store.prune_activity(retention_days)
    except PersistenceError as exc:
        logger.warning("Activity pruning skipped: %s", exc)
    if removed["log_files"] or removed["activity_events"]:
        logger.info(
            "Retention (%s days): removed %s log file(s), %s activity event(s)",
            retention_days, removed["log_files"], removed["activity_events"],
        )
    return removed
