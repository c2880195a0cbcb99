"""
Database configuration and session management.
Uses SQLAlchemy with SQLite in the per-user app-data directory by default.

Production features:
- Connection pool configuration
- Automated SQLite backup
"""
import logging
import os
import shutil
import sqlite3
from datetime import datetime
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

from config.paths import default_backup_directory, default_database_url

logger = logging.getLogger(__name__)

# Database URL configuration
# Default to app-data SQLite location for standalone runtime.
DATABASE_URL = os.getenv("DATABASE_URL", default_database_url())

# For SQLite, enable check_same_thread=False: the price scheduler thread and
# request handlers share the engine.
connect_args = {}
pool_kwargs = {}
if DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False
    pool_kwargs["pool_pre_ping"] = True
else:
    pool_kwargs.update({
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
    })

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
    echo=os.getenv("SQL_ECHO", "false").lower() == "true",
    **pool_kwargs,
)

# Enable WAL mode for SQLite on first connect
if DATABASE_URL.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def _set_sqlite_wal_mode(dbapi_conn, _connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative models
Base = declarative_base()


def init_db() -> None:
    """
    Create the schema. The key-value layout never needs migrations: absent
    records fall back to defaults when loaded.
    """
    from storage import models  # noqa: F401  # Import to register models
    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ready (%s)", engine.url.render_as_string(hide_password=True))


def backup_sqlite_database(backup_dir: str | None = None, keep: int = 5) -> str:
    """
    Create a timestamped backup of the SQLite database file.

    Args:
        backup_dir: Directory to store backups
        keep: Number of most recent backups to retain

    Returns:
        Path to the backup file

    Raises:
        RuntimeError: If the database is not SQLite or backup fails
    """
    if not DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("Backup is only supported for SQLite databases")

    db_path = Path(DATABASE_URL.replace("sqlite:///", "")).resolve()
    if not db_path.exists():
        raise RuntimeError(f"Database file not found: {db_path}")

    if backup_dir is None:
        backup_path = default_backup_directory()
    else:
        backup_path = Path(backup_dir).resolve()
    backup_path.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_file = backup_path / f"moneyverse_{timestamp}.db"

    # Use SQLite's built-in backup via a raw connection to ensure consistency
    try:
        source = sqlite3.connect(str(db_path))
        dest = sqlite3.connect(str(backup_file))
        try:
            source.backup(dest)
            logger.info("Database backed up to %s", backup_file)
        finally:
            dest.close()
            source.close()
    except sqlite3.Error as exc:
        try:
            shutil.copy2(str(db_path), str(backup_file))
            logger.info("Database copied to %s (fallback)", backup_file)
        except OSError:
            raise RuntimeError(f"Database backup failed: {exc}") from exc

    backups = sorted(backup_path.glob("moneyverse_*.db"), key=lambda p: p.stat().st_mtime, reverse=True)
    for old_backup in backups[keep:]:
        try:
            old_backup.unlink()
            logger.debug("Removed old backup: %s", old_backup)
        except OSError:
            logger.debug("Could not remove old backup: %s", old_backup)

    return str(backup_file)
