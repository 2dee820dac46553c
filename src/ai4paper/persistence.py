"""Data paths, atomic JSON snapshots and the key/value settings database."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import tempfile
from contextlib import closing
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir, user_data_dir

from ai4paper.models import APP_NAME

logger = logging.getLogger(__name__)

LIBRARY_FILENAME = "library_store.json"
SETTINGS_DB_FILENAME = "settings.db"
CORRUPT_SUFFIX = ".corrupt"


def get_data_dir() -> Path:
    """Get the directory holding the library snapshot and settings database.

    Uses platformdirs for a cross-platform location:
    - Linux: ~/.local/share/ai4paper
    - macOS: ~/Library/Application Support/ai4paper
    - Windows: %LOCALAPPDATA%/ai4paper/ai4paper
    """
    return Path(user_data_dir(APP_NAME))


def get_config_dir() -> Path:
    """Get the directory holding config.json and debug.log."""
    return Path(user_config_dir(APP_NAME))


# ============================================================================
# Atomic JSON snapshots
# ============================================================================


def write_json_atomic(path: Path, data: Any) -> None:
    """Serialize ``data`` to ``path`` via write-to-tempfile + os.replace().

    Readers either see the previous file or the complete new one. Raises
    OSError (or TypeError/ValueError for unserializable data); the temp file
    is removed on any failure.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix=f".{path.stem}-")
    closed = False
    try:
        os.write(fd, payload)
        os.close(fd)
        closed = True
        os.replace(tmp_path, path)
    except BaseException:
        if not closed:
            os.close(fd)
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def read_json(path: Path) -> Any | None:
    """Read a JSON document, returning None if it is missing or unreadable.

    A file that exists but does not parse is renamed to ``<name>.corrupt``
    so the next write does not destroy the evidence.
    """
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.warning("%s has invalid JSON, starting empty: %s", path.name, e)
        quarantine_file(path)
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s, starting empty: %s", path.name, e)
        return None


def quarantine_file(path: Path) -> None:
    """Move a damaged file aside as ``<name>.corrupt``."""
    try:
        os.replace(path, path.with_name(path.name + CORRUPT_SUFFIX))
    except OSError:
        logger.warning("Could not move aside damaged file %s", path, exc_info=True)


# ============================================================================
# Key/value settings store (SQLite)
# ============================================================================


class SettingsStore:
    """Small persistent key/value store with JSON values.

    Every ``set`` is its own transaction, so independent keys persist
    independently of each other.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    @property
    def path(self) -> Path:
        return self._db_path

    def _init_db(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(sqlite3.connect(str(self._db_path))) as conn, conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS settings ("
                "  key TEXT PRIMARY KEY,"
                "  value TEXT NOT NULL"
                ")"
            )

    def get(self, key: str, default: Any = None) -> Any:
        """Return the decoded value for ``key``, or ``default``."""
        if not self._db_path.exists():
            return default
        try:
            with closing(sqlite3.connect(str(self._db_path))) as conn:
                row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error:
            logger.warning("Failed to load setting %r", key, exc_info=True)
            return default
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("Setting %r holds invalid JSON, using default", key)
            return default

    def set(self, key: str, value: Any) -> bool:
        """Persist ``value`` under ``key``. Returns True on success."""
        try:
            encoded = json.dumps(value, ensure_ascii=False)
            self._init_db()
            with closing(sqlite3.connect(str(self._db_path))) as conn, conn:
                conn.execute(
                    "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                    (key, encoded),
                )
            return True
        except (sqlite3.Error, OSError, TypeError, ValueError):
            logger.warning("Failed to save setting %r", key, exc_info=True)
            return False


__all__ = [
    "CORRUPT_SUFFIX",
    "LIBRARY_FILENAME",
    "SETTINGS_DB_FILENAME",
    "SettingsStore",
    "get_config_dir",
    "get_data_dir",
    "quarantine_file",
    "read_json",
    "write_json_atomic",
]
