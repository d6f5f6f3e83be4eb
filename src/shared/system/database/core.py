import sqlite3
import os
from contextlib import contextmanager
from typing import Dict, Optional

from src.shared.system.logging import Logger


class DatabaseCore:
    """
    Core Database Connection Manager.
    Handles WAL mode and hands out short-lived sqlite connections.
    One instance per database path, so every repository bound to the same
    file shares a single point of truth.
    """
    _instances: Dict[str, "DatabaseCore"] = {}

    def __new__(cls, db_path: Optional[str] = None):
        if db_path is None:
            from config.settings import Settings
            db_path = Settings.RENT_DB_PATH
        key = os.path.abspath(db_path)
        if key not in cls._instances:
            instance = super(DatabaseCore, cls).__new__(cls)
            instance.db_path = key
            instance._init()
            cls._instances[key] = instance
        return cls._instances[key]

    def _init(self):
        self._ensure_data_dir()
        self._init_wal_mode()

    def _ensure_data_dir(self):
        directory = os.path.dirname(self.db_path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)

    def _init_wal_mode(self):
        """Enable Write-Ahead Logging for concurrency."""
        try:
            with self.cursor(commit=True) as c:
                c.execute("PRAGMA journal_mode=WAL;")
                c.execute("PRAGMA synchronous=NORMAL;")
        except sqlite3.Error as e:
            Logger.warning(f"⚠️ [STORE] Failed to enable WAL mode: {e}")

    def get_connection(self):
        """Get a configured SQLite connection."""
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def cursor(self, commit=False):
        """Context manager for database interaction."""
        conn = self.get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            if commit:
                conn.commit()
        except Exception as e:
            if commit:
                conn.rollback()
            Logger.error(f"❌ [STORE] DB Error: {e}")
            raise
        finally:
            conn.close()
