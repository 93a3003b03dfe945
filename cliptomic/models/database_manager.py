"""
Database Manager for the Cliptomic settings store.

Persists flat key/value preferences in a per-user SQLite file.
"""

import asyncio
import logging
import os
import sqlite3
from typing import Any, Dict, Optional

from cliptomic import DEFAULT_DATABASE_NAME


class DatabaseError(Exception):
    """Base exception for database operations."""
    pass


class _AsyncConnection:
    """Async context wrapper around a short-lived sqlite3 connection."""

    def __init__(self, db_path: str, logger: logging.Logger):
        self.db_path = db_path
        self.logger = logger
        self.conn: Optional[sqlite3.Connection] = None

    async def __aenter__(self):
        try:
            self.conn = sqlite3.connect(self.db_path)
            return self
        except Exception as e:
            self.logger.error("Failed to connect to database: %s", e)
            raise DatabaseError(f"Database connection failed: {e}") from e

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.conn:
            try:
                if exc_type is None:
                    self.conn.commit()
                else:
                    self.conn.rollback()
            finally:
                self.conn.close()

    async def execute(self, sql: str, params=None):
        """Execute SQL statement."""
        if self.conn is None:
            raise DatabaseError("No database connection")
        try:
            return self.conn.execute(sql, params or ())
        except Exception as e:
            self.logger.error("SQL execution failed: %s, error: %s", sql, e)
            raise DatabaseError(f"SQL execution failed: {e}") from e


class DatabaseManager:
    """
    Manages the SQLite key/value store backing user settings.

    Every write is its own transaction, so concurrent writers of different
    keys never interfere and the last write of a key wins.
    """

    def __init__(self, db_path: Optional[str] = None, logger=None):
        """
        Initialize DatabaseManager.

        Args:
            db_path: Path to SQLite database file
            logger: Optional logger instance
        """
        self.db_path = db_path or DEFAULT_DATABASE_NAME
        self.logger = logger or logging.getLogger(__name__)
        self._init_lock = asyncio.Lock()
        self._initialized = False

        db_dir = os.path.dirname(os.path.abspath(self.db_path))
        os.makedirs(db_dir, exist_ok=True)

    async def initialize_database(self) -> None:
        """Create the settings table if needed."""
        async with self._init_lock:
            if self._initialized:
                return

            try:
                async with self._get_connection() as conn:
                    await conn.execute("""
                        CREATE TABLE IF NOT EXISTS settings (
                            key TEXT PRIMARY KEY,
                            value TEXT NOT NULL,
                            type TEXT DEFAULT 'string',
                            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                        )
                    """)

                self._initialized = True
                self.logger.info("Database initialized: %s", self.db_path)

            except Exception as e:
                self.logger.error("Failed to initialize database: %s", e)
                raise DatabaseError(f"Database initialization failed: {e}") from e

    def _get_connection(self) -> _AsyncConnection:
        """Get async database connection wrapper."""
        return _AsyncConnection(self.db_path, self.logger)

    @staticmethod
    def _decode(value_str: str, value_type: str) -> Any:
        if value_type == 'bool':
            return value_str.lower() == 'true'
        elif value_type == 'int':
            return int(value_str)
        return value_str

    @staticmethod
    def _encode(value: Any) -> tuple:
        if isinstance(value, bool):
            return str(value).lower(), 'bool'
        elif isinstance(value, int):
            return str(value), 'int'
        return str(value), 'string'

    async def set_setting(self, key: str, value: Any) -> bool:
        """
        Set a setting value.

        Args:
            key: Setting key
            value: Setting value (str, bool or int)

        Returns:
            True if set successfully
        """
        if not self._initialized:
            await self.initialize_database()

        try:
            value_str, value_type = self._encode(value)

            async with self._get_connection() as conn:
                await conn.execute("""
                    INSERT OR REPLACE INTO settings (key, value, type, updated_at)
                    VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                """, (key, value_str, value_type))

            return True

        except Exception as e:
            self.logger.error("Failed to set setting %s: %s", key, e)
            return False

    async def get_all_settings(self) -> Dict[str, Any]:
        """
        Get all settings as a dictionary.

        Returns:
            Dictionary of all settings
        """
        if not self._initialized:
            await self.initialize_database()

        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute("SELECT key, value, type FROM settings")
                rows = cursor.fetchall()

            return {key: self._decode(value_str, value_type) for key, value_str, value_type in rows}

        except Exception as e:
            self.logger.error("Failed to get all settings: %s", e)
            return {}

    async def clear_all_settings(self) -> bool:
        """
        Clear all settings from the database.

        Returns:
            True if cleared successfully
        """
        if not self._initialized:
            await self.initialize_database()

        try:
            async with self._get_connection() as conn:
                await conn.execute("DELETE FROM settings")
            return True

        except Exception as e:
            self.logger.error("Failed to clear all settings: %s", e)
            return False

    async def close(self) -> None:
        """Reset state; connections are opened per operation."""
        self._initialized = False
        self.logger.debug("Database manager closed")
