"""
Database module for the Discord bot.
Handles SQLite persistence for user configs, usage limits, unlimited roles,
usage tracking and the admin audit log.
"""

import sqlite3
import os
import logging
import json
import asyncio
import threading
import time
from datetime import date, datetime, timezone
from typing import Optional, Dict, Any, List, Callable, TypeVar

from db_migration import apply_migrations
from error_handler import StorageError

# Set up logging
logger = logging.getLogger('summary_bot.database')

T = TypeVar('T')

# Database constants
DB_DIRECTORY = "data"
DB_FILE = os.path.join(DB_DIRECTORY, "bot.db")
DEFAULT_MAX_DAILY_USES = 10
BACKUP_PREFIX = "bot_"

# Errors that usually mean the connection is stale or the file is busy
RECONNECTABLE_ERRORS = (sqlite3.OperationalError, sqlite3.ProgrammingError)

UPSERT_USER_CONFIG = """
INSERT INTO user_configs (user_id, guild_id, locale, updated_at)
VALUES (?, ?, ?, CURRENT_TIMESTAMP)
ON CONFLICT(user_id, guild_id)
DO UPDATE SET locale = excluded.locale, updated_at = CURRENT_TIMESTAMP
"""

UPSERT_USAGE_LIMIT = """
INSERT INTO usage_limits (guild_id, max_daily_uses, updated_at)
VALUES (?, ?, CURRENT_TIMESTAMP)
ON CONFLICT(guild_id)
DO UPDATE SET max_daily_uses = excluded.max_daily_uses, updated_at = CURRENT_TIMESTAMP
"""

INCREMENT_USAGE = """
INSERT INTO usage_tracking (user_id, guild_id, usage_date, usage_count, updated_at)
VALUES (?, ?, ?, 1, CURRENT_TIMESTAMP)
ON CONFLICT(user_id, guild_id, usage_date)
DO UPDATE SET usage_count = usage_count + 1, updated_at = CURRENT_TIMESTAMP
"""

INSERT_ADMIN_ACTION = """
INSERT INTO admin_audit_log (guild_id, user_id, action, details, timestamp)
VALUES (?, ?, ?, ?, ?)
"""


class StorageService:
    """
    Owns the bot's SQLite connection.

    One instance is created at startup and handed to every component that
    needs persistence. All work runs in a worker thread (asyncio.to_thread) so
    the event loop never blocks on disk I/O; a lock serialises access to the
    single connection. Operational errors close the connection and the
    operation is retried on a fresh one before StorageError is raised.
    """

    def __init__(
        self,
        db_file: str = DB_FILE,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
        default_max_daily_uses: int = DEFAULT_MAX_DAILY_USES,
    ):
        self.db_file = db_file
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.default_max_daily_uses = default_max_daily_uses
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_file, check_same_thread=False)
        conn.row_factory = sqlite3.Row  # This enables column access by name

        # Set a shorter timeout for better error reporting
        conn.execute("PRAGMA busy_timeout = 5000")  # 5 seconds
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _ensure_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = self._connect()
            logger.debug(f"Opened database connection to {self.db_file}")
        return self._conn

    def _drop_connection(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
        except sqlite3.Error as e:
            logger.debug(f"Ignoring error while closing stale connection: {e}")
        self._conn = None

    def _execute(self, operation: Callable[[sqlite3.Connection], T], description: str) -> T:
        """Run ``operation`` on the shared connection, reconnecting on failure."""
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            with self._lock:
                try:
                    conn = self._ensure_connection()
                    result = operation(conn)
                    conn.commit()
                    return result
                except RECONNECTABLE_ERRORS as e:
                    last_error = e
                    logger.warning(
                        f"Database error during {description} (attempt {attempt}/{self.max_attempts}): {e}"
                    )
                    self._drop_connection()
                except sqlite3.Error as e:
                    if self._conn is not None:
                        self._conn.rollback()
                    logger.error(f"Database error during {description}: {e}", exc_info=True)
                    raise StorageError(f"Database error during {description}", cause=e) from e

            if attempt < self.max_attempts:
                time.sleep(self.retry_delay)

        raise StorageError(
            f"Database operation {description} failed after {self.max_attempts} attempts",
            cause=last_error,
        ) from last_error

    async def _run(self, operation: Callable[[sqlite3.Connection], T], description: str) -> T:
        return await asyncio.to_thread(self._execute, operation, description)

    def initialize(self) -> List[int]:
        """
        Create the data directory and apply pending migrations.

        Called once at startup, before any other component touches storage.

        Returns:
            List[int]: Migration versions applied during this call
        """
        directory = os.path.dirname(self.db_file)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)
            logger.info(f"Created database directory: {directory}")

        applied = self._execute(apply_migrations, "schema migration")
        logger.info(f"Database initialized successfully at {self.db_file}")
        return applied

    def close(self) -> None:
        with self._lock:
            self._drop_connection()

    # ------------------------------------------------------------------
    # User configuration
    # ------------------------------------------------------------------

    async def get_user_locale(self, user_id: str, guild_id: str) -> Optional[str]:
        """
        Get the stored locale preference of a user in a guild.

        Returns:
            Optional[str]: The language tag, or None when the user follows the Discord locale
        """
        def _get(conn):
            row = conn.execute(
                "SELECT locale FROM user_configs WHERE user_id = ? AND guild_id = ?",
                (str(user_id), str(guild_id)),
            ).fetchone()
            if row is None:
                # Rows are created lazily with "use platform locale"
                conn.execute(UPSERT_USER_CONFIG, (str(user_id), str(guild_id), None))
                return None
            return row['locale']

        return await self._run(_get, "get_user_locale")

    async def set_user_locale(self, user_id: str, guild_id: str, locale: Optional[str]) -> None:
        """Store a locale preference; None resets it to the Discord locale."""
        await self._run(
            lambda conn: conn.execute(UPSERT_USER_CONFIG, (str(user_id), str(guild_id), locale)),
            "set_user_locale",
        )

    # ------------------------------------------------------------------
    # Usage limits and unlimited roles
    # ------------------------------------------------------------------

    async def get_max_daily_uses(self, guild_id: str) -> int:
        """Get the daily limit for a guild, falling back to the default when unset."""
        def _get(conn):
            row = conn.execute(
                "SELECT max_daily_uses FROM usage_limits WHERE guild_id = ?",
                (str(guild_id),),
            ).fetchone()
            return row['max_daily_uses'] if row else self.default_max_daily_uses

        return await self._run(_get, "get_max_daily_uses")

    async def set_max_daily_uses(self, guild_id: str, max_daily_uses: int) -> None:
        await self._run(
            lambda conn: conn.execute(UPSERT_USAGE_LIMIT, (str(guild_id), int(max_daily_uses))),
            "set_max_daily_uses",
        )

    async def get_unlimited_roles(self, guild_id: str) -> List[str]:
        def _get(conn):
            rows = conn.execute(
                "SELECT role_id FROM unlimited_roles WHERE guild_id = ? ORDER BY created_at, role_id",
                (str(guild_id),),
            ).fetchall()
            return [row['role_id'] for row in rows]

        return await self._run(_get, "get_unlimited_roles")

    async def add_unlimited_role(self, guild_id: str, role_id: str) -> bool:
        """
        Add a role to the guild's unlimited set.

        Returns:
            bool: True if the role was added, False if it was already present
        """
        def _add(conn):
            cursor = conn.execute(
                "INSERT OR IGNORE INTO unlimited_roles (guild_id, role_id) VALUES (?, ?)",
                (str(guild_id), str(role_id)),
            )
            return cursor.rowcount > 0

        return await self._run(_add, "add_unlimited_role")

    async def remove_unlimited_role(self, guild_id: str, role_id: str) -> bool:
        """
        Remove a role from the guild's unlimited set.

        Returns:
            bool: True if a row was deleted
        """
        def _remove(conn):
            cursor = conn.execute(
                "DELETE FROM unlimited_roles WHERE guild_id = ? AND role_id = ?",
                (str(guild_id), str(role_id)),
            )
            return cursor.rowcount > 0

        return await self._run(_remove, "remove_unlimited_role")

    # ------------------------------------------------------------------
    # Usage tracking
    # ------------------------------------------------------------------

    async def get_usage_count(self, user_id: str, guild_id: str, usage_date: date) -> int:
        def _get(conn):
            row = conn.execute(
                "SELECT usage_count FROM usage_tracking WHERE user_id = ? AND guild_id = ? AND usage_date = ?",
                (str(user_id), str(guild_id), usage_date.isoformat()),
            ).fetchone()
            return row['usage_count'] if row else 0

        return await self._run(_get, "get_usage_count")

    async def increment_usage(self, user_id: str, guild_id: str, usage_date: date) -> None:
        """Upsert the day's row starting at 1, or add 1 to the existing count."""
        await self._run(
            lambda conn: conn.execute(INCREMENT_USAGE, (str(user_id), str(guild_id), usage_date.isoformat())),
            "increment_usage",
        )

    async def get_guild_usage(self, guild_id: str, usage_date: date) -> List[Dict[str, Any]]:
        """Get every user's usage count in a guild for one day, highest first."""
        def _get(conn):
            rows = conn.execute(
                """
                SELECT user_id, usage_count
                FROM usage_tracking
                WHERE guild_id = ? AND usage_date = ?
                ORDER BY usage_count DESC, user_id
                """,
                (str(guild_id), usage_date.isoformat()),
            ).fetchall()
            return [dict(row) for row in rows]

        return await self._run(_get, "get_guild_usage")

    async def delete_usage_older_than(self, cutoff_date: date) -> int:
        """
        Delete usage rows dated strictly before cutoff_date.

        Returns:
            int: Number of rows deleted
        """
        def _delete(conn):
            cursor = conn.execute(
                "DELETE FROM usage_tracking WHERE usage_date < ?",
                (cutoff_date.isoformat(),),
            )
            return cursor.rowcount

        deleted = await self._run(_delete, "delete_usage_older_than")
        logger.info(f"Deleted {deleted} usage rows older than {cutoff_date.isoformat()}")
        return deleted

    # ------------------------------------------------------------------
    # Admin audit log
    # ------------------------------------------------------------------

    async def log_admin_action(
        self,
        guild_id: str,
        user_id: str,
        action: str,
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> None:
        timestamp = timestamp or datetime.now(timezone.utc)
        await self._run(
            lambda conn: conn.execute(
                INSERT_ADMIN_ACTION,
                (
                    str(guild_id),
                    str(user_id),
                    action,
                    json.dumps(details or {}),
                    timestamp.isoformat(),
                ),
            ),
            "log_admin_action",
        )

    async def get_admin_actions(self, guild_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Get the most recent audit entries for a guild, newest first."""
        def _get(conn):
            rows = conn.execute(
                """
                SELECT guild_id, user_id, action, details, timestamp
                FROM admin_audit_log
                WHERE guild_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (str(guild_id), limit),
            ).fetchall()
            actions = []
            for row in rows:
                entry = dict(row)
                entry['details'] = json.loads(entry['details']) if entry['details'] else {}
                actions.append(entry)
            return actions

        return await self._run(_get, "get_admin_actions")

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def _backup_sync(self, backup_dir: str, max_backups: int, now: datetime) -> str:
        if not os.path.exists(backup_dir):
            os.makedirs(backup_dir)
            logger.info(f"Created backup directory: {backup_dir}")

        backup_path = os.path.join(backup_dir, f"{BACKUP_PREFIX}{now.strftime('%Y%m%d_%H%M%S')}.db")

        def _copy(conn):
            target = sqlite3.connect(backup_path)
            try:
                conn.backup(target)
            finally:
                target.close()

        self._execute(_copy, "backup")

        backups = sorted(
            name for name in os.listdir(backup_dir)
            if name.startswith(BACKUP_PREFIX) and name.endswith(".db")
        )
        # Timestamped names sort chronologically, so the oldest come first
        for name in backups[:max(0, len(backups) - max_backups)]:
            os.remove(os.path.join(backup_dir, name))
            logger.info(f"Pruned old database backup: {name}")

        return backup_path

    async def backup(self, backup_dir: str, max_backups: int = 7, now: Optional[datetime] = None) -> str:
        """
        Write a full copy of the database and prune the oldest copies.

        Args:
            backup_dir (str): Directory holding the backups
            max_backups (int): Number of backups to keep
            now (Optional[datetime]): Timestamp used for the file name

        Returns:
            str: Path of the new backup file
        """
        now = now or datetime.now(timezone.utc)
        try:
            path = await asyncio.to_thread(self._backup_sync, backup_dir, max_backups, now)
        except OSError as e:
            logger.error(f"Error writing database backup: {e}", exc_info=True)
            raise StorageError("Database backup failed", cause=e) from e
        logger.info(f"Database backup written to {path}")
        return path
