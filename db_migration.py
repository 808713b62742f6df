"""
Versioned database migrations.

Migrations are append-only: a released migration is never edited or removed,
new schema changes get the next integer version. Applied versions are recorded
in the schema_migrations table so each one runs exactly once.
"""

import sqlite3
import logging
import sys
from datetime import datetime, timezone
from typing import List, Tuple

logger = logging.getLogger("summary_bot.db_migration")

CREATE_MIGRATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    description TEXT NOT NULL,
    applied_at TIMESTAMP NOT NULL
);
"""

# (version, description, statements)
MIGRATIONS: List[Tuple[int, str, List[str]]] = [
    (
        1,
        "user configs, usage limits, unlimited roles and usage tracking",
        [
            """
            CREATE TABLE IF NOT EXISTS user_configs (
                user_id TEXT NOT NULL,
                guild_id TEXT NOT NULL,
                locale TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (user_id, guild_id)
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS usage_limits (
                guild_id TEXT PRIMARY KEY,
                max_daily_uses INTEGER NOT NULL DEFAULT 10,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS unlimited_roles (
                guild_id TEXT NOT NULL,
                role_id TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (guild_id, role_id)
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS usage_tracking (
                user_id TEXT NOT NULL,
                guild_id TEXT NOT NULL,
                usage_date TEXT NOT NULL,
                usage_count INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (user_id, guild_id, usage_date)
            )
            """,
        ],
    ),
    (
        2,
        "indexes for config and usage lookups",
        [
            "CREATE INDEX IF NOT EXISTS idx_user_configs_guild_id ON user_configs (guild_id)",
            "CREATE INDEX IF NOT EXISTS idx_usage_tracking_guild_date ON usage_tracking (guild_id, usage_date)",
            "CREATE INDEX IF NOT EXISTS idx_usage_tracking_date ON usage_tracking (usage_date)",
        ],
    ),
    (
        3,
        "admin audit log",
        [
            """
            CREATE TABLE IF NOT EXISTS admin_audit_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                action TEXT NOT NULL,
                details TEXT,
                timestamp TIMESTAMP NOT NULL
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_admin_audit_log_guild_id ON admin_audit_log (guild_id)",
        ],
    ),
]


def get_current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version, 0 for a fresh database."""
    conn.execute(CREATE_MIGRATIONS_TABLE)
    row = conn.execute("SELECT MAX(version) FROM schema_migrations").fetchone()
    return row[0] or 0


def apply_migrations(conn: sqlite3.Connection) -> List[int]:
    """
    Apply every migration newer than the recorded schema version.

    Each migration and its schema_migrations row are committed together, so a
    failure leaves the database at the last fully applied version.

    Args:
        conn (sqlite3.Connection): Open connection to the bot database

    Returns:
        List[int]: Versions applied by this call
    """
    current_version = get_current_version(conn)
    conn.commit()
    applied = []

    for version, description, statements in MIGRATIONS:
        if version <= current_version:
            continue

        logger.info(f"Applying migration {version}: {description}")
        try:
            for statement in statements:
                conn.execute(statement)
            conn.execute(
                "INSERT INTO schema_migrations (version, description, applied_at) VALUES (?, ?, ?)",
                (version, description, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            logger.error(f"Migration {version} failed", exc_info=True)
            raise
        applied.append(version)

    if applied:
        logger.info(f"Database migrated to version {applied[-1]}")
    else:
        logger.info(f"Database schema up to date (version {current_version})")

    return applied


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )
    db_path = sys.argv[1] if len(sys.argv) > 1 else "data/bot.db"
    try:
        with sqlite3.connect(db_path) as connection:
            apply_migrations(connection)
        sys.exit(0)
    except sqlite3.Error:
        sys.exit(1)
