"""
Database schema initialization.

Creates the notification tables, their indexes, and the schema version row.
"""

import aiosqlite
from courtside.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates and versions the Courtside schema."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all tables and indexes if they do not exist yet.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        """Create all required database tables."""
        # Pending one-time notifications; a claimed ticket is deleted
        await db.execute("""
            CREATE TABLE IF NOT EXISTS notification_tickets (
                identity TEXT NOT NULL,
                reminder_key TEXT NOT NULL,
                fire_at INTEGER NOT NULL,
                sent INTEGER NOT NULL DEFAULT 0
            )
        """)

        # (identity, reminder_key) pairs that have ever been enqueued
        await db.execute("""
            CREATE TABLE IF NOT EXISTS notification_receipts (
                identity TEXT NOT NULL,
                reminder_key TEXT NOT NULL,
                handled_at INTEGER NOT NULL,
                PRIMARY KEY (identity, reminder_key)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_notification_tickets_key "
            "ON notification_tickets(identity, reminder_key)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_notification_tickets_fire_at "
            "ON notification_tickets(fire_at)"
        )

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
