"""
Persistent storage for deferred one-time notifications.

Timestamps are stored as INTEGER unix seconds (UTC) so due-time comparisons
are plain integer comparisons.

The two concurrency guarantees of the scheduler live in SQL, not in Python:

* ``insert_if_absent`` relies on the unique index over
  ``(identity, reminder_key)``; a second insert is ignored.
* ``claim_due`` deletes and returns due rows in one statement, so a row
  handed to one caller is gone for every other caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

import aiosqlite

from courtside.util.logger import get_logger

logger = get_logger("notification_ticket_repo")


@dataclass(frozen=True)
class NotificationTicket:
    """A single row from the ``notification_tickets`` table."""
    identity: str
    reminder_key: str
    fire_at: int   # unix seconds (UTC)
    sent: bool = False


class NotificationTicketRepo:
    """Low-level SQL for ``notification_tickets`` and ``notification_receipts``."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def insert_if_absent(
        conn: aiosqlite.Connection,
        identity: str,
        reminder_key: str,
        fire_at: int,
    ) -> bool:
        """Insert an unsent ticket unless one exists. Returns True if a row was inserted."""
        cursor = await conn.execute(
            """
            INSERT INTO notification_tickets (identity, reminder_key, fire_at, sent)
            VALUES (?, ?, ?, 0)
            ON CONFLICT(identity, reminder_key) DO NOTHING
            """,
            (str(identity), reminder_key, int(fire_at)),
        )
        return cursor.rowcount == 1

    @staticmethod
    async def mark_handled(
        conn: aiosqlite.Connection,
        identity: str,
        reminder_key: str,
        handled_at: int,
    ) -> bool:
        """Record that ``(identity, reminder_key)`` has been enqueued. Returns False if it already was."""
        cursor = await conn.execute(
            "INSERT OR IGNORE INTO notification_receipts (identity, reminder_key, handled_at) "
            "VALUES (?, ?, ?)",
            (str(identity), reminder_key, int(handled_at)),
        )
        return cursor.rowcount == 1

    @staticmethod
    async def claim_due(
        conn: aiosqlite.Connection,
        now: int,
    ) -> List[NotificationTicket]:
        """Delete every unsent ticket with ``fire_at <= now`` and return the deleted rows."""
        cursor = await conn.execute(
            """
            DELETE FROM notification_tickets
            WHERE fire_at <= ? AND sent = 0
            RETURNING identity, reminder_key, fire_at, sent
            """,
            (int(now),),
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [
            NotificationTicket(
                identity=str(row[0]),
                reminder_key=row[1],
                fire_at=row[2],
                sent=bool(row[3]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def is_known(
        conn: aiosqlite.Connection,
        identity: str,
        reminder_key: str,
    ) -> bool:
        """True if a ticket is pending or the key was already handled for this identity."""
        cursor = await conn.execute(
            """
            SELECT 1 FROM notification_tickets WHERE identity = ? AND reminder_key = ?
            UNION ALL
            SELECT 1 FROM notification_receipts WHERE identity = ? AND reminder_key = ?
            LIMIT 1
            """,
            (str(identity), reminder_key, str(identity), reminder_key),
        )
        return await cursor.fetchone() is not None

    @staticmethod
    async def get_pending(conn: aiosqlite.Connection) -> List[NotificationTicket]:
        """Return every pending ticket ordered by fire time."""
        cursor = await conn.execute(
            "SELECT identity, reminder_key, fire_at, sent FROM notification_tickets ORDER BY fire_at"
        )
        rows = await cursor.fetchall()
        return [
            NotificationTicket(identity=str(row[0]), reminder_key=row[1], fire_at=row[2], sent=bool(row[3]))
            for row in rows
        ]


# Module-level singleton
ticket_storage = NotificationTicketRepo()
