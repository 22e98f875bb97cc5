"""
Database connection management: one long-lived aiosqlite connection.

SQLite is single-writer. Writers are serialised in-process with a semaphore
inside :meth:`ConnectionManager.transaction`, which also commits on clean exit
and rolls back on error. Reads go straight to the connection; WAL mode lets
them run alongside a writer.

Usage
-----
    await db_connection.open(DB_PATH)

    async with db_connection.transaction() as conn:
        await conn.execute("INSERT ...")

    async with db_connection.read() as conn:
        cursor = await conn.execute("SELECT ...")

    await db_connection.close()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from courtside.util.logger import get_logger

logger = get_logger("database_connection")

# ── Pragmas applied once when the connection is opened ──────────────────────
_PRAGMAS = [
    "PRAGMA journal_mode = WAL",
    "PRAGMA foreign_keys = ON",
    "PRAGMA synchronous = NORMAL",    # safe with WAL; faster than FULL
    "PRAGMA busy_timeout = 5000",     # wait for other processes' write locks
    "PRAGMA temp_store = MEMORY",
]


class ConnectionManager:
    """
    Wrapper around a single aiosqlite connection shared by every repository.

    * Reads:  ``async with read()``; no lock taken.
    * Writes: ``async with transaction()``; one writer at a time.
    """

    def __init__(self) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._write_sem = asyncio.Semaphore(1)
        self._path: Path | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self, path: Path) -> None:
        """
        Open the database and apply pragmas. Call once at startup.

        Args:
            path: Path to the SQLite database file.
        """
        if self._conn is not None:
            logger.warning("[DB CONNECTION] open() called but connection already exists; ignoring")
            return

        self._path = path
        path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(path)
        self._conn.row_factory = aiosqlite.Row

        for pragma in _PRAGMAS:
            await self._conn.execute(pragma)
        await self._conn.commit()

        logger.info("[DB CONNECTION] Opened connection to %s", path)

    async def close(self) -> None:
        """Flush the WAL and close the connection. Safe to call twice."""
        if self._conn is None:
            return

        try:
            await self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            await self._conn.commit()
        except Exception:
            logger.exception("[DB CONNECTION] WAL checkpoint failed during close")
        finally:
            await self._conn.close()
            self._conn = None
            logger.info("[DB CONNECTION] Connection closed")

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        The raw aiosqlite connection.

        Raises:
            RuntimeError: If the connection has not been opened yet.
        """
        if self._conn is None:
            raise RuntimeError(
                "ConnectionManager: connection is not open. "
                "Call await db_connection.open(path) at startup."
            )
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Serialised write transaction: commits on clean exit, rolls back if
        the body raises.

        Raises:
            RuntimeError: If the connection is not open.
        """
        conn = self.connection

        async with self._write_sem:
            try:
                yield conn
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """Symmetric counterpart of :meth:`transaction` for reads; takes no lock."""
        yield self.connection


# Module-level singleton
db_connection = ConnectionManager()
