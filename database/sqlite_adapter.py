"""
SQLite database adapter implementation for the ticket service.
"""
import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import aiosqlite

from database.adapter import DatabaseAdapter, DatabaseError, ConnectionError


logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS tickets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    issuer TEXT NOT NULL,
    owner TEXT NOT NULL,
    subject TEXT NOT NULL,
    content TEXT NOT NULL,
    metadata TEXT NULL,
    importance_level TEXT NOT NULL,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    modified_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tickets_owner_importance_status
    ON tickets(owner, importance_level, status, modified_at);

CREATE INDEX IF NOT EXISTS idx_tickets_modified_at
    ON tickets(modified_at, id);

CREATE TABLE IF NOT EXISTS comments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ticket_id INTEGER NOT NULL REFERENCES tickets(id),
    owner TEXT NOT NULL,
    content TEXT NOT NULL,
    metadata TEXT NULL,
    created_at TEXT NOT NULL,
    modified_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_comments_ticket_id_created_at
    ON comments(ticket_id, created_at);
"""


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite implementation of the DatabaseAdapter interface.

    Connections are opened per operation in autocommit mode, with foreign
    keys enforced. A semaphore bounds how many are open at once; callers
    queue when the pool is exhausted. Transactions are opened explicitly.
    """

    def __init__(self, connection_string: str, **kwargs):
        """
        Initialize SQLite adapter.

        Args:
            connection_string: Path to SQLite database file
            **kwargs: Additional configuration (pool_size, timeout)
        """
        super().__init__(connection_string, **kwargs)
        self.db_path = connection_string
        self.pool_size = kwargs.get('pool_size', 5)
        self.timeout = kwargs.get('timeout', 30.0)
        self._pool: Optional[asyncio.Semaphore] = None
        self._schema_initialized = False

    async def connect(self) -> None:
        """
        Check connectivity and initialize the schema.

        Raises:
            ConnectionError: If connection cannot be established
        """
        try:
            db_path = Path(self.db_path)
            db_path.parent.mkdir(parents=True, exist_ok=True)

            async with aiosqlite.connect(self.db_path, timeout=self.timeout) as conn:
                await conn.execute("SELECT 1")

            if not self._schema_initialized:
                await self._initialize_schema()
                self._schema_initialized = True

            logger.info(f"Connected to SQLite database: {self.db_path}")

        except Exception as e:
            logger.error(f"Failed to connect to SQLite database: {e}")
            raise ConnectionError(f"Failed to connect to SQLite database: {e}")

    async def disconnect(self) -> None:
        """Release resources. Connections are per operation, nothing stays open."""
        self._pool = None
        logger.info("Disconnected from SQLite database")

    async def is_connected(self) -> bool:
        """
        Check if database is accessible.

        Returns:
            bool: True if database is accessible, False otherwise
        """
        try:
            async with aiosqlite.connect(self.db_path, timeout=self.timeout) as conn:
                await conn.execute("SELECT 1")
                return True
        except (sqlite3.Error, OSError):
            return False

    def _semaphore(self) -> asyncio.Semaphore:
        if self._pool is None:
            self._pool = asyncio.Semaphore(self.pool_size)
        return self._pool

    async def _open(self) -> aiosqlite.Connection:
        """Open a configured connection: autocommit, row access by name, foreign keys on."""
        conn = await aiosqlite.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @asynccontextmanager
    async def connection(self):
        async with self._semaphore():
            conn = await self._open()
            try:
                yield conn
            finally:
                await conn.close()

    @asynccontextmanager
    async def transaction(self, readonly: bool = False):
        async with self.connection() as conn:
            # Write transactions hold the write lock from BEGIN
            await conn.execute("BEGIN" if readonly else "BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            else:
                await conn.commit()

    def is_foreign_key_violation(self, error: BaseException) -> bool:
        return (isinstance(error, sqlite3.IntegrityError) and
                getattr(error, 'sqlite_errorcode', None) == sqlite3.SQLITE_CONSTRAINT_FOREIGNKEY)

    async def _initialize_schema(self) -> None:
        """Initialize database schema with tables and indexes."""
        try:
            async with self.connection() as conn:
                await conn.executescript(SCHEMA)
                logger.info("SQLite schema initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize SQLite schema: {e}")
            raise DatabaseError(f"Failed to initialize schema: {e}")
