"""SQLite storage shared by the feature modules.

One connection for the whole process, guarded by an asyncio.Lock.
Hold ``connection()`` only for synchronous query work and leave the
block before awaiting anything else, in particular network calls.

The ``guild`` table keeps per-community settings; modules add their
own columns with ``add_guild_field`` and their own tables with
``execute_script``.
"""

import asyncio
import re
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import structlog

from ..exceptions import DatabaseError
from ..registry import Module, ModuleRegistry

logger = structlog.get_logger("lpbot.database")

_FIELD_NAME = re.compile(r"^[a-z_]+$")


class Database(Module):
    """SQLite connection behind an asyncio lock.

    Args:
        path: Database file, or ":memory:".
    """

    def __init__(self, path: Any = ":memory:"):
        self.path = str(path)
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = asyncio.Lock()
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS guild (
                id INTEGER PRIMARY KEY
            )
            """
        )
        self._conn.commit()

    @classmethod
    async def construct(cls, modules: ModuleRegistry) -> "Database":
        config = modules.config
        if config is None:
            return cls()
        path: Path = config.database_path
        path.parent.mkdir(parents=True, exist_ok=True)
        db = cls(path)
        logger.info("database_initialized", path=str(path))
        return db

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[sqlite3.Connection]:
        """Hold the lock and yield the connection.

        Commits on clean exit, rolls back if the block raised.
        """
        async with self._lock:
            try:
                yield self._conn
            except Exception:
                self._conn.rollback()
                raise
            else:
                self._conn.commit()

    async def execute_script(self, script: str) -> None:
        """Run DDL, typically ``CREATE TABLE IF NOT EXISTS`` statements."""
        async with self._lock:
            try:
                self._conn.executescript(script)
            except sqlite3.Error as e:
                raise DatabaseError(str(e), operation="script") from e

    def _guild_columns(self) -> set:
        rows = self._conn.execute("PRAGMA table_info(guild)").fetchall()
        return {row["name"] for row in rows}

    async def add_guild_field(self, name: str, declaration: str) -> None:
        """Add a per-community setting column unless it already exists.

        Args:
            name: Column name (lowercase letters and underscores).
            declaration: Column type and constraints, e.g. ``INTEGER``.
        """
        if not _FIELD_NAME.match(name):
            raise DatabaseError(f"Invalid guild field name {name!r}", operation="alter", table="guild")
        async with self._lock:
            if name in self._guild_columns():
                return
            try:
                self._conn.execute(f"ALTER TABLE guild ADD COLUMN {name} {declaration}")
                self._conn.commit()
            except sqlite3.Error as e:
                raise DatabaseError(str(e), operation="alter", table="guild") from e
        logger.debug("guild_field_added", field=name)

    async def get_guild_field(self, guild_id: int, name: str) -> Optional[Any]:
        if not _FIELD_NAME.match(name):
            raise DatabaseError(f"Invalid guild field name {name!r}", operation="query", table="guild")
        async with self._lock:
            try:
                row = self._conn.execute(
                    f"SELECT {name} FROM guild WHERE id = ?", (guild_id,)
                ).fetchone()
            except sqlite3.Error as e:
                raise DatabaseError(str(e), operation="query", table="guild") from e
        return None if row is None else row[0]

    async def set_guild_field(self, guild_id: int, name: str, value: Any) -> None:
        if not _FIELD_NAME.match(name):
            raise DatabaseError(f"Invalid guild field name {name!r}", operation="update", table="guild")
        async with self.connection() as conn:
            try:
                conn.execute(
                    "INSERT INTO guild (id) VALUES (?) ON CONFLICT(id) DO NOTHING",
                    (guild_id,),
                )
                conn.execute(f"UPDATE guild SET {name} = ? WHERE id = ?", (value, guild_id))
            except sqlite3.Error as e:
                raise DatabaseError(str(e), operation="update", table="guild") from e

    async def close(self) -> None:
        async with self._lock:
            self._conn.close()
