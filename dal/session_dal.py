"""Async Data Access Layer for conversations and their turns.

Provides SessionDAL with the session store contract on top of
`utils.database_init.AsyncDatabaseInitializer`. Driver errors never leave
this module raw: they become `PersistenceUnavailable`, `Conflict`, or
`SessionNotFound`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Sequence

import aiosqlite

from models.errors import Conflict, PersistenceUnavailable, SessionNotFound
from models.session_models import Session, SessionStatus, Turn, TurnRole
from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)


class SessionDAL:
    """Data access layer for `conversations` and `messages` rows.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _SESSION_COLUMNS = "id, image_url, image_description, start_time, end_time, status"
    _TURN_COLUMNS = "id, conversation_id, role, content, audio_url, created_at"

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer
        self._write_lock = asyncio.Lock()
        self._last_stamp = 0.0

    @asynccontextmanager
    async def _connection(self, action: str) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with self._db.connection() as conn:
                yield conn
        except (aiosqlite.Error, OSError) as exc:
            LOGGER.error("Session store failed to %s: %s", action, exc)
            raise PersistenceUnavailable() from exc

    async def create(self, session: Session) -> Session:
        """Insert a new session row.

        Raises:
            Conflict: If a session with the same id already exists.
        """
        try:
            async with self._connection("create session") as conn:
                await conn.execute(
                    f"INSERT INTO conversations ({self._SESSION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        session.id,
                        session.image_url,
                        session.image_description,
                        session.start_time,
                        session.end_time,
                        session.status.value,
                    ),
                )
                await conn.commit()
        except PersistenceUnavailable as exc:
            if isinstance(exc.__cause__, aiosqlite.IntegrityError):
                raise Conflict(f"Conversation {session.id} already exists") from exc.__cause__
            raise
        return session

    async def get_session(self, session_id: str) -> Session:
        """Return the session for `session_id` or raise SessionNotFound."""
        async with self._connection("load session") as conn:
            cur = await conn.execute(
                f"SELECT {self._SESSION_COLUMNS} FROM conversations WHERE id = ?",
                (session_id,),
            )
            row = await cur.fetchone()
        if row is None:
            raise SessionNotFound(f"Conversation {session_id} not found")
        return self._row_to_session(row)

    async def append_turn(self, turn: Turn) -> Turn:
        """Append a single turn; see `append_turns`."""
        stored = await self.append_turns(turn)
        return stored[0]

    async def append_turns(self, *turns: Turn) -> List[Turn]:
        """Append turns in order, committing each before the next is written.

        Turns from one call are never interleaved with turns from another
        call on the same DAL. `created_at` is stamped at write time.

        Raises:
            SessionNotFound: If a turn references an unknown session.
        """
        async with self._write_lock:
            for turn in turns:
                turn.created_at = self._next_stamp()
                try:
                    async with self._connection("append turn") as conn:
                        await conn.execute(
                            f"INSERT INTO messages ({self._TURN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                            (
                                turn.id,
                                turn.session_id,
                                turn.role.value,
                                turn.content,
                                turn.audio_url,
                                turn.created_at,
                            ),
                        )
                        await conn.commit()
                except PersistenceUnavailable as exc:
                    cause = exc.__cause__
                    if isinstance(cause, aiosqlite.IntegrityError) and "FOREIGN KEY" in str(cause).upper():
                        raise SessionNotFound(f"Conversation {turn.session_id} not found") from cause
                    raise
        return list(turns)

    async def list_turns(self, session_id: str) -> List[Turn]:
        """Return the session's turns in ascending creation order."""
        async with self._connection("list turns") as conn:
            cur = await conn.execute(
                f"SELECT {self._TURN_COLUMNS} FROM messages WHERE conversation_id = ? "
                "ORDER BY created_at ASC, seq ASC",
                (session_id,),
            )
            rows = await cur.fetchall()
        return [self._row_to_turn(r) for r in rows]

    async def update_status(
        self,
        session_id: str,
        status: SessionStatus,
        end_time: Optional[float],
        *,
        expected: Optional[SessionStatus] = None,
    ) -> bool:
        """Set status and end time. Returns True if a row was changed.

        When `expected` is given the update only applies while the row still
        has that status, so concurrent transitions cannot both win.
        """
        sql = "UPDATE conversations SET status = ?, end_time = ? WHERE id = ?"
        params: list = [status.value, end_time, session_id]
        if expected is not None:
            sql += " AND status = ?"
            params.append(expected.value)

        async with self._connection("update session status") as conn:
            await conn.execute(sql, tuple(params))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
        if changed and changed[0] > 0:
            return True
        # Distinguish "no such session" from "status precondition failed".
        await self.get_session(session_id)
        return False

    def _next_stamp(self) -> float:
        stamp = max(time.time(), self._last_stamp)
        self._last_stamp = stamp
        return stamp

    @staticmethod
    def _row_to_session(row: Sequence[object]) -> Session:
        return Session(
            id=row[0],
            image_url=row[1],
            image_description=row[2],
            start_time=row[3],
            end_time=row[4],
            status=SessionStatus(row[5]),
        )

    @staticmethod
    def _row_to_turn(row: Sequence[object]) -> Turn:
        return Turn(
            id=row[0],
            session_id=row[1],
            role=TurnRole(row[2]),
            content=row[3],
            audio_url=row[4],
            created_at=row[5],
        )
