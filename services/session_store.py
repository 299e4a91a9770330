"""Session store contract and a simple in-memory implementation."""

from __future__ import annotations

import asyncio
import copy
import time
from typing import Dict, List, Optional, Protocol

from models.errors import Conflict, SessionNotFound
from models.session_models import Session, SessionStatus, Turn


class SessionStore(Protocol):
	"""Durable record of sessions and their ordered turns."""

	async def create(self, session: Session) -> Session: ...

	async def get_session(self, session_id: str) -> Session: ...

	async def append_turn(self, turn: Turn) -> Turn: ...

	async def append_turns(self, *turns: Turn) -> List[Turn]: ...

	async def list_turns(self, session_id: str) -> List[Turn]: ...

	async def update_status(
		self,
		session_id: str,
		status: SessionStatus,
		end_time: Optional[float],
		*,
		expected: Optional[SessionStatus] = None,
	) -> bool: ...


class InMemorySessionStore:
	"""Keep sessions and turns in process memory. Used for development and tests."""

	def __init__(self) -> None:
		self._sessions: Dict[str, Session] = {}
		self._turns: Dict[str, List[Turn]] = {}
		self._write_lock = asyncio.Lock()
		self._last_stamp = 0.0

	async def create(self, session: Session) -> Session:
		"""Store a new session, rejecting duplicate ids."""
		if session.id in self._sessions:
			raise Conflict(f"Conversation {session.id} already exists")
		self._sessions[session.id] = copy.copy(session)
		self._turns[session.id] = []
		return session

	async def get_session(self, session_id: str) -> Session:
		"""Return a copy of the session or raise SessionNotFound."""
		state = self._sessions.get(session_id)
		if state is None:
			raise SessionNotFound(f"Conversation {session_id} not found")
		return copy.copy(state)

	async def append_turn(self, turn: Turn) -> Turn:
		stored = await self.append_turns(turn)
		return stored[0]

	async def append_turns(self, *turns: Turn) -> List[Turn]:
		"""Append turns in order under the write lock, stamping creation time."""
		async with self._write_lock:
			for turn in turns:
				if turn.session_id not in self._sessions:
					raise SessionNotFound(f"Conversation {turn.session_id} not found")
				turn.created_at = self._next_stamp()
				self._turns[turn.session_id].append(copy.copy(turn))
				# Yield so concurrent submitters really contend for the lock.
				await asyncio.sleep(0)
		return list(turns)

	async def list_turns(self, session_id: str) -> List[Turn]:
		"""Return the session's turns oldest first; empty if none."""
		turns = self._turns.get(session_id, [])
		return sorted((copy.copy(t) for t in turns), key=lambda t: t.created_at)

	async def update_status(
		self,
		session_id: str,
		status: SessionStatus,
		end_time: Optional[float],
		*,
		expected: Optional[SessionStatus] = None,
	) -> bool:
		"""Set status and end time; honour the optional status precondition."""
		state = self._sessions.get(session_id)
		if state is None:
			raise SessionNotFound(f"Conversation {session_id} not found")
		if expected is not None and state.status is not expected:
			return False
		state.status = status
		state.end_time = end_time
		return True

	def _next_stamp(self) -> float:
		stamp = max(time.time(), self._last_stamp)
		self._last_stamp = stamp
		return stamp
