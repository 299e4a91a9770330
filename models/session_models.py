"""Session domain models for timed image conversations."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
from uuid import uuid4


class SessionStatus(str, Enum):
	ACTIVE = "active"
	COMPLETED = "completed"
	EXPIRED = "expired"

	@property
	def is_terminal(self) -> bool:
		return self is not SessionStatus.ACTIVE


class TurnRole(str, Enum):
	USER = "user"
	ASSISTANT = "assistant"


@dataclass
class Turn:
	"""One message within a session. Never mutated once stored."""

	session_id: str
	role: TurnRole
	content: str
	audio_url: Optional[str] = None
	id: str = field(default_factory=lambda: uuid4().hex)
	created_at: float = field(default_factory=lambda: time.time())

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"sessionId": self.session_id,
			"role": self.role.value,
			"content": self.content,
			"audioUrl": self.audio_url,
			"createdAt": self.created_at,
		}


@dataclass
class Session:
	"""Durable record of one time-boxed conversation about an image."""

	id: str
	image_url: str
	start_time: float = field(default_factory=lambda: time.time())
	status: SessionStatus = SessionStatus.ACTIVE
	end_time: Optional[float] = None
	image_description: Optional[str] = None
	turns: List[Turn] = field(default_factory=list)

	def to_dict(self, include_turns: bool = False) -> dict:
		data = {
			"id": self.id,
			"imageUrl": self.image_url,
			"imageDescription": self.image_description,
			"startTime": self.start_time,
			"endTime": self.end_time,
			"status": self.status.value,
		}
		if include_turns:
			data["turns"] = [turn.to_dict() for turn in self.turns]
		return data


@dataclass
class TurnReply:
	"""Result of a submitted turn: the reply text and its audio, if any."""

	reply_text: str
	reply_audio_url: Optional[str] = None

	def to_dict(self) -> dict:
		data = {"message": self.reply_text}
		if self.reply_audio_url:
			data["audioUrl"] = self.reply_audio_url
		return data
