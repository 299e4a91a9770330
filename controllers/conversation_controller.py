"""Controllers for conversation lifecycle requests."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Request, UploadFile

from models.errors import ConversationError
from services.session_manager import ConversationSessionManager
from utils.media_validation import read_audio_upload


def get_session_manager(request: Request) -> ConversationSessionManager:
	"""Retrieve the shared session manager from the app state."""
	manager = getattr(request.app.state, "session_manager", None)
	if manager is None:
		raise ConversationError("Conversation service not initialized.")
	return manager


def _ok(data: Any) -> Dict[str, Any]:
	return {"success": True, "data": data}


async def start_conversation(
	request: Request, session_id: str, image_url: str, description: Optional[str] = None
) -> Dict[str, Any]:
	"""Create a new active conversation for the client-chosen id."""
	manager = get_session_manager(request)
	session = await manager.start_session(session_id, image_url, description)
	return _ok({"sessionId": session.id})


async def send_voice_input(
	request: Request, session_id: str, transcription: str, audio: Optional[UploadFile] = None
) -> Dict[str, Any]:
	"""Validate the recording, then answer the transcribed message."""
	manager = get_session_manager(request)
	# The recording is validated but not kept; the transcription carries the turn.
	await read_audio_upload(audio, request.app.state.settings.max_audio_bytes)
	reply = await manager.submit_turn(session_id, transcription)
	return _ok(reply.to_dict())


async def end_conversation(request: Request, session_id: str) -> Dict[str, Any]:
	"""Complete an active conversation."""
	manager = get_session_manager(request)
	session = await manager.end_session(session_id)
	return _ok({"sessionId": session.id, "status": session.status.value})


async def get_conversation(request: Request, session_id: str) -> Dict[str, Any]:
	"""Return a conversation and its turns, oldest first."""
	manager = get_session_manager(request)
	session = await manager.get_history(session_id)
	return _ok(session.to_dict(include_turns=True))
