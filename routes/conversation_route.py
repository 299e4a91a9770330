"""FastAPI routes for timed image conversations."""

import logging
from typing import Optional

from fastapi import APIRouter, File, Form, Request, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from controllers.conversation_controller import (
	end_conversation,
	get_conversation,
	send_voice_input,
	start_conversation,
)
from models.errors import ConversationError

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["conversation"])


class StartPayload(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	session_id: str = Field("", alias="sessionId")
	image_url: str = Field("", alias="imageUrl")
	description: Optional[str] = None


class EndPayload(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	session_id: str = Field("", alias="sessionId")


@router.post("/startConversation")
async def start_conversation_route(request: Request, payload: StartPayload):
	try:
		return await start_conversation(request, payload.session_id, payload.image_url, payload.description)
	except ConversationError:
		raise
	except Exception as exc:
		LOGGER.exception("Error starting conversation")
		raise ConversationError("Failed to start conversation") from exc


@router.post("/sendVoiceInput")
async def send_voice_input_route(
	request: Request,
	session_id: str = Form("", alias="sessionId"),
	transcription: str = Form(""),
	audio: Optional[UploadFile] = File(None),
):
	try:
		return await send_voice_input(request, session_id, transcription, audio)
	except ConversationError:
		raise
	except Exception as exc:
		LOGGER.exception("Error processing voice input")
		raise ConversationError("Failed to process voice input") from exc


@router.post("/endConversation")
async def end_conversation_route(request: Request, payload: EndPayload):
	try:
		return await end_conversation(request, payload.session_id)
	except ConversationError:
		raise
	except Exception as exc:
		LOGGER.exception("Error ending conversation")
		raise ConversationError("Failed to end conversation") from exc


@router.get("/conversation/{session_id}")
async def get_conversation_route(request: Request, session_id: str):
	try:
		return await get_conversation(request, session_id)
	except ConversationError:
		raise
	except Exception as exc:
		LOGGER.exception("Error loading conversation")
		raise ConversationError("Failed to load conversation") from exc
