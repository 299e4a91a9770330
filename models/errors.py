"""Error taxonomy shared by the session manager, stores, and HTTP layer.

Every error carries the HTTP status it maps to and a stable public message.
The message is what clients see; exception details stay in the logs.
"""

from __future__ import annotations

from typing import Optional


class ConversationError(Exception):
    """Base class for all errors the service translates for callers."""

    status_code = 500
    public_message = "Internal server error. Please try again later."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class InvalidRequest(ConversationError):
    status_code = 400
    public_message = "Invalid request."


class PayloadTooLarge(ConversationError):
    status_code = 413
    public_message = "File too large."


class SessionNotFound(ConversationError):
    status_code = 404
    public_message = "Conversation not found."


class InvalidTransition(ConversationError):
    """The session is not in a state that allows the requested operation."""

    status_code = 409
    public_message = "Conversation is no longer active."


class AnalysisUnavailable(ConversationError):
    status_code = 502
    public_message = "AI service temporarily unavailable. Please try again."


class AnalysisParseError(AnalysisUnavailable):
    """The analyzer answered, but not with the three required fields."""


class GenerationUnavailable(ConversationError):
    status_code = 502
    public_message = "AI service temporarily unavailable. Please try again."


class PersistenceUnavailable(ConversationError):
    status_code = 503
    public_message = "Database service temporarily unavailable. Please try again."


class Conflict(PersistenceUnavailable):
    status_code = 409
    public_message = "A conversation with this id already exists."


class SynthesisFailed(ConversationError):
    """Speech synthesis or audio upload failed. Logged only, never returned."""

    public_message = "Failed to convert text to speech."
