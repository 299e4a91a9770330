"""Typed result of image analysis, validated from untrusted model output."""

from __future__ import annotations

from typing import Any, List, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from models.errors import AnalysisParseError


class ImageAnalysis(BaseModel):
    """Description, conversation starter, and topics for one image."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    description: str = Field(min_length=1)
    conversation_starter: str = Field(alias="conversationStarter", min_length=1)
    suggested_topics: List[str] = Field(alias="suggestedTopics", min_length=1)

    @field_validator("suggested_topics")
    @classmethod
    def _drop_blank_topics(cls, topics: List[str]) -> List[str]:
        cleaned = [topic.strip() for topic in topics if topic and topic.strip()]
        if not cleaned:
            raise ValueError("suggestedTopics must contain at least one non-empty topic")
        return cleaned

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_untrusted(cls, payload: Any) -> "ImageAnalysis":
        """Validate a decoded payload or raise AnalysisParseError.

        Args:
            payload: Whatever the analyzer returned after JSON decoding.
        """
        if not isinstance(payload, Mapping):
            raise AnalysisParseError("Image analysis response was not a JSON object.")
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
            raise AnalysisParseError(f"Image analysis response is missing or has malformed fields: {fields}") from exc
