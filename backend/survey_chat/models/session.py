"""Conversation turn and session summary models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from survey_chat.utils.text import clean_text_block


class Role(str, Enum):
    """Turn author."""

    USER = "user"
    ASSISTANT = "assistant"


class InputMode(str, Enum):
    """How the participant produced a user turn."""

    TEXT = "text"
    AUDIO = "audio"

    @classmethod
    def coerce(cls, value: Any) -> "InputMode":
        return cls.AUDIO if value in ("audio", cls.AUDIO) else cls.TEXT


class Turn(BaseModel):
    """One immutable entry of the visible conversation."""

    model_config = ConfigDict(frozen=True)

    role: Role
    text: str
    input_mode: Optional[InputMode] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    # Error bubbles are shown in the conversation but never persisted.
    is_error: bool = False

    @field_validator("text", mode="before")
    @classmethod
    def _normalise_text(cls, value: Any) -> Any:
        return clean_text_block(value) if isinstance(value, str) else value

    @property
    def label(self) -> str:
        return self.role.value.capitalize()


class CompletionSummary(BaseModel):
    """Summary posted once to the embedding page when a session completes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: Literal["chat_complete"] = "chat_complete"
    thread_id: Optional[str] = None
    message_count: int
    user_message_count: int
    duration_seconds: Optional[int] = None
    finished_reason: str
    completion_timestamp: str

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
