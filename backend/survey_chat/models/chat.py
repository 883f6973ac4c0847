"""Request and response models for the chat turn endpoint."""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from survey_chat.config import settings
from survey_chat.models.session import InputMode
from survey_chat.utils.text import safe_context_value, safe_id, safe_line

THREAD_ID_PREFIX = "thread_"

PARTICIPANT_ID_ALIASES = AliasChoices(
    "participantId", "ParticipantID", "participantID", "ParticipantId", "participant_id"
)


class ChatRequest(BaseModel):
    """Incoming chat turn.

    All accepted aliases and casings are collapsed here so the route only
    ever sees canonical, sanitised values.
    """

    model_config = ConfigDict(extra="ignore")

    message: str = ""
    thread_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("threadId", "ThreadId", "thread_id")
    )
    input_mode: InputMode = Field(
        default=InputMode.TEXT, validation_alias=AliasChoices("inputMode", "input_mode")
    )
    transcript_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("transcriptId", "TranscriptId", "transcript_id"),
    )
    participant_id: Optional[str] = Field(
        default=None, validation_alias=PARTICIPANT_ID_ALIASES
    )
    top_benefit: str = Field(
        default="", validation_alias=AliasChoices("topBenefit", "TopBenefit", "top_benefit")
    )
    top_risk: str = Field(
        default="", validation_alias=AliasChoices("topRisk", "TopRisk", "top_risk")
    )

    @field_validator("message", mode="before")
    @classmethod
    def _message_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("thread_id", mode="before")
    @classmethod
    def _recognised_thread(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and value.startswith(THREAD_ID_PREFIX):
            return value
        return None

    @field_validator("input_mode", mode="before")
    @classmethod
    def _input_mode(cls, value: Any) -> InputMode:
        return InputMode.coerce(value)

    @field_validator("transcript_id", mode="before")
    @classmethod
    def _transcript_id(cls, value: Any) -> Optional[str]:
        return safe_id(value)

    @field_validator("participant_id", mode="before")
    @classmethod
    def _participant_id(cls, value: Any) -> Optional[str]:
        return safe_line(value, settings.header_field_max_length) or None

    @field_validator("top_benefit", "top_risk", mode="before")
    @classmethod
    def _context_value(cls, value: Any) -> str:
        return safe_context_value(value, settings.context_value_max_length)

    def context_values(self) -> dict[str, str]:
        """Non-empty authoritative context values keyed by context name."""
        values = {"top_benefit": self.top_benefit, "top_risk": self.top_risk}
        return {key: value for key, value in values.items() if value}


class ChatResponse(BaseModel):
    """Successful chat turn."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    reply: str
    thread_id: str
    transcript_id: Optional[str] = None
    participant_id: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
