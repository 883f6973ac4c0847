"""Request and response models for the transcript lifecycle endpoints."""

from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from survey_chat.config import settings
from survey_chat.models.chat import PARTICIPANT_ID_ALIASES
from survey_chat.models.session import Role
from survey_chat.utils.text import safe_id, safe_iso_date, safe_line

_ROLE_ALIASES = {
    "user": Role.USER,
    "you": Role.USER,
    "assistant": Role.ASSISTANT,
    "ai": Role.ASSISTANT,
    "bot": Role.ASSISTANT,
}


def normalise_role(value: Any) -> Optional[Role]:
    """Map the accepted role spellings onto :class:`Role`."""
    if not isinstance(value, str):
        return None
    return _ROLE_ALIASES.get(value.strip().lower())


def _header_line(value: Any) -> Optional[str]:
    return safe_line(value, settings.header_field_max_length) or None


class TranscriptStartRequest(BaseModel):
    """Optional identifiers recorded in a new transcript header."""

    model_config = ConfigDict(extra="ignore")

    participant_id: Optional[str] = Field(default=None, validation_alias=PARTICIPANT_ID_ALIASES)
    prolific_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("prolificId", "ProlificId", "prolific_id")
    )
    thread_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("threadId", "ThreadId", "thread_id")
    )
    started_at: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("startedAt", "started_at")
    )

    @field_validator("participant_id", "prolific_id", "thread_id", mode="before")
    @classmethod
    def _single_line(cls, value: Any) -> Optional[str]:
        return _header_line(value)

    @field_validator("started_at", mode="before")
    @classmethod
    def _iso_date(cls, value: Any) -> Optional[str]:
        return safe_iso_date(value)

    def merged_with(self, fallback: "TranscriptStartRequest") -> "TranscriptStartRequest":
        """Fill unset fields from a lower-priority source (e.g. query params)."""
        data = {
            name: getattr(self, name) or getattr(fallback, name)
            for name in type(self).model_fields
        }
        return type(self).model_construct(**data)


class TranscriptStartResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ok: bool = True
    transcript_id: str
    started_at: str
    path: str
    participant_id: Optional[str] = None
    prolific_id: Optional[str] = None
    thread_id: Optional[str] = None


class TranscriptWriteRequest(BaseModel):
    """Append or finalize request.

    ``metadata`` is kept verbatim; it only needs to be a JSON object.
    """

    model_config = ConfigDict(extra="ignore")

    transcript_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("transcriptId", "TranscriptId", "transcript_id"),
    )
    mode: Literal["append", "finalize"] = "append"
    participant_id: Optional[str] = Field(default=None, validation_alias=PARTICIPANT_ID_ALIASES)
    metadata: Optional[dict[str, Any]] = None
    full_text: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("fullText", "full_text")
    )
    started_at: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("startedAt", "started_at")
    )
    line: Optional[str] = None
    role: Optional[str] = None
    text: Optional[str] = None
    ts: Optional[str] = None

    @field_validator("transcript_id", mode="before")
    @classmethod
    def _transcript_id(cls, value: Any) -> Optional[str]:
        return safe_id(value)

    @field_validator("full_text", "line", "role", "text", "ts", mode="before")
    @classmethod
    def _strings_only(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) and value else None

    @field_validator("mode", mode="before")
    @classmethod
    def _mode(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip().lower() == "finalize":
            return "finalize"
        return "append"

    @field_validator("participant_id", mode="before")
    @classmethod
    def _participant(cls, value: Any) -> Optional[str]:
        return _header_line(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _plain_object(cls, value: Any) -> Optional[dict[str, Any]]:
        return value if isinstance(value, dict) else None

    @field_validator("started_at", mode="before")
    @classmethod
    def _iso_date(cls, value: Any) -> Optional[str]:
        return safe_iso_date(value)


class TranscriptWriteResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ok: bool = True
    skipped: bool = False
    mode: Optional[Literal["append", "finalize"]] = None
    participant_id_included: bool = False
    metadata_included: bool = False
