"""Models for the hosted assistant's threads, messages and runs."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class RunStatus(str, Enum):
    """Lifecycle states reported for a run."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    INCOMPLETE = "incomplete"


ACTIVE_RUN_STATUSES = frozenset(
    {
        RunStatus.QUEUED,
        RunStatus.IN_PROGRESS,
        RunStatus.REQUIRES_ACTION,
        RunStatus.CANCELLING,
    }
)


class _Upstream(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Thread(_Upstream):
    id: str
    metadata: Optional[dict[str, Any]] = None


class RunError(_Upstream):
    code: Optional[str] = None
    message: Optional[str] = None


class Run(_Upstream):
    id: str
    thread_id: str
    status: str
    last_error: Optional[RunError] = None
    metadata: Optional[dict[str, Any]] = None

    @property
    def is_active(self) -> bool:
        # Unknown statuses are treated as terminal.
        return self.status in {status.value for status in ACTIVE_RUN_STATUSES}

    # ``requires_action`` stops polling: nothing here can submit tool outputs.
    @property
    def stops_polling(self) -> bool:
        return not self.is_active or self.status == RunStatus.REQUIRES_ACTION.value


class ThreadMessage(_Upstream):
    id: str
    role: str
    content: list[dict[str, Any]] = Field(default_factory=list)
    run_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    def text(self) -> Optional[str]:
        """Text of the first content part, when it is a text part."""
        if not self.content:
            return None
        first = self.content[0]
        if first.get("type") != "text":
            return None
        return (first.get("text") or {}).get("value")

    def meta(self, key: str) -> Optional[str]:
        return (self.metadata or {}).get(key)
