"""Per-session state owned by one :class:`ChatWidgetSession`."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from survey_chat.models.chat import THREAD_ID_PREFIX
from survey_chat.models.session import Role, Turn


class SessionState(BaseModel):
    """Identifiers, visible conversation and the completion latch."""

    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    participant_id: Optional[str] = None
    thread_id: Optional[str] = None
    # Bumped whenever the service hands back a different thread.
    thread_generation: int = 0
    started_at: Optional[datetime] = None
    completed: bool = False
    turns: list[Turn] = Field(default_factory=list)

    def mark_started(self, now: datetime) -> None:
        if self.started_at is None:
            self.started_at = now

    def record(self, turn: Turn) -> None:
        # Order is append order; wall-clock timestamps may step backwards.
        self.turns.append(turn)

    def pin_thread(self, thread_id: object) -> bool:
        """Adopt a thread id returned by the service; True if it changed."""
        if not isinstance(thread_id, str) or not thread_id.startswith(THREAD_ID_PREFIX):
            return False
        if thread_id == self.thread_id:
            return False
        if self.thread_id is not None:
            self.thread_generation += 1
        self.thread_id = thread_id
        return True

    def mark_completed(self) -> bool:
        """One-way ``active -> completed``; True only for the call that flips it."""
        if self.completed:
            return False
        self.completed = True
        return True

    @property
    def message_count(self) -> int:
        return len(self.turns)

    @property
    def user_message_count(self) -> int:
        return sum(1 for turn in self.turns if turn.role is Role.USER)


class Transcript(BaseModel):
    """Session-side transcript record with a finalize-once latch."""

    transcript_id: Optional[str] = None
    started_at: Optional[str] = None
    entries: list[Turn] = Field(default_factory=list)
    finalized: bool = False

    def assign(self, transcript_id: str, started_at: Optional[str] = None) -> None:
        if self.transcript_id is not None:
            raise RuntimeError(f"transcript already assigned ({self.transcript_id})")
        self.transcript_id = transcript_id
        self.started_at = started_at

    def add(self, turn: Turn) -> None:
        if not turn.is_error:
            self.entries.append(turn)

    def claim_finalize(self) -> bool:
        """Check-and-set the finalize latch; True for the single winning caller."""
        if self.finalized or self.transcript_id is None:
            return False
        self.finalized = True
        return True

    def render(self) -> str:
        """Full ``Role: text`` body used for the finalize write."""
        return "\n\n".join(f"{turn.label}: {turn.text}" for turn in self.entries)
