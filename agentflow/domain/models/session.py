from enum import Enum
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SessionStatus(str, Enum):
    IDLE = "idle"              # Created, nothing executed yet
    RUNNING = "running"        # A phase or wave is in flight
    PAUSED = "paused"          # Waiting on a user-approval gate
    COMPLETED = "completed"    # No successor phase resolved
    FAILED = "failed"          # Executor exhausted its retries


class SessionEventType(str, Enum):
    """Entries of the per-session event log."""

    SESSION_START = "SESSION_START"
    SESSION_RESUME = "SESSION_RESUME"
    SESSION_COMPLETE = "SESSION_COMPLETE"
    PHASE_START = "PHASE_START"
    PHASE_COMPLETE = "PHASE_COMPLETE"
    PHASE_FAILED = "PHASE_FAILED"
    GATE_PAUSE = "GATE_PAUSE"
    GATE_APPROVED = "GATE_APPROVED"
    METRICS_UPDATE = "METRICS_UPDATE"


class ContextBracket(str, Enum):
    """Remaining-context tier, from most to least headroom."""

    FRESH = "FRESH"
    MODERATE = "MODERATE"
    DEPLETED = "DEPLETED"
    CRITICAL = "CRITICAL"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionEvent(BaseModel):
    """Immutable record of something that happened in a session."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_utcnow)
    type: SessionEventType
    agent: str
    phase: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class Session(BaseModel):
    """Durable state of one workflow run."""

    # Identity
    session_id: str
    workflow_id: str
    mission_title: str
    title: str = ""

    # Position
    current_agent: str
    current_phase: str | None = None
    status: SessionStatus = SessionStatus.IDLE

    # Timestamps
    started_at: datetime = Field(default_factory=_utcnow)
    last_activity: datetime = Field(default_factory=_utcnow)

    # Context accounting
    prompt_count: int = 0
    context_bracket: ContextBracket = ContextBracket.FRESH
    tokens_used: int = 0
    cost_usd: float = 0.0

    # Ordered, bounded log (see trim_events)
    events: list[SessionEvent] = Field(default_factory=list)

    @field_validator("prompt_count", "tokens_used")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    def touch(self, now: datetime | None = None) -> None:
        self.last_activity = now or _utcnow()

    def append_event(
        self,
        event_type: SessionEventType,
        agent: str,
        phase: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> SessionEvent:
        """Append an event and bump last_activity."""
        event = SessionEvent(
            type=event_type, agent=agent, phase=phase, data=dict(data or {})
        )
        self.events.append(event)
        self.last_activity = event.timestamp
        return event

    def completed_phase_ids(self) -> set[str]:
        """Phase ids with a PHASE_COMPLETE event.

        The event log is the only record of completion; resume relies on it.
        """
        return {
            e.phase
            for e in self.events
            if e.type == SessionEventType.PHASE_COMPLETE and e.phase
        }

    def events_of(self, event_type: SessionEventType) -> list[SessionEvent]:
        return [e for e in self.events if e.type == event_type]

    def trim_events(self, max_events: int) -> None:
        """Keep the first event plus the newest ``max_events - 1``."""
        if max_events < 2:
            raise ValueError("max_events must be >= 2")
        if len(self.events) > max_events:
            self.events = [self.events[0]] + self.events[-(max_events - 1):]


class CrashInfo(BaseModel):
    """A running session whose activity stopped without a terminal event."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    last_activity: datetime
    minutes_since_activity: int
    last_phase: str | None = None
    last_agent: str
