from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class Decision(BaseModel):
    """Append-only record of a choice made during a session."""

    model_config = ConfigDict(frozen=True)

    id: str  # DEC-001, DEC-002, ...
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    title: str
    context: str
    decision: str
    alternatives: list[str] | None = None
    agent: str
    session_id: str
    phase: str | None = None
