from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from agentflow.domain.events.event_types import WorkflowEventType


class WorkflowEvent(BaseModel):
    """Progress notification from the scheduler.

    Unlike SessionEvent these are not persisted. ``metadata["message"]`` is
    the human-readable detail rendered by ConsoleObserver.
    """

    model_config = ConfigDict(frozen=True)

    event_type: WorkflowEventType
    session_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    phase: str | None = None
    agent: str | None = None
    # Retry number, set on PHASE_RETRY only
    attempt: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
