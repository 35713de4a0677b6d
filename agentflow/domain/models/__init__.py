"""Domain models for agentflow."""

from .workflow import GateType, Phase, WorkflowDefinition
from .session import (
    ContextBracket,
    CrashInfo,
    Session,
    SessionEvent,
    SessionEventType,
    SessionStatus,
)
from .decision import Decision
from .executor_result import ExecutorResult
from .prompt_sections import PromptSection, SectionPriority


__all__ = [
    "GateType",
    "Phase",
    "WorkflowDefinition",
    "ContextBracket",
    "CrashInfo",
    "Session",
    "SessionEvent",
    "SessionEventType",
    "SessionStatus",
    "Decision",
    "ExecutorResult",
    "PromptSection",
    "SectionPriority",
]
