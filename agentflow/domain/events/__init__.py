"""Workflow event system for observer notifications."""

from agentflow.domain.events.event_types import WorkflowEventType
from agentflow.domain.events.event import WorkflowEvent
from agentflow.domain.events.observer import WorkflowObserver
from agentflow.domain.events.emitter import WorkflowEventEmitter
from agentflow.domain.events.console_observer import ConsoleObserver

__all__ = [
    "WorkflowEventType",
    "WorkflowEvent",
    "WorkflowObserver",
    "WorkflowEventEmitter",
    "ConsoleObserver",
]
