"""Workflow event types for observer notifications."""

from enum import Enum


class WorkflowEventType(str, Enum):
    """Typed scheduler events for progress reporting."""

    # Session lifecycle
    SESSION_STARTED = "session_started"
    SESSION_RESUMED = "session_resumed"
    SESSION_COMPLETED = "session_completed"
    CRASH_DETECTED = "crash_detected"

    # Phase lifecycle
    PHASE_STARTED = "phase_started"
    PHASE_COMPLETED = "phase_completed"
    PHASE_FAILED = "phase_failed"
    PHASE_RETRY = "phase_retry"

    # Approval gates
    GATE_PAUSED = "gate_paused"
    GATE_APPROVED = "gate_approved"

    # Routing
    DECISION_ROUTED = "decision_routed"
    WAVE_STARTED = "wave_started"
    WAVE_PLAN_DEGRADED = "wave_plan_degraded"
