"""Handoff document written whenever a session pauses or fails.

The handoff (``.agentflow/state/.handoff.md``) tells the next agent or
operator what was done, what is left and how to resume. A new pause or
failure overwrites it.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path

from agentflow.domain.constants import (
    AGENTFLOW_DIRNAME,
    COMPILED_DIRNAME,
    COMPILED_PROMPT_SUFFIX,
    HANDOFF_FILENAME,
    STATE_DIRNAME,
)
from agentflow.domain.models.session import Session, SessionEvent, SessionEventType
from agentflow.domain.models.workflow import WorkflowDefinition
from agentflow.domain.persistence.atomic_fs import atomic_write

logger = logging.getLogger(__name__)


def handoff_path(agentflow_dir: Path) -> Path:
    return agentflow_dir / STATE_DIRNAME / HANDOFF_FILENAME


def format_duration(start: datetime, end: datetime) -> str:
    """'45s' under a minute, else '1m 5s'."""
    secs = int((end - start).total_seconds())
    if secs < 60:
        return f"{secs}s"
    return f"{secs // 60}m {secs % 60}s"


def _first_event(events: list[SessionEvent], event_type: SessionEventType, phase_id: str) -> SessionEvent | None:
    return next((e for e in events if e.type == event_type and e.phase == phase_id), None)


def _latest_compiled_prompt(agentflow_dir: Path) -> str | None:
    compiled_dir = agentflow_dir / COMPILED_DIRNAME
    if not compiled_dir.is_dir():
        return None
    names = sorted(
        (p.name for p in compiled_dir.glob(f"*{COMPILED_PROMPT_SUFFIX}")),
        reverse=True,
    )
    return names[0] if names else None


def render_handoff(
    session: Session,
    workflow: WorkflowDefinition,
    agentflow_dir: Path,
    reason: str = "paused",
    now: datetime | None = None,
) -> str:
    now = now or datetime.now(timezone.utc)
    events = session.events
    completed_ids = session.completed_phase_ids()

    completed_lines = []
    for phase in workflow.phases:
        if phase.id not in completed_ids:
            continue
        start = _first_event(events, SessionEventType.PHASE_START, phase.id)
        end = _first_event(events, SessionEventType.PHASE_COMPLETE, phase.id)
        duration = f" — {format_duration(start.timestamp, end.timestamp)}" if start and end else ""
        completed_lines.append(f"- [x] {phase.id} (by @{phase.agent}){duration}")

    remaining_lines = [
        f"- [ ] {p.name} (by @{p.agent})"
        for p in workflow.phases
        if p.id not in completed_ids
    ]

    current = workflow.get_phase(session.current_phase) if session.current_phase else None
    if current:
        next_action = (
            f'Resume phase "{current.name}" with agent @{current.agent}, '
            f"task: {current.task}."
        )
        latest = _latest_compiled_prompt(agentflow_dir)
        if latest:
            next_action += (
                f" Read the compiled prompt at "
                f"`{AGENTFLOW_DIRNAME}/{COMPILED_DIRNAME}/{latest}`."
            )
    else:
        next_action = "All phases completed."

    return f"""---
session_id: {session.session_id}
workflow: {session.workflow_id}
phase: {session.current_phase}
agent: {session.current_agent}
timestamp: {now.isoformat()}
reason: {reason}
---

# Session Handoff

## Completed
{chr(10).join(completed_lines) if completed_lines else "(none yet)"}

## Current
- Phase: {session.current_phase} (by @{session.current_agent})
- Status: {reason}
- Mission: {session.mission_title}

## Remaining
{chr(10).join(remaining_lines) if remaining_lines else "(all phases completed)"}

## Metrics
- Tokens: {session.tokens_used}
- Cost: ${session.cost_usd:.4f}
- Events: {len(events)}

## Next Action
{next_action}
"""


def generate_handoff(
    session: Session,
    workflow: WorkflowDefinition,
    agentflow_dir: Path,
    reason: str = "paused",
    now: datetime | None = None,
) -> Path:
    """Write the handoff document, replacing any previous one."""
    path = handoff_path(agentflow_dir)
    atomic_write(path, render_handoff(session, workflow, agentflow_dir, reason, now))
    logger.debug(f"Handoff written to {path} ({reason})")
    return path


def consume_handoff(agentflow_dir: Path) -> str | None:
    """Current handoff text, or None when there is none."""
    try:
        return handoff_path(agentflow_dir).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def delete_handoff(agentflow_dir: Path) -> None:
    handoff_path(agentflow_dir).unlink(missing_ok=True)
