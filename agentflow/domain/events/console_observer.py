"""Human-readable progress lines on stderr."""

import click

from agentflow.domain.events.event import WorkflowEvent
from agentflow.domain.events.event_types import WorkflowEventType as E

_STYLES = {
    E.SESSION_STARTED: ("cyan", "▶"),
    E.SESSION_RESUMED: ("cyan", "↻"),
    E.SESSION_COMPLETED: ("green", "✔"),
    E.CRASH_DETECTED: ("yellow", "!"),
    E.PHASE_STARTED: ("blue", "→"),
    E.PHASE_COMPLETED: ("green", "✓"),
    E.PHASE_FAILED: ("red", "✗"),
    E.PHASE_RETRY: ("yellow", "↻"),
    E.GATE_PAUSED: ("magenta", "⏸"),
    E.GATE_APPROVED: ("green", "✓"),
    E.DECISION_ROUTED: ("blue", "⇢"),
    E.WAVE_STARTED: ("blue", "≡"),
    E.WAVE_PLAN_DEGRADED: ("yellow", "!"),
}


def format_event(event: WorkflowEvent) -> str:
    parts = [event.event_type.value]
    if event.phase:
        parts.append(f"phase={event.phase}")
    if event.agent:
        parts.append(f"agent=@{event.agent}")
    if event.attempt is not None:
        parts.append(f"attempt={event.attempt}")
    message = event.metadata.get("message")
    if message:
        parts.append(f"- {message}")
    return " ".join(parts)


class ConsoleObserver:
    """Echoes events to stderr, colored by kind."""

    def __init__(self, color: bool | None = None) -> None:
        self.color = color

    def on_event(self, event: WorkflowEvent) -> None:
        fg, icon = _STYLES.get(event.event_type, ("white", "·"))
        click.echo(
            click.style(f"{icon} {format_event(event)}", fg=fg),
            err=True,
            color=self.color,
        )
