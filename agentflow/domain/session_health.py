"""Crash detection and display titles for sessions."""

from datetime import datetime, timezone

from agentflow.domain.constants import DEFAULT_CRASH_MINUTES
from agentflow.domain.models.session import CrashInfo, Session, SessionStatus

_NOT_RUNNING = {
    SessionStatus.COMPLETED,
    SessionStatus.PAUSED,
    SessionStatus.FAILED,
    SessionStatus.IDLE,
}

TITLE_MAX_LEN = 50
TITLE_MIN_LEN = 5


def detect_crashed_session(
    session: Session,
    crash_minutes: int = DEFAULT_CRASH_MINUTES,
    now: datetime | None = None,
) -> CrashInfo | None:
    """Return CrashInfo for a RUNNING session idle for ``crash_minutes`` or more.

    Advisory only: a crashed session is resumed the same way as any other.
    """
    if session.status in _NOT_RUNNING:
        return None

    last_activity = session.last_activity or session.started_at
    now = now or datetime.now(timezone.utc)
    minutes = int((now - last_activity).total_seconds() // 60)

    if minutes < crash_minutes:
        return None

    return CrashInfo(
        session_id=session.session_id,
        last_activity=last_activity,
        minutes_since_activity=minutes,
        last_phase=session.current_phase,
        last_agent=session.current_agent,
    )


def generate_session_title(mission: str, first_phase_name: str | None = None) -> str:
    """Short display title, at most 50 characters."""
    title = mission
    if first_phase_name and len(title) < TITLE_MIN_LEN:
        title = f"{title}: {first_phase_name}"
    if len(title) > TITLE_MAX_LEN:
        title = title[: TITLE_MAX_LEN - 3] + "..."
    return title
