import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from agentflow.domain.constants import (
    DASHBOARD_FILENAME,
    DEFAULT_MAX_EVENTS,
    DEFAULT_STALE_HOURS,
    DEFAULT_STATE_ROOT,
    SESSION_SUFFIX,
    SESSIONS_DIRNAME,
)
from agentflow.domain.models.session import Session, SessionStatus
from agentflow.domain.persistence.atomic_fs import atomic_write, file_lock

logger = logging.getLogger(__name__)

_TERMINAL = {SessionStatus.COMPLETED.value, SessionStatus.FAILED.value}


class SessionStore:
    """Handles persistence of workflow sessions and the dashboard projection"""

    def __init__(
        self,
        state_root: Path | None = None,
        max_events: int = DEFAULT_MAX_EVENTS,
    ):
        """
        Initialize the session store.

        Args:
            state_root: State directory (default: .agentflow/state)
            max_events: Cap on the persisted event log (first event is kept)
        """
        if max_events < 2:
            raise ValueError("max_events must be >= 2")
        self.state_root = state_root or DEFAULT_STATE_ROOT
        self.sessions_root = self.state_root / SESSIONS_DIRNAME
        self.dashboard_file = self.state_root / DASHBOARD_FILENAME
        self.max_events = max_events
        self.sessions_root.mkdir(parents=True, exist_ok=True)

    def session_file(self, session_id: str) -> Path:
        return self.sessions_root / f"{session_id}{SESSION_SUFFIX}"

    def save(self, session: Session) -> Path:
        """
        Trim the event log and write <session_id>.json atomically.

        Args:
            session: The session to persist

        Returns:
            Path to the saved session file

        Raises:
            OSError: If the write fails
        """
        session.trim_events(self.max_events)
        session_file = self.session_file(session.session_id)
        content = json.dumps(
            self._serialize(session), indent=2, ensure_ascii=False
        )
        with file_lock(session_file):
            atomic_write(session_file, content)
        return session_file

    def load(self, session_id: str) -> Session:
        """
        Load a session.

        Args:
            session_id: The session identifier

        Returns:
            The loaded session

        Raises:
            FileNotFoundError: If the session doesn't exist
            ValueError: If the session file is invalid
        """
        session_file = self.session_file(session_id)

        if not session_file.exists():
            raise FileNotFoundError(
                f"Session '{session_id}' not found at {session_file}"
            )

        try:
            with open(session_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid session data: {e}") from e

        return self._deserialize(data)

    def update(self, session_id: str, fn: Callable[[Session], None]) -> Session:
        """Locked read-modify-write of one session."""
        with file_lock(self.session_file(session_id)):
            session = self.load(session_id)
            fn(session)
            self.save(session)
        return session

    def exists(self, session_id: str) -> bool:
        return self.session_file(session_id).exists()

    def list_sessions(self) -> list[str]:
        """Sorted ids of every stored session."""
        if not self.sessions_root.exists():
            return []
        return sorted(
            p.stem for p in self.sessions_root.glob(f"*{SESSION_SUFFIX}")
            if p.is_file()
        )

    def update_dashboard(self, session: Session) -> None:
        """Project a summary of ``session`` into dashboard.json.

        Best-effort: failures are logged and swallowed.
        """
        entry = {
            "mission": session.mission_title,
            "title": session.title,
            "status": session.status.value,
            "agent": session.current_agent,
            "phase": session.current_phase,
            "bracket": session.context_bracket.value,
            "prompt_count": session.prompt_count,
            "tokens": session.tokens_used,
            "cost": session.cost_usd,
            "last_update": datetime.now(timezone.utc).isoformat(),
        }
        try:
            with file_lock(self.dashboard_file):
                dashboard = self.load_dashboard()
                dashboard[session.session_id] = entry
                atomic_write(
                    self.dashboard_file, json.dumps(dashboard, indent=2)
                )
        except OSError as e:
            logger.warning(f"Failed to update dashboard: {e}")

    def load_dashboard(self) -> dict[str, Any]:
        """Current dashboard projection; empty when missing or unreadable."""
        try:
            with open(self.dashboard_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            return {}
        return data if isinstance(data, dict) else {}

    def clean_stale_sessions(
        self,
        max_age_hours: float = DEFAULT_STALE_HOURS,
        now: datetime | None = None,
    ) -> int:
        """
        Delete completed or failed sessions idle longer than ``max_age_hours``.

        Corrupt files are skipped. Never raises.

        Returns:
            Number of session files removed
        """
        now = now or datetime.now(timezone.utc)
        max_age = timedelta(hours=max_age_hours)
        cleaned = 0

        try:
            candidates = list(self.sessions_root.glob(f"*{SESSION_SUFFIX}"))
        except OSError as e:
            logger.debug(f"Cannot scan {self.sessions_root}: {e}")
            return 0

        for session_file in candidates:
            try:
                with file_lock(session_file):
                    with open(session_file, "r", encoding="utf-8") as f:
                        data = json.load(f)
                    if data.get("status") not in _TERMINAL:
                        continue
                    last = data.get("last_activity") or data.get("started_at")
                    # Serialized as "...Z", which fromisoformat rejects before 3.11
                    last_activity = datetime.fromisoformat(last.replace("Z", "+00:00"))
                    if last_activity.tzinfo is None:
                        last_activity = last_activity.replace(tzinfo=timezone.utc)
                    if now - last_activity > max_age:
                        session_file.unlink()
                        cleaned += 1
            except (OSError, ValueError, TypeError, AttributeError) as e:
                logger.debug(f"Skipping {session_file.name} during cleanup: {e}")

        if cleaned:
            logger.info(f"Removed {cleaned} stale session(s)")
        return cleaned

    def _serialize(self, session: Session) -> dict[str, Any]:
        """Convert Session to JSON-serializable dict."""
        return session.model_dump(mode="json")

    def _deserialize(self, data: dict[str, Any]) -> Session:
        """
        Convert JSON dict to Session.

        Raises:
            ValueError: If data is invalid
        """
        try:
            return Session.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Invalid session data: {e}") from e
