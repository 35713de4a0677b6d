"""Append-only decision log stored as YAML."""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from agentflow.domain.constants import DECISIONS_FILENAME, DEFAULT_STATE_ROOT
from agentflow.domain.models.decision import Decision
from agentflow.domain.persistence.atomic_fs import atomic_write, file_lock

logger = logging.getLogger(__name__)


def _normalize_agent(agent: str) -> str:
    return agent.removeprefix("@").lower()


class DecisionLogCorruptError(ValueError):
    """The log exists but cannot be parsed; appending would discard it."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Decision log {path} is unreadable ({reason}); not overwriting it")
        self.path = path
        self.reason = reason


class DecisionLog:
    """Records decisions to ``<state>/decisions.yaml`` as ``{decisions: [...]}``."""

    def __init__(self, state_root: Path | None = None):
        self.log_path = (state_root or DEFAULT_STATE_ROOT) / DECISIONS_FILENAME

    def record(
        self,
        *,
        title: str,
        context: str,
        decision: str,
        agent: str,
        session_id: str,
        phase: str | None = None,
        alternatives: list[str] | None = None,
    ) -> Decision:
        """Append a decision and return it with its assigned id.

        Ids are ``DEC-NNN`` numbered from the count of existing entries, so
        they stay unique while all writers go through this lock.

        Raises:
            OSError: If the log cannot be read or written
            DecisionLogCorruptError: If the existing log cannot be parsed
        """
        with file_lock(self.log_path):
            raw = self._read_raw(strict=True)
            entry = Decision(
                id=f"DEC-{len(raw) + 1:03d}",
                title=title,
                context=context,
                decision=decision,
                alternatives=alternatives,
                agent=agent,
                session_id=session_id,
                phase=phase,
            )
            raw.append(entry.model_dump(mode="json", exclude_none=True))
            atomic_write(
                self.log_path,
                yaml.safe_dump(
                    {"decisions": raw}, sort_keys=False, allow_unicode=True
                ),
            )

        logger.debug(f"Recorded {entry.id}: {title}")
        return entry

    def list_decisions(self) -> list[Decision]:
        """All decisions in log order; empty when the log is missing or corrupt."""
        decisions = []
        for item in self._read_raw():
            try:
                decisions.append(Decision.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping invalid decision entry: {e}")
        return decisions

    def find_by_session(self, session_id: str) -> list[Decision]:
        return [d for d in self.list_decisions() if d.session_id == session_id]

    def find_by_agent(self, agent: str) -> list[Decision]:
        """Decisions by agent; case-insensitive, leading '@' ignored."""
        wanted = _normalize_agent(agent)
        return [d for d in self.list_decisions() if _normalize_agent(d.agent) == wanted]

    def _read_raw(self, strict: bool = False) -> list[Any]:
        """Raw entries. ``strict`` raises on unreadable content instead of
        treating it as an empty log."""
        try:
            content = self.log_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            if strict:
                raise
            logger.warning(f"Cannot read decision log {self.log_path}: {e}")
            return []

        try:
            parsed = yaml.safe_load(content)
        except yaml.YAMLError as e:
            return self._unreadable(f"malformed YAML: {e}", strict)
        if parsed is None:
            return []
        if not isinstance(parsed, dict):
            return self._unreadable("root is not a mapping", strict)
        decisions = parsed.get("decisions") or []
        if not isinstance(decisions, list):
            return self._unreadable("'decisions' is not a list", strict)
        return decisions

    def _unreadable(self, reason: str, strict: bool) -> list[Any]:
        if strict:
            raise DecisionLogCorruptError(self.log_path, reason)
        logger.warning(f"Cannot read decision log {self.log_path}: {reason}")
        return []
