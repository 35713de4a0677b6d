"""Recurring-error memory.

Errors are normalized into a stable pattern. A pattern seen three times
becomes a gotcha, which later prompts receive as a warning.
"""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from agentflow.domain.constants import AGENTFLOW_DIRNAME, GOTCHAS_FILENAME, MEMORY_DIRNAME
from agentflow.domain.persistence.atomic_fs import atomic_write, file_lock

logger = logging.getLogger(__name__)

GOTCHA_THRESHOLD = 3
MAX_RELEVANT_GOTCHAS = 5
GENERAL_DOMAIN = "general"

_PATH_RE = re.compile(r"(?:/[\w\-./]+/)([\w\-.]+\.\w+)")
_HEX_RE = re.compile(r"\b0x[0-9a-fA-F]+\b")
_BIG_NUM_RE = re.compile(r"\b\d{6,}\b")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PendingError(BaseModel):
    count: int = 0
    agent: str
    domain: str
    first_seen: datetime = Field(default_factory=_utcnow)
    last_seen: datetime = Field(default_factory=_utcnow)


class Gotcha(BaseModel):
    pattern: str
    message: str
    agent: str
    domain: str
    occurrences: int
    first_seen: datetime
    last_seen: datetime


class GotchasStore(BaseModel):
    pending: dict[str, PendingError] = Field(default_factory=dict)
    gotchas: list[Gotcha] = Field(default_factory=list)


def normalize_error(error: str) -> str:
    """Strip volatile parts (directories, hex addresses, long numbers)."""
    pattern = _PATH_RE.sub(r"\1", error)
    pattern = _HEX_RE.sub("<hex>", pattern)
    pattern = _BIG_NUM_RE.sub("<num>", pattern)
    return pattern.strip()[:200]


class GotchasMemory:
    def __init__(self, project_root: Path):
        self.store_path = (
            project_root / AGENTFLOW_DIRNAME / MEMORY_DIRNAME / GOTCHAS_FILENAME
        )

    def record_error(
        self, error: str, agent: str, domain: str = GENERAL_DOMAIN
    ) -> Gotcha | None:
        """Count an error; returns the gotcha once the pattern is promoted."""
        pattern = normalize_error(error)
        now = _utcnow()

        with file_lock(self.store_path):
            store = self._load()

            for gotcha in store.gotchas:
                if gotcha.pattern == pattern:
                    gotcha.occurrences += 1
                    gotcha.last_seen = now
                    self._save(store)
                    return gotcha

            pending = store.pending.setdefault(
                pattern,
                PendingError(agent=agent, domain=domain, first_seen=now, last_seen=now),
            )
            pending.count += 1
            pending.last_seen = now

            promoted = None
            if pending.count >= GOTCHA_THRESHOLD:
                promoted = Gotcha(
                    pattern=pattern,
                    message=error.strip()[:300],
                    agent=agent,
                    domain=domain,
                    occurrences=pending.count,
                    first_seen=pending.first_seen,
                    last_seen=now,
                )
                store.gotchas.append(promoted)
                del store.pending[pattern]
                logger.info(f"New gotcha for @{agent}: {pattern[:80]}")

            self._save(store)
            return promoted

    def get_relevant_gotchas(self, agent: str, domain: str | None = None) -> str:
        """Up to five gotchas for this agent or domain, as prompt-ready lines."""
        store = self._load()
        relevant = [
            g
            for g in store.gotchas
            if g.agent == agent or g.domain == domain or g.domain == GENERAL_DOMAIN
        ]
        relevant.sort(key=lambda g: g.occurrences, reverse=True)
        return "\n".join(
            f"- {g.message} (seen {g.occurrences}x)"
            for g in relevant[:MAX_RELEVANT_GOTCHAS]
        )

    def _load(self) -> GotchasStore:
        try:
            data = yaml.safe_load(self.store_path.read_text(encoding="utf-8"))
            return GotchasStore.model_validate(data or {})
        except FileNotFoundError:
            return GotchasStore()
        except (OSError, yaml.YAMLError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable gotchas store {self.store_path}: {e}")
            return GotchasStore()

    def _save(self, store: GotchasStore) -> None:
        atomic_write(
            self.store_path,
            yaml.safe_dump(store.model_dump(mode="json"), sort_keys=False, allow_unicode=True),
        )
