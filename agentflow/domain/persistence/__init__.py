"""Durable state: sessions, dashboard, decisions and gotchas."""

from .atomic_fs import atomic_write, file_lock
from .decision_log import DecisionLog
from .gotchas_memory import GotchasMemory
from .session_store import SessionStore

__all__ = [
    "atomic_write",
    "file_lock",
    "DecisionLog",
    "GotchasMemory",
    "SessionStore",
]
