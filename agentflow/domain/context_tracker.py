"""Context budget governor.

Estimates how many tokens a piece of text costs, how much of the runner's
context window a session has left, and which prompt sections survive a
token budget.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Sequence

from agentflow.domain.models.prompt_sections import PromptSection
from agentflow.domain.models.session import ContextBracket

logger = logging.getLogger(__name__)


# ─── Token estimation ────────────────────────────────────────────────

# ECMAScript \s, so estimates match the ones already cached on disk
_WS_CLASS = r"\t\n\v\f\r \u00a0\u1680\u2000-\u200a\u2028\u2029\u202f\u205f\u3000\ufeff"
_WS_SPLIT = re.compile(f"([{_WS_CLASS}]+)")
_WS_ONLY = re.compile(f"[{_WS_CLASS}]+")
_SYMBOL_SPLIT = re.compile(r"([^A-Za-z0-9_])")
_DIGITS = re.compile(r"[0-9]+")
_CAMEL_SPLIT = re.compile(r"(?=[A-Z][a-z])")


def _utf16_len(char: str) -> int:
    return 2 if ord(char) > 0xFFFF else 1


def _sub_word_tokens(parts: list[str]) -> int:
    return sum(1 if len(p) <= 6 else math.ceil(len(p) / 5) for p in parts)


def word_estimate(word: str) -> int:
    """Estimate tokens for a single word (no whitespace, no symbols)."""
    if not word:
        return 0
    if len(word) <= 6:
        return 1

    camel_parts = [p for p in _CAMEL_SPLIT.split(word) if p]
    if len(camel_parts) > 1:
        return _sub_word_tokens(camel_parts)

    if "_" in word:
        return _sub_word_tokens([p for p in word.split("_") if p])

    if len(word) <= 10:
        return 2
    return math.ceil(len(word) / 5)


def estimate_tokens(text: str) -> int:
    """Content-aware token estimate.

    Newlines cost one token each. Whitespace runs cost one token per four
    characters. Each symbol costs its UTF-16 length, so characters outside
    the Basic Multilingual Plane cost two. Digit runs cost one token per
    three digits, and words go through :func:`word_estimate`.

    Deterministic: the same text always yields the same count.
    """
    if not text:
        return 0

    lines = text.split("\n")
    tokens = len(lines) - 1

    for line in lines:
        for segment in _WS_SPLIT.split(line):
            if not segment:
                continue
            if _WS_ONLY.fullmatch(segment):
                tokens += max(1, math.ceil(len(segment) / 4))
                continue

            for part in _SYMBOL_SPLIT.split(segment):
                if not part:
                    continue
                if len(part) == 1 and _SYMBOL_SPLIT.fullmatch(part):
                    tokens += _utf16_len(part)
                elif _DIGITS.fullmatch(part):
                    tokens += max(1, math.ceil(len(part) / 3))
                else:
                    tokens += word_estimate(part)

    return tokens


# ─── Context brackets ────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class BracketConfig:
    """What a prompt compiled in this bracket may include."""

    bracket: ContextBracket
    min_percent: float
    max_percent: float
    token_budget: int
    include_session_history: bool
    include_artifact_index: bool
    include_gotchas: bool
    handoff_warning: bool


BRACKET_CONFIGS: tuple[BracketConfig, ...] = (
    BracketConfig(ContextBracket.FRESH, 60, 100, 4000, False, False, False, False),
    BracketConfig(ContextBracket.MODERATE, 40, 60, 6000, True, True, False, False),
    BracketConfig(ContextBracket.DEPLETED, 25, 40, 8000, True, True, True, False),
    BracketConfig(ContextBracket.CRITICAL, 0, 25, 10000, True, True, True, True),
)

DEFAULT_MAX_CONTEXT = 200_000

# Prompt plus response plus tool overhead, per round
TOKENS_PER_ROUND = 3500

RUNNER_CONTEXT_WINDOWS: dict[str, int] = {
    "claude-code": 200_000,
    "claude": 200_000,
    "gemini-cli": 1_000_000,
    "gemini": 1_000_000,
    "codex-cli": 200_000,
    "codex": 200_000,
    "copilot": 128_000,
    "github-copilot": 128_000,
    "cursor": 200_000,
    "windsurf": 200_000,
    "generic": 128_000,
    "auto-detect": 200_000,
}

_RUNNER_SEPARATORS = re.compile(r"[\s_]")


def normalize_runner(runner: str) -> str:
    """'Claude Code' -> 'claude-code'."""
    return _RUNNER_SEPARATORS.sub("-", runner.lower())


def get_max_context_for_runner(runner: str) -> int:
    """Context window of a runner; unknown runners get 200k."""
    key = normalize_runner(runner)
    if key in RUNNER_CONTEXT_WINDOWS:
        return RUNNER_CONTEXT_WINDOWS[key]
    for name, window in RUNNER_CONTEXT_WINDOWS.items():
        if key.startswith(name) or name.startswith(key):
            return window
    return DEFAULT_MAX_CONTEXT


def estimate_context_percent(
    prompt_count: int, max_context: int = DEFAULT_MAX_CONTEXT
) -> float:
    """Percent of the context window left after ``prompt_count`` rounds."""
    if max_context <= 0:
        raise ValueError("max_context must be > 0")
    used = prompt_count * TOKENS_PER_ROUND
    return max(0.0, min(100.0, 100 - (used / max_context) * 100))


def get_bracket(
    prompt_count: int, max_context: int = DEFAULT_MAX_CONTEXT
) -> BracketConfig:
    """Bracket for the remaining context.

    Checked from CRITICAL up to FRESH so shared boundaries resolve to the
    tighter bracket.
    """
    percent = estimate_context_percent(prompt_count, max_context)
    for config in reversed(BRACKET_CONFIGS):
        if config.min_percent <= percent <= config.max_percent:
            return config
    return BRACKET_CONFIGS[0]


# ─── Token budget ────────────────────────────────────────────────────


def enforce_token_budget(
    sections: Sequence[PromptSection], budget: int
) -> list[PromptSection]:
    """Drop sections, highest priority value first, until within budget.

    Priority 0 sections are never dropped; if they alone exceed the budget
    the result is over budget. Ties are dropped in input order. Relative
    order of the survivors is preserved.
    """
    total = sum(s.tokens for s in sections)
    if total <= budget:
        return list(sections)

    # sorted() is stable, so equal priorities keep input order
    removable = sorted(
        (s for s in sections if s.priority > 0),
        key=lambda s: s.priority,
        reverse=True,
    )

    dropped: set[int] = set()
    for section in removable:
        if total <= budget:
            break
        dropped.add(id(section))
        total -= section.tokens
        logger.debug(
            f"Dropped prompt section '{section.name}' ({section.tokens} tokens)"
        )

    return [s for s in sections if id(s) not in dropped]
