"""Model hint resolution: (runner x profile x agent role) -> model id."""

from enum import Enum

from agentflow.domain.context_tracker import normalize_runner


class ModelTier(str, Enum):
    PLANNING = "planning"
    EXECUTION = "execution"
    RESEARCH = "research"
    VERIFICATION = "verification"


class ModelProfile(str, Enum):
    QUALITY = "quality"
    BALANCED = "balanced"
    BUDGET = "budget"


_T = ModelTier

CLAUDE_MODELS: dict[ModelProfile, dict[ModelTier, str]] = {
    ModelProfile.QUALITY: {
        _T.PLANNING: "claude-opus-4-6",
        _T.EXECUTION: "claude-opus-4-6",
        _T.RESEARCH: "claude-sonnet-4-6",
        _T.VERIFICATION: "claude-sonnet-4-6",
    },
    ModelProfile.BALANCED: {
        _T.PLANNING: "claude-opus-4-6",
        _T.EXECUTION: "claude-sonnet-4-6",
        _T.RESEARCH: "claude-sonnet-4-6",
        _T.VERIFICATION: "claude-haiku-4-5-20251001",
    },
    ModelProfile.BUDGET: {
        _T.PLANNING: "claude-sonnet-4-6",
        _T.EXECUTION: "claude-sonnet-4-6",
        _T.RESEARCH: "claude-haiku-4-5-20251001",
        _T.VERIFICATION: "claude-haiku-4-5-20251001",
    },
}

GEMINI_MODELS: dict[ModelProfile, dict[ModelTier, str]] = {
    ModelProfile.QUALITY: {
        _T.PLANNING: "gemini-2.5-pro",
        _T.EXECUTION: "gemini-2.5-pro",
        _T.RESEARCH: "gemini-2.5-pro",
        _T.VERIFICATION: "gemini-2.5-flash",
    },
    ModelProfile.BALANCED: {
        _T.PLANNING: "gemini-2.5-pro",
        _T.EXECUTION: "gemini-2.5-flash",
        _T.RESEARCH: "gemini-2.5-flash",
        _T.VERIFICATION: "gemini-2.0-flash-lite",
    },
    ModelProfile.BUDGET: {
        _T.PLANNING: "gemini-2.5-flash",
        _T.EXECUTION: "gemini-2.5-flash",
        _T.RESEARCH: "gemini-2.0-flash-lite",
        _T.VERIFICATION: "gemini-2.0-flash-lite",
    },
}

CODEX_MODELS: dict[ModelProfile, dict[ModelTier, str]] = {
    ModelProfile.QUALITY: {
        _T.PLANNING: "o3",
        _T.EXECUTION: "o3",
        _T.RESEARCH: "o4-mini",
        _T.VERIFICATION: "o4-mini",
    },
    ModelProfile.BALANCED: {
        _T.PLANNING: "o3",
        _T.EXECUTION: "o4-mini",
        _T.RESEARCH: "o4-mini",
        _T.VERIFICATION: "o4-mini",
    },
    ModelProfile.BUDGET: {
        _T.PLANNING: "o4-mini",
        _T.EXECUTION: "o4-mini",
        _T.RESEARCH: "o4-mini",
        _T.VERIFICATION: "o4-mini",
    },
}

RUNNER_MODELS = {
    "claude-code": CLAUDE_MODELS,
    "claude": CLAUDE_MODELS,
    "gemini-cli": GEMINI_MODELS,
    "gemini": GEMINI_MODELS,
    "codex-cli": CODEX_MODELS,
    "codex": CODEX_MODELS,
}

# Insertion order matters for the substring fallback
ROLE_TIERS: dict[str, ModelTier] = {
    "planner": _T.PLANNING,
    "architect": _T.PLANNING,
    "pm": _T.PLANNING,
    "analyst": _T.RESEARCH,
    "researcher": _T.RESEARCH,
    "developer": _T.EXECUTION,
    "dev": _T.EXECUTION,
    "builder": _T.EXECUTION,
    "executor": _T.EXECUTION,
    "qa": _T.VERIFICATION,
    "verifier": _T.VERIFICATION,
    "reviewer": _T.VERIFICATION,
    "doctor": _T.VERIFICATION,
    "maintainer": _T.EXECUTION,
}


def _agent_name(agent: str) -> str:
    return agent.removeprefix("@").lower()


def classify_tier(agent: str) -> ModelTier:
    """Map an agent name to a tier ('lead-developer' -> execution)."""
    name = _agent_name(agent)
    if name in ROLE_TIERS:
        return ROLE_TIERS[name]
    for keyword, tier in ROLE_TIERS.items():
        if keyword in name:
            return tier
    return ModelTier.EXECUTION


def resolve_model(
    runner: str,
    profile: ModelProfile | str,
    agent: str,
    overrides: dict[str, str] | None = None,
) -> str | None:
    """Concrete model id for an agent, or None to let the runner choose.

    Resolution order: explicit override for the agent, then the runner's
    profile table for the agent's tier. Unknown runners and profiles
    yield None.
    """
    name = _agent_name(agent)
    if overrides:
        override = (
            overrides.get(agent) or overrides.get(name) or overrides.get(f"@{name}")
        )
        if override:
            return override

    runner_map = RUNNER_MODELS.get(normalize_runner(runner))
    if runner_map is None:
        return None

    try:
        profile_map = runner_map[ModelProfile(profile)]
    except ValueError:
        return None

    return profile_map[classify_tier(agent)]
