from pathlib import Path

# Project layout
AGENTFLOW_DIRNAME = ".agentflow"
STATE_DIRNAME = "state"
SESSIONS_DIRNAME = "sessions"
COMPILED_DIRNAME = "compiled"
MEMORY_DIRNAME = "memory"
ARTIFACTS_DIRNAME = "artifacts"
MODULES_DIRNAME = "modules"
CORE_DIRNAME = "core"
SNAPSHOTS_DIRNAME = "snapshots"

DEFAULT_STATE_ROOT = Path(AGENTFLOW_DIRNAME) / STATE_DIRNAME

# State files
SESSION_SUFFIX = ".json"
DASHBOARD_FILENAME = "dashboard.json"
DECISIONS_FILENAME = "decisions.yaml"
HANDOFF_FILENAME = ".handoff.md"
GOTCHAS_FILENAME = "gotchas.yaml"
ARTIFACT_INDEX_FILENAME = "index.yaml"
COMPILED_PROMPT_SUFFIX = ".prompt.md"
INTEGRITY_FILENAME = ".integrity"

# Session defaults
DEFAULT_MAX_EVENTS = 200
DEFAULT_CRASH_MINUTES = 30
DEFAULT_STALE_HOURS = 168  # 7 days

# Execution
DEFAULT_PHASE_TIMEOUT_MS = 10 * 60 * 1000
MAX_BACKOFF_SECONDS = 30.0
MASTER_AGENT = "master"
DEFAULT_MODULE = "sdlc"
