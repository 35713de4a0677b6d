import logging
from datetime import datetime, timezone
from pathlib import Path

import yaml

from agentflow.domain.constants import (
    ARTIFACT_INDEX_FILENAME,
    ARTIFACTS_DIRNAME,
    MEMORY_DIRNAME,
)

logger = logging.getLogger(__name__)

INDEX_VERSION = "1.0"


class ArtifactIndex:
    """YAML index of ``.agentflow/artifacts/*.md`` for prompt injection.

    Each entry records the artifact's first line as its summary. Re-indexing
    is skipped while the set of file names and mtimes is unchanged.
    """

    def __init__(self, agentflow_dir: Path):
        self.artifacts_dir = agentflow_dir / ARTIFACTS_DIRNAME
        self.index_path = agentflow_dir / MEMORY_DIRNAME / ARTIFACT_INDEX_FILENAME
        self._last_fingerprint: str | None = None

    def sync(self) -> bool:
        """Rebuild the index if artifacts changed. Returns True when rewritten."""
        if not self.artifacts_dir.is_dir():
            return False

        files = sorted(p for p in self.artifacts_dir.glob("*.md") if p.is_file())
        stats = {p.name: p.stat() for p in files}
        fingerprint = "|".join(f"{name}:{st.st_mtime_ns}" for name, st in stats.items())
        if fingerprint == self._last_fingerprint and self.index_path.exists():
            return False

        artifacts = {}
        for path in files:
            first_line = path.read_text(encoding="utf-8").split("\n", 1)[0]
            st = stats[path.name]
            artifacts[path.name] = {
                "path": f"{ARTIFACTS_DIRNAME}/{path.name}",
                "name": path.name,
                "summary": first_line.replace("#", "", 1).strip() or "No description",
                "last_updated": datetime.fromtimestamp(st.st_mtime, timezone.utc).isoformat(),
                "size": st.st_size,
            }

        self.index_path.parent.mkdir(parents=True, exist_ok=True)
        self.index_path.write_text(
            yaml.safe_dump(
                {"version": INDEX_VERSION, "artifacts": artifacts},
                sort_keys=False,
                allow_unicode=True,
            ),
            encoding="utf-8",
        )
        self._last_fingerprint = fingerprint
        logger.debug(f"Indexed {len(artifacts)} artifact(s)")
        return True

    def content(self) -> str:
        """Raw index text, or an empty string when no index exists."""
        try:
            return self.index_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
