"""Point-in-time copies of ``state/``, ``memory/`` and ``artifacts/``.

Snapshots live in ``.agentflow/snapshots/<timestamp>-<label>/``. Each one
carries a ``.integrity`` file holding a SHA-256 over its relative paths and
contents; restoring a snapshot whose content no longer matches is refused.
"""

import hashlib
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

from agentflow.domain.constants import (
    AGENTFLOW_DIRNAME,
    ARTIFACTS_DIRNAME,
    INTEGRITY_FILENAME,
    MEMORY_DIRNAME,
    SNAPSHOTS_DIRNAME,
    STATE_DIRNAME,
)

logger = logging.getLogger(__name__)

SNAPSHOT_DIRS = (STATE_DIRNAME, MEMORY_DIRNAME, ARTIFACTS_DIRNAME)


class SnapshotError(Exception):
    """Base class for snapshot failures."""


class SnapshotNotFoundError(SnapshotError):
    def __init__(self, name: str):
        super().__init__(f"Snapshot '{name}' not found.")
        self.name = name


class SnapshotIntegrityError(SnapshotError):
    def __init__(self, name: str, expected: str, actual: str):
        super().__init__(
            f"Snapshot '{name}' failed its integrity check. Expected "
            f"{expected[:16]}..., got {actual[:16]}...; the snapshot may be corrupted."
        )
        self.name = name
        self.expected = expected
        self.actual = actual


def compute_hash(directory: Path) -> str:
    """SHA-256 over every file under ``directory`` except the integrity file.

    Files are visited in sorted relative-path order and each contributes
    its POSIX relative path followed by its bytes.
    """
    digest = hashlib.sha256()
    files = sorted(
        (p for p in directory.rglob("*") if p.is_file() and p.name != INTEGRITY_FILENAME),
        key=lambda p: p.relative_to(directory).as_posix(),
    )
    for path in files:
        digest.update(path.relative_to(directory).as_posix().encode("utf-8"))
        digest.update(path.read_bytes())
    return digest.hexdigest()


def _timestamp(now: datetime) -> str:
    return (
        now.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
        .replace(":", "-")
        .replace(".", "-")
    )


class SnapshotManager:
    """Creates, lists and restores snapshots for one project.

    Restoring replaces the live directories wholesale, so it must not run
    while a scheduler is writing to the same project.
    """

    def __init__(self, project_root: Path):
        self.agentflow_dir = project_root / AGENTFLOW_DIRNAME
        self.snapshots_dir = self.agentflow_dir / SNAPSHOTS_DIRNAME

    def create_snapshot(self, label: str = "auto", now: datetime | None = None) -> str:
        """
        Copy the live directories into a new snapshot.

        Directories that do not exist yet are skipped.

        Args:
            label: Suffix for the snapshot name
            now: Timestamp for the name (default: current UTC time)

        Returns:
            The snapshot name
        """
        stamp = _timestamp(now or datetime.now(timezone.utc))
        safe_label = label.replace("/", "-").replace("\\", "-") or "auto"
        name = f"{stamp}-{safe_label}"
        target = self.snapshots_dir / name
        suffix = 1
        while target.exists():
            name = f"{stamp}-{safe_label}-{suffix}"
            target = self.snapshots_dir / name
            suffix += 1
        target.mkdir(parents=True)

        for dirname in SNAPSHOT_DIRS:
            source = self.agentflow_dir / dirname
            if source.is_dir():
                shutil.copytree(source, target / dirname)

        (target / INTEGRITY_FILENAME).write_text(compute_hash(target), encoding="utf-8")
        logger.info(f"Snapshot saved: {name}")
        return name

    def list_snapshots(self) -> list[str]:
        """Snapshot names, newest first."""
        if not self.snapshots_dir.is_dir():
            return []
        names = [
            p.name
            for p in self.snapshots_dir.iterdir()
            if p.is_dir() and not p.name.startswith(".")
        ]
        return sorted(names, reverse=True)

    def verify_integrity(self, name: str) -> None:
        """
        Raises:
            SnapshotNotFoundError: If there is no such snapshot
            SnapshotIntegrityError: If the content no longer matches its hash
        """
        path = self._snapshot_path(name)
        try:
            expected = (path / INTEGRITY_FILENAME).read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            logger.warning(f"Snapshot '{name}' has no integrity file; skipping verification")
            return

        actual = compute_hash(path)
        if actual != expected:
            raise SnapshotIntegrityError(name, expected, actual)

    def restore(self, name: str) -> list[str]:
        """
        Replace the live directories with the snapshot's copies.

        Live directories the snapshot does not contain are left alone.

        Returns:
            Names of the restored directories

        Raises:
            SnapshotNotFoundError: If there is no such snapshot
            SnapshotIntegrityError: If the snapshot is corrupted; nothing is
                restored in that case
        """
        self.verify_integrity(name)
        source = self._snapshot_path(name)

        restored = []
        for dirname in SNAPSHOT_DIRS:
            saved = source / dirname
            if not saved.is_dir():
                continue
            live = self.agentflow_dir / dirname
            # Copy first so a failed copy leaves the live directory intact
            staging = self.agentflow_dir / f".{dirname}.restore"
            if staging.exists():
                shutil.rmtree(staging)
            shutil.copytree(saved, staging)
            if live.exists():
                shutil.rmtree(live)
            staging.rename(live)
            restored.append(dirname)

        logger.info(f"Restored snapshot {name}: {', '.join(restored) or 'nothing'}")
        return restored

    def _snapshot_path(self, name: str) -> Path:
        # Names are plain directory names; anything else cannot be a snapshot
        if not name or name.startswith(".") or Path(name).name != name:
            raise SnapshotNotFoundError(name)
        path = self.snapshots_dir / name
        if not path.is_dir():
            raise SnapshotNotFoundError(name)
        return path
