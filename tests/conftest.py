from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest
import yaml

from agentflow.domain.models.session import Session, SessionStatus


class ProjectBuilder:
    """Writes a hermetic ``.agentflow`` tree (agents, tasks, workflows)."""

    def __init__(self, root: Path, module: str = "sdlc"):
        self.root = root
        self.module = module
        self.agentflow_dir = root / ".agentflow"
        self.agentflow_dir.mkdir(parents=True, exist_ok=True)

    def module_dir(self, module: str | None = None) -> Path:
        return self.agentflow_dir / "modules" / (module or self.module)

    def _component(self, kind: str, name: str, body: str, core: bool, module: str | None) -> Path:
        base = self.agentflow_dir / "core" if core else self.module_dir(module)
        path = base / kind / f"{name}.md"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")
        return path

    def add_agent(
        self, name: str, body: str | None = None, *, core: bool = False, module: str | None = None
    ) -> Path:
        return self._component("agents", name, body or f"You are @{name}.", core, module)

    def add_task(
        self, name: str, body: str | None = None, *, core: bool = False, module: str | None = None
    ) -> Path:
        return self._component("tasks", name, body or f"Do the {name} task.", core, module)

    def add_rule(self, name: str, body: str, *, core: bool = True) -> Path:
        base = self.agentflow_dir / "core" if core else self.module_dir()
        path = base / "rules" / f"{name}.md"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")
        return path

    def add_workflow(
        self,
        workflow_id: str,
        phases: list[dict[str, Any]],
        *,
        name: str | None = None,
        module: str | None = None,
    ) -> Path:
        """Write a nested-shape workflow and any agent/task files it references."""
        for phase in phases:
            if not (self.module_dir(module) / "agents" / f"{phase['agent']}.md").exists():
                self.add_agent(phase["agent"], module=module)
            task = phase["task"].replace(".md", "")
            if not (self.module_dir(module) / "tasks" / f"{task}.md").exists():
                self.add_task(task, module=module)

        path = self.module_dir(module) / "workflows" / f"{workflow_id}.yaml"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            yaml.safe_dump(
                {
                    "workflow": {"id": workflow_id, "name": name or workflow_id.title()},
                    "phases": phases,
                },
                sort_keys=False,
            ),
            encoding="utf-8",
        )
        return path


@pytest.fixture
def project(tmp_path: Path) -> ProjectBuilder:
    """Hermetic project root with an empty ``.agentflow`` directory."""
    return ProjectBuilder(tmp_path / "project")


@pytest.fixture
def state_root(tmp_path: Path) -> Path:
    """Isolated state directory.

    Tests should not write into the real working directory's .agentflow.
    """
    return tmp_path / "state"


@pytest.fixture
def make_session():
    def _make(**overrides: Any) -> Session:
        data: dict[str, Any] = {
            "session_id": "sess-1",
            "workflow_id": "feature",
            "mission_title": "Ship the feature",
            "current_agent": "master",
            "status": SessionStatus.RUNNING,
        }
        data.update(overrides)
        return Session(**data)

    return _make


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
