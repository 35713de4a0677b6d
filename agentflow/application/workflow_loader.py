"""Loads workflow definitions from installed modules.

Lookup order for ``load("feature", "sdlc")``::

    .agentflow/modules/sdlc/workflows/feature.yaml
    .agentflow/modules/sdlc/workflows/feature.yml
    .agentflow/modules/sdlc/workflows/feature.md

YAML files use either the nested shape (``workflow: {id, name}`` plus
``phases``) or the flat shape (``id``, ``name``, ``phases``). Markdown files
carry the same keys in YAML front matter, with ``steps`` accepted for
``phases``.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import ValidationError

from agentflow.domain.constants import MODULES_DIRNAME
from agentflow.domain.errors import WorkflowDefinitionError
from agentflow.domain.models.workflow import WorkflowDefinition

logger = logging.getLogger(__name__)

WORKFLOW_EXTENSIONS = (".yaml", ".yml", ".md")


@dataclass(frozen=True)
class WorkflowSummary:
    module: str
    id: str
    name: str


class WorkflowLoader:
    def __init__(self, agentflow_dir: Path):
        self.agentflow_dir = agentflow_dir

    def workflows_dir(self, module: str) -> Path:
        return self.agentflow_dir / MODULES_DIRNAME / module / "workflows"

    def load(self, workflow_id: str, module: str) -> WorkflowDefinition:
        """
        Load and validate a workflow.

        Raises:
            WorkflowDefinitionError: If no file matches or the file is malformed
        """
        for ext in WORKFLOW_EXTENSIONS:
            path = self.workflows_dir(module) / f"{workflow_id}{ext}"
            try:
                content = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                continue
            except OSError as e:
                raise WorkflowDefinitionError(f"Cannot read workflow {path}: {e}") from e

            if ext == ".md":
                raw = self._parse_markdown(content, path)
                phases = raw.get("phases") or raw.get("steps") or []
            else:
                raw = self._parse_yaml(content, path)
                phases = raw.get("phases")

            return self._build(raw, phases, workflow_id, path)

        raise WorkflowDefinitionError(
            f"Workflow '{workflow_id}' not found in module '{module}'."
        )

    def list_workflows(self, modules: Iterable[str]) -> list[WorkflowSummary]:
        """Every loadable workflow across ``modules``; invalid files are skipped."""
        results: list[WorkflowSummary] = []
        for module in modules:
            wf_dir = self.workflows_dir(module)
            if not wf_dir.is_dir():
                logger.debug(f"No workflows dir for module '{module}'")
                continue
            for path in sorted(wf_dir.iterdir()):
                if path.suffix not in WORKFLOW_EXTENSIONS:
                    continue
                try:
                    wf = self.load(path.stem, module)
                except WorkflowDefinitionError as e:
                    logger.debug(f"Skip invalid workflow {path.name} in {module}: {e}")
                    continue
                results.append(WorkflowSummary(module=module, id=path.stem, name=wf.name))
        return results

    def _parse_yaml(self, content: str, path: Path) -> dict[str, Any]:
        try:
            raw = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise WorkflowDefinitionError(f"Malformed YAML in {path}: {e}") from e
        if not isinstance(raw, dict) or "phases" not in raw:
            raise WorkflowDefinitionError(f"Unknown workflow format in {path}")
        return raw

    def _parse_markdown(self, content: str, path: Path) -> dict[str, Any]:
        parts = content.split("---")
        if len(parts) < 3:
            raise WorkflowDefinitionError(
                f"Invalid workflow markdown {path}: missing frontmatter."
            )
        try:
            front = yaml.safe_load(parts[1]) or {}
        except yaml.YAMLError as e:
            raise WorkflowDefinitionError(f"Malformed frontmatter in {path}: {e}") from e
        if not isinstance(front, dict):
            raise WorkflowDefinitionError(f"Frontmatter in {path} must be a mapping")
        return front

    def _build(
        self, raw: dict[str, Any], phases: Any, workflow_id: str, path: Path
    ) -> WorkflowDefinition:
        # Nested shape keeps identity under "workflow:"
        header = raw.get("workflow") if isinstance(raw.get("workflow"), dict) else raw
        data = {
            "id": header.get("id") or workflow_id,
            "name": header.get("name") or workflow_id,
            "description": header.get("description"),
            "phases": phases,
        }
        try:
            return WorkflowDefinition.model_validate(data)
        except ValidationError as e:
            raise WorkflowDefinitionError(f"Invalid workflow {path}: {e}") from e
