"""Prompt compilation: agent + task + context under a bracket's token budget."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, Sequence

import yaml

from agentflow.application.artifact_index import ArtifactIndex
from agentflow.application.session_continuity import consume_handoff
from agentflow.domain.constants import (
    AGENTFLOW_DIRNAME,
    ARTIFACTS_DIRNAME,
    COMPILED_DIRNAME,
    COMPILED_PROMPT_SUFFIX,
    CORE_DIRNAME,
    MODULES_DIRNAME,
)
from agentflow.domain.context_tracker import (
    BracketConfig,
    enforce_token_budget,
    estimate_tokens,
    get_bracket,
    get_max_context_for_runner,
)
from agentflow.domain.errors import WorkflowDefinitionError
from agentflow.domain.models.prompt_sections import PromptSection, SectionPriority
from agentflow.domain.models.session import SessionEventType
from agentflow.domain.persistence.gotchas_memory import GotchasMemory
from agentflow.domain.persistence.session_store import SessionStore

logger = logging.getLogger(__name__)

PROJECT_CONTEXT_FILE = "00-context.md"
SESSION_HISTORY_LIMIT = 10

HANDOFF_WARNING = (
    "<handoff_warning>\n"
    "Context window is critically low. Wrap up current task and prepare a "
    "handoff summary.\n"
    "</handoff_warning>"
)


class PromptAssembler(Protocol):
    """Builds the prompt file an executor runs for one phase."""

    def validate(self, agent: str, task: str, module: str) -> None:
        """Raise WorkflowDefinitionError if ``agent`` or ``task`` cannot be resolved."""
        ...

    def compile(
        self,
        agent: str,
        task: str,
        *,
        session_id: str,
        prompt_count: int,
        runner: str,
        module: str,
    ) -> Path:
        ...


@dataclass
class MarkdownComponent:
    front_matter: dict[str, Any]
    body: str


def load_markdown(path: Path) -> MarkdownComponent:
    """Split optional YAML front matter from a markdown body."""
    content = path.read_text(encoding="utf-8")
    parts = content.split("---")
    if len(parts) < 3:
        return MarkdownComponent(front_matter={}, body=content)
    try:
        front = yaml.safe_load(parts[1]) or {}
    except yaml.YAMLError as e:
        raise WorkflowDefinitionError(f"Malformed front matter in {path}: {e}") from e
    return MarkdownComponent(
        front_matter=front if isinstance(front, dict) else {},
        body="---".join(parts[2:]).strip(),
    )


class PromptCompiler:
    """Default PromptAssembler writing to ``.agentflow/compiled/``.

    Which optional sections are included depends on the context bracket
    for ``prompt_count``; the result is cut down to the bracket's token
    budget with :func:`enforce_token_budget`.
    """

    def __init__(
        self,
        project_root: Path,
        output_language: str = "English",
        session_store: SessionStore | None = None,
        gotchas: GotchasMemory | None = None,
        artifact_index: ArtifactIndex | None = None,
    ):
        self.project_root = project_root
        self.agentflow_dir = project_root / AGENTFLOW_DIRNAME
        self.output_language = output_language
        self.session_store = session_store
        self.gotchas = gotchas or GotchasMemory(project_root)
        self.artifact_index = artifact_index or ArtifactIndex(self.agentflow_dir)

    def validate(self, agent: str, task: str, module: str) -> None:
        """
        Check that the agent and task files exist, without reading them.

        Raises:
            WorkflowDefinitionError: If either file is missing
        """
        self._component_path("agents", agent, module)
        self._component_path("tasks", task, module)

    def compile(
        self,
        agent: str,
        task: str,
        *,
        session_id: str,
        prompt_count: int,
        runner: str,
        module: str,
        context_files: Sequence[str] = (),
    ) -> Path:
        """
        Compile and write the prompt for one phase.

        Returns:
            Path to the written ``<task>-<timestamp>.prompt.md``

        Raises:
            WorkflowDefinitionError: If the agent or task file is missing
        """
        bracket = get_bracket(prompt_count, get_max_context_for_runner(runner))
        sections = self.build_sections(
            agent,
            task,
            session_id=session_id,
            module=module,
            bracket=bracket,
            context_files=context_files,
        )
        final = enforce_token_budget(sections, bracket.token_budget)
        return self._write(task, "\n\n".join(s.content for s in final))

    def build_sections(
        self,
        agent: str,
        task: str,
        *,
        session_id: str,
        module: str,
        bracket: BracketConfig,
        context_files: Sequence[str] = (),
    ) -> list[PromptSection]:
        agent_md = self._resolve_component("agents", agent, module)
        task_md = self._resolve_component("tasks", task, module)

        sections = [
            _section(
                "header",
                f"<!-- COMPILED PROMPT | agentflow | bracket: {bracket.bracket.value} -->",
                SectionPriority.AGENT,
            ),
            _section("agent", f"<system>\n{agent_md.body}\n</system>", SectionPriority.AGENT),
            _section("rules", self._assemble_rules(module), SectionPriority.RULES),
            _section("task", f"<task>\n{task_md.body}\n</task>", SectionPriority.TASK),
            _section("context", self._assemble_context(context_files), SectionPriority.CONTEXT_FILES),
            _section(
                "output_constraints",
                self._assemble_output_constraints(),
                SectionPriority.OUTPUT_CONSTRAINTS,
            ),
        ]

        if bracket.include_session_history:
            history = self._assemble_session_history(session_id)
            if history:
                sections.append(
                    _section("session_history", history, SectionPriority.SESSION_HISTORY)
                )
            handoff = consume_handoff(self.agentflow_dir)
            if handoff:
                sections.append(
                    _section(
                        "continue_here",
                        f"<continue_here>\n{handoff}\n</continue_here>",
                        SectionPriority.CONTINUE_HERE,
                    )
                )

        if bracket.include_artifact_index:
            self.artifact_index.sync()
            index = self.artifact_index.content()
            if index.strip():
                sections.append(
                    _section(
                        "artifact_index",
                        f"<artifact_index>\n{index}\n</artifact_index>",
                        SectionPriority.ARTIFACT_INDEX,
                    )
                )

        if bracket.include_gotchas:
            hints = self.gotchas.get_relevant_gotchas(agent)
            if hints:
                sections.append(
                    _section(
                        "gotchas",
                        f"<gotchas>\nKnown issues, avoid repeating these errors:\n{hints}\n</gotchas>",
                        SectionPriority.GOTCHAS,
                    )
                )

        if bracket.handoff_warning:
            # Protected: survives any budget
            sections.append(_section("handoff_warning", HANDOFF_WARNING, SectionPriority.AGENT))

        return sections

    def _resolve_component(self, kind: str, component_id: str, module: str) -> MarkdownComponent:
        return load_markdown(self._component_path(kind, component_id, module))

    def _component_path(self, kind: str, component_id: str, module: str) -> Path:
        """Core first, then the module."""
        for path in (
            self.agentflow_dir / CORE_DIRNAME / kind / f"{component_id}.md",
            self.agentflow_dir / MODULES_DIRNAME / module / kind / f"{component_id}.md",
        ):
            if path.is_file():
                return path
        singular = kind.rstrip("s")
        raise WorkflowDefinitionError(
            f"Unknown {singular} '{component_id}' (looked in core and module '{module}')"
        )

    def _assemble_rules(self, module: str) -> str:
        parts = ["<rules>"]
        for rules_dir in (
            self.agentflow_dir / CORE_DIRNAME / "rules",
            self.agentflow_dir / MODULES_DIRNAME / module / "rules",
        ):
            if not rules_dir.is_dir():
                continue
            for path in sorted(rules_dir.glob("*.md")):
                parts.append(f"## Rule: {path.name}\n{path.read_text(encoding='utf-8')}\n")
        parts.append("</rules>")
        return "\n".join(parts)

    def _assemble_context(self, context_files: Sequence[str]) -> str:
        parts = ["<context>"]
        project_context = self.agentflow_dir / ARTIFACTS_DIRNAME / PROJECT_CONTEXT_FILE
        if project_context.is_file():
            parts.append(
                f"## Project Rules & Identity\n{project_context.read_text(encoding='utf-8')}\n"
            )
        for name in context_files:
            path = Path(name)
            if not path.is_absolute():
                path = self.project_root / path
            try:
                content = path.read_text(encoding="utf-8")
                parts.append(f"## File: {name}\n```\n{content}\n```\n")
            except OSError:
                parts.append(f"## File: {name}\n(File not found or inaccessible)\n")
        parts.append("</context>")
        return "\n".join(parts)

    def _assemble_output_constraints(self) -> str:
        return (
            "<output_constraints>\n"
            f"- LANGUAGE: All documentation, comments in code, and summaries MUST be "
            f"written in {self.output_language}.\n"
            "- FORMAT: Use structured tags like FILE: [path], PATCH: [path], or "
            "SUMMARY: [text] when applicable.\n"
            "</output_constraints>"
        )

    def _assemble_session_history(self, session_id: str) -> str:
        if self.session_store is None or not self.session_store.exists(session_id):
            return ""
        try:
            session = self.session_store.load(session_id)
        except ValueError as e:
            logger.warning(f"Cannot read session history for {session_id}: {e}")
            return ""

        completed = session.events_of(SessionEventType.PHASE_COMPLETE)[-SESSION_HISTORY_LIMIT:]
        if not completed:
            return ""
        lines = [
            f"- {e.phase} (by @{e.agent}), {e.data.get('tokens', 0)} tokens"
            for e in completed
        ]
        return (
            "<session_history>\n"
            f"Mission: {session.mission_title}\n"
            "Completed phases:\n" + "\n".join(lines) + "\n</session_history>"
        )

    def _write(self, task: str, prompt: str) -> Path:
        compiled_dir = self.agentflow_dir / COMPILED_DIRNAME
        compiled_dir.mkdir(parents=True, exist_ok=True)

        stamp = (
            datetime.now(timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
            .replace(":", "-")
            .replace(".", "-")
        )
        safe_task = task.replace("/", "-")
        path = compiled_dir / f"{safe_task}-{stamp}{COMPILED_PROMPT_SUFFIX}"
        suffix = 1
        while path.exists():
            path = compiled_dir / f"{safe_task}-{stamp}-{suffix}{COMPILED_PROMPT_SUFFIX}"
            suffix += 1

        path.write_text(prompt, encoding="utf-8")
        logger.debug(f"Compiled prompt written to {path}")
        return path


def _section(name: str, content: str, priority: SectionPriority) -> PromptSection:
    return PromptSection(
        name=name,
        content=content,
        priority=int(priority),
        tokens=estimate_tokens(content),
    )
