import pytest

from agentflow.application.prompt_compiler import PromptCompiler, load_markdown
from agentflow.domain.context_tracker import get_bracket
from agentflow.domain.errors import WorkflowDefinitionError
from agentflow.domain.models.session import SessionEventType
from agentflow.domain.persistence.gotchas_memory import GotchasMemory
from agentflow.domain.persistence.session_store import SessionStore

# Rounds that land in each bracket for a 200k window
FRESH, MODERATE, DEPLETED, CRITICAL = 1, 30, 40, 50


@pytest.fixture
def store(project):
    return SessionStore(project.agentflow_dir / "state")


@pytest.fixture
def compiler(project, store):
    project.add_agent("dev", "You are the developer.")
    project.add_task("build", "Build the feature.")
    return PromptCompiler(project.root, session_store=store)


def _compile(compiler, prompt_count=FRESH, **kw) -> str:
    path = compiler.compile(
        kw.pop("agent", "dev"),
        kw.pop("task", "build"),
        session_id=kw.pop("session_id", "sess-1"),
        prompt_count=prompt_count,
        runner="claude-code",
        module="sdlc",
        **kw,
    )
    return path.read_text(encoding="utf-8")


class TestCompile:
    def test_writes_prompt_file(self, compiler, project):
        path = compiler.compile(
            "dev", "build", session_id="s", prompt_count=1, runner="claude-code", module="sdlc"
        )

        assert path.parent == project.agentflow_dir / "compiled"
        assert path.name.startswith("build-")
        assert path.name.endswith(".prompt.md")

    def test_fresh_prompt_has_core_sections_only(self, compiler):
        prompt = _compile(compiler)

        assert "bracket: FRESH" in prompt
        assert "<system>\nYou are the developer.\n</system>" in prompt
        assert "<task>\nBuild the feature.\n</task>" in prompt
        assert "<rules>" in prompt
        assert "written in English" in prompt
        assert "<session_history>" not in prompt
        assert "<handoff_warning>" not in prompt

    def test_sections_keep_assembly_order(self, compiler):
        prompt = _compile(compiler)
        positions = [prompt.index(tag) for tag in ("<system>", "<rules>", "<task>", "<context>", "<output_constraints>")]
        assert positions == sorted(positions)

    def test_same_task_twice_gets_distinct_files(self, compiler):
        first = compiler.compile("dev", "build", session_id="s", prompt_count=1, runner="claude", module="sdlc")
        second = compiler.compile("dev", "build", session_id="s", prompt_count=1, runner="claude", module="sdlc")
        assert first != second

    def test_output_language(self, project):
        project.add_agent("dev")
        project.add_task("build")
        compiler = PromptCompiler(project.root, output_language="German")
        assert "written in German" in _compile(compiler)


class TestComponents:
    def test_core_shadows_module(self, compiler, project):
        project.add_agent("dev", "Core developer.", core=True)
        assert "Core developer." in _compile(compiler)

    def test_front_matter_is_stripped(self, compiler, project):
        project.add_agent("dev", "---\nname: dev\nrole: builder\n---\nBody only.")
        prompt = _compile(compiler)
        assert "Body only." in prompt
        assert "role: builder" not in prompt

    def test_missing_task(self, compiler):
        with pytest.raises(WorkflowDefinitionError, match="Unknown task 'deploy'"):
            _compile(compiler, task="deploy")

    def test_missing_agent(self, compiler):
        with pytest.raises(WorkflowDefinitionError, match="Unknown agent 'ghost'"):
            _compile(compiler, agent="ghost")

    def test_validate_resolves_without_writing(self, compiler, project):
        compiler.validate("dev", "build", "sdlc")

        with pytest.raises(WorkflowDefinitionError, match="Unknown agent 'ghost'"):
            compiler.validate("ghost", "build", "sdlc")
        with pytest.raises(WorkflowDefinitionError, match="Unknown task 'deploy'"):
            compiler.validate("dev", "deploy", "sdlc")
        assert not (project.agentflow_dir / "compiled").exists()

    def test_load_markdown_without_front_matter(self, tmp_path):
        path = tmp_path / "a.md"
        path.write_text("# Title\nText", encoding="utf-8")
        component = load_markdown(path)
        assert component.front_matter == {}
        assert component.body == "# Title\nText"

    def test_rules_from_core_then_module(self, compiler, project):
        project.add_rule("b-style", "Use black.")
        project.add_rule("a-tests", "Write tests.")
        project.add_rule("z-module", "Module rule.", core=False)

        prompt = _compile(compiler)

        assert prompt.index("a-tests.md") < prompt.index("b-style.md") < prompt.index("z-module.md")


class TestContext:
    def test_context_files_and_project_identity(self, compiler, project):
        (project.root / "README.md").write_text("Project readme", encoding="utf-8")
        artifacts = project.agentflow_dir / "artifacts"
        artifacts.mkdir(parents=True)
        (artifacts / "00-context.md").write_text("We build rockets.", encoding="utf-8")

        prompt = _compile(compiler, context_files=["README.md", "missing.md"])

        assert "## Project Rules & Identity\nWe build rockets." in prompt
        assert "## File: README.md\n```\nProject readme\n```" in prompt
        assert "## File: missing.md\n(File not found or inaccessible)" in prompt

    def test_oversized_context_is_dropped_to_fit_budget(self, compiler, project):
        (project.root / "huge.txt").write_text("word " * 5000, encoding="utf-8")

        prompt = _compile(compiler, context_files=["huge.txt"])

        assert "huge.txt" not in prompt
        assert "<rules>" in prompt
        assert "<task>" in prompt


class TestBracketSections:
    def _session_with_history(self, store, make_session):
        session = make_session(mission_title="Ship payments")
        session.append_event(SessionEventType.SESSION_START, "master")
        session.append_event(SessionEventType.PHASE_COMPLETE, "architect", "plan", {"tokens": 1500})
        store.save(session)

    def test_moderate_includes_history_and_handoff(self, compiler, project, store, make_session):
        self._session_with_history(store, make_session)
        handoff = project.agentflow_dir / "state" / ".handoff.md"
        handoff.write_text("# Session Handoff\nresume at build", encoding="utf-8")

        prompt = _compile(compiler, prompt_count=MODERATE)

        assert "bracket: MODERATE" in prompt
        assert "Mission: Ship payments" in prompt
        assert "- plan (by @architect), 1500 tokens" in prompt
        assert "<continue_here>\n# Session Handoff\nresume at build" in prompt
        assert handoff.exists()

    def test_moderate_includes_artifact_index(self, compiler, project):
        artifacts = project.agentflow_dir / "artifacts"
        artifacts.mkdir(parents=True)
        (artifacts / "api.md").write_text("# API contract\nGET /things", encoding="utf-8")

        prompt = _compile(compiler, prompt_count=MODERATE)

        assert "<artifact_index>" in prompt
        assert "API contract" in prompt

    def test_gotchas_from_depleted(self, compiler, project):
        memory = GotchasMemory(project.root)
        for _ in range(3):
            memory.record_error("npm ERR! missing lockfile", "dev")

        assert "<gotchas>" not in _compile(compiler, prompt_count=MODERATE)
        prompt = _compile(compiler, prompt_count=DEPLETED)
        assert "- npm ERR! missing lockfile (seen 3x)" in prompt

    def test_critical_adds_handoff_warning(self, compiler):
        prompt = _compile(compiler, prompt_count=CRITICAL)
        assert "bracket: CRITICAL" in prompt
        assert "<handoff_warning>" in prompt

    def test_build_sections_without_session(self, compiler):
        sections = compiler.build_sections(
            "dev", "build", session_id="unknown", module="sdlc", bracket=get_bracket(MODERATE)
        )
        names = [s.name for s in sections]
        assert "session_history" not in names
        assert names[:6] == ["header", "agent", "rules", "task", "context", "output_constraints"]
