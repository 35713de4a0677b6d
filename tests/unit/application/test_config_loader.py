from pathlib import Path

import pytest

from agentflow.application.config_loader import ConfigLoadError, load_config
from agentflow.domain.model_profiles import ModelProfile
from agentflow.domain.wave_planner import WaveCyclePolicy


def _write_config(root: Path, text: str) -> Path:
    path = root / ".agentflow" / "config.yml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def roots(tmp_path):
    project = tmp_path / "project"
    home = tmp_path / "home"
    project.mkdir()
    home.mkdir()
    return project, home


def test_defaults_when_no_files(roots):
    project, home = roots

    cfg = load_config(project_root=project, user_home=home)

    assert cfg.runner == "auto-detect"
    assert cfg.model_profile == ModelProfile.BALANCED
    assert cfg.wave_cycle_policy == WaveCyclePolicy.DEGRADE
    assert cfg.session.crash_detection_minutes == 30
    assert cfg.session.max_events == 200
    assert cfg.resolve_module() == "sdlc"


def test_project_overrides_user(roots):
    project, home = roots
    _write_config(home, "runner: gemini-cli\noutput_language: Spanish\n")
    _write_config(project, "runner: claude-code\n")

    cfg = load_config(project_root=project, user_home=home)

    assert cfg.runner == "claude-code"
    assert cfg.output_language == "Spanish"


def test_nested_session_settings_are_deep_merged(roots):
    project, home = roots
    _write_config(home, "session:\n  max_events: 50\n")
    _write_config(project, "session:\n  crash_detection_minutes: 5\n")

    cfg = load_config(project_root=project, user_home=home)

    assert cfg.session.max_events == 50
    assert cfg.session.crash_detection_minutes == 5
    assert cfg.session.stale_hours == 168


def test_null_collections_become_empty(roots):
    project, home = roots
    _write_config(project, "model_overrides:\nmodules:\n")

    cfg = load_config(project_root=project, user_home=home)

    assert cfg.model_overrides == {}
    assert cfg.modules == []


def test_first_installed_module_is_default(roots):
    project, home = roots
    _write_config(project, "modules: [marketing, sdlc]\n")
    assert load_config(project_root=project, user_home=home).resolve_module() == "marketing"


def test_empty_file_is_ignored(roots):
    project, home = roots
    _write_config(project, "")
    assert load_config(project_root=project, user_home=home).runner == "auto-detect"


class TestErrors:
    def test_malformed_yaml(self, roots):
        project, home = roots
        path = _write_config(project, "runner: [unclosed\n")

        with pytest.raises(ConfigLoadError) as exc:
            load_config(project_root=project, user_home=home)

        assert exc.value.path == path
        assert "Malformed YAML" in str(exc.value)

    def test_root_must_be_mapping(self, roots):
        project, home = roots
        _write_config(project, "- a\n- b\n")
        with pytest.raises(ConfigLoadError, match="mapping"):
            load_config(project_root=project, user_home=home)

    def test_unknown_key_is_rejected(self, roots):
        project, home = roots
        _write_config(project, "runnr: claude\n")
        with pytest.raises(ConfigLoadError, match="Invalid configuration"):
            load_config(project_root=project, user_home=home)

    def test_invalid_value_is_rejected(self, roots):
        project, home = roots
        _write_config(project, "wave_cycle_policy: explode\n")
        with pytest.raises(ConfigLoadError):
            load_config(project_root=project, user_home=home)

    def test_max_events_floor(self, roots):
        project, home = roots
        _write_config(project, "session:\n  max_events: 1\n")
        with pytest.raises(ConfigLoadError):
            load_config(project_root=project, user_home=home)
