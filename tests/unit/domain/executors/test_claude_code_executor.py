import asyncio
import json

import pytest

from agentflow.domain.errors import ExecutorError
from agentflow.domain.executors import claude_code_executor
from agentflow.domain.executors.claude_code_executor import (
    ClaudeCodeExecutor,
    estimate_tokens_from_cost,
)
from agentflow.domain.executors.subprocess_runner import CapturedRun


@pytest.fixture
def prompt_file(tmp_path):
    path = tmp_path / "build-2026.prompt.md"
    path.write_text("<task>build</task>", encoding="utf-8")
    return path


def _fake_spawn(monkeypatch, run: CapturedRun | Exception, calls: list | None = None):
    async def fake(binary, args, input_text, cwd, timeout_ms):
        if calls is not None:
            calls.append((binary, args, input_text, timeout_ms))
        if isinstance(run, Exception):
            raise run
        return run

    monkeypatch.setattr(claude_code_executor, "spawn_capture", fake)


def _run(executor, prompt_file, **kw):
    return asyncio.run(executor.run(prompt_file, prompt_file.parent, **kw))


def test_estimate_tokens_from_cost():
    assert estimate_tokens_from_cost(0.009) == 1000
    assert estimate_tokens_from_cost(0) == 0


def test_build_args():
    executor = ClaudeCodeExecutor()
    assert executor.build_args(None) == ["-p", "--output-format", "json"]
    assert executor.build_args("claude-opus-4-6")[-2:] == ["--model", "claude-opus-4-6"]


def test_json_result_is_parsed(monkeypatch, prompt_file):
    calls = []
    payload = {"result": "All done", "cost_usd": 0.009, "is_error": False, "duration_ms": 4200}
    _fake_spawn(monkeypatch, CapturedRun(json.dumps(payload), "", 0, 4300), calls)

    result = _run(ClaudeCodeExecutor(), prompt_file, timeout_ms=1000, model="m")

    assert result.succeeded
    assert result.output == "All done"
    assert result.cost_usd == 0.009
    assert result.tokens_used == 1000
    assert result.duration_ms == 4200
    binary, args, input_text, timeout_ms = calls[0]
    assert binary == "claude"
    assert args[-2:] == ["--model", "m"]
    assert input_text == "<task>build</task>"
    assert timeout_ms == 1000


def test_is_error_becomes_failure(monkeypatch, prompt_file):
    payload = {"result": "Rate limited", "cost_usd": 0, "is_error": True}
    _fake_spawn(monkeypatch, CapturedRun(json.dumps(payload), "", 0, 10))

    result = _run(ClaudeCodeExecutor(), prompt_file)

    assert result.exit_code == 1
    assert result.error == "Rate limited"


def test_plain_text_output_is_passed_through(monkeypatch, prompt_file):
    _fake_spawn(monkeypatch, CapturedRun("plain answer", "warning: old cli", 2, 15))

    result = _run(ClaudeCodeExecutor(), prompt_file)

    assert result.output == "plain answer"
    assert result.exit_code == 2
    assert result.error == "warning: old cli"
    assert result.tokens_used == 0


def test_spawn_failure_becomes_failed_result(monkeypatch, prompt_file):
    _fake_spawn(monkeypatch, ExecutorError("Runner timed out after 1s"))

    result = _run(ClaudeCodeExecutor(), prompt_file)

    assert result.exit_code == 1
    assert "timed out" in result.error


def test_missing_prompt_becomes_failed_result(tmp_path):
    result = asyncio.run(ClaudeCodeExecutor().run(tmp_path / "gone.prompt.md", tmp_path))
    assert result.exit_code == 1
    assert "Cannot read prompt" in result.error
