from pathlib import Path

from agentflow.domain.executors.agent_executor import AgentExecutor
from agentflow.domain.executors.subprocess_runner import spawn_capture
from agentflow.domain.models.executor_result import ExecutorResult


class CodexCliExecutor(AgentExecutor):
    """Runs OpenAI ``codex --quiet`` with the prompt piped on stdin."""

    name = "codex-cli"
    binary = "codex"

    def build_args(self, model: str | None) -> list[str]:
        args = ["--quiet"]
        if model:
            args.extend(["--model", model])
        return args

    async def _run(
        self,
        prompt_path: Path,
        cwd: Path,
        timeout_ms: int,
        model: str | None,
    ) -> ExecutorResult:
        prompt = self._read_prompt(prompt_path)
        run = await spawn_capture(
            self.binary, self.build_args(model), prompt, cwd, timeout_ms
        )
        return ExecutorResult(
            output=run.stdout,
            exit_code=run.exit_code,
            error=run.error_excerpt(),
            duration_ms=run.duration_ms,
        )
