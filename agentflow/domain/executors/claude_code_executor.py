"""Claude Code executor.

Runs ``claude -p --output-format json`` with the prompt on stdin. The CLI
answers with one JSON object::

    {"result": "...", "cost_usd": 0.01, "is_error": false, "duration_ms": 1234}

Older CLI versions print plain text; that output is passed through as is.
"""

import json
import logging
import math
from pathlib import Path
from typing import Any

from agentflow.domain.executors.agent_executor import AgentExecutor
from agentflow.domain.executors.subprocess_runner import spawn_capture
from agentflow.domain.models.executor_result import ExecutorResult

logger = logging.getLogger(__name__)

# Blended input/output rate used to back tokens out of cost (~$9/MTok)
USD_PER_TOKEN = 0.000009


def estimate_tokens_from_cost(cost_usd: float) -> int:
    if cost_usd <= 0:
        return 0
    return math.floor(cost_usd / USD_PER_TOKEN + 0.5)


class ClaudeCodeExecutor(AgentExecutor):
    name = "claude-code"
    binary = "claude"

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        return {**super().get_metadata(), "reports_usage": True}

    def build_args(self, model: str | None) -> list[str]:
        args = ["-p", "--output-format", "json"]
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

        try:
            payload = json.loads(run.stdout)
            if not isinstance(payload, dict):
                raise ValueError("expected a JSON object")
        except ValueError:
            logger.debug("Claude CLI output is not JSON, using raw stdout")
            return ExecutorResult(
                output=run.stdout,
                exit_code=run.exit_code,
                error=run.error_excerpt(),
                duration_ms=run.duration_ms,
            )

        cost = float(payload.get("cost_usd") or 0)
        is_error = bool(payload.get("is_error"))
        result = payload.get("result") or run.stdout
        return ExecutorResult(
            output=result,
            exit_code=1 if is_error else 0,
            tokens_used=estimate_tokens_from_cost(cost),
            cost_usd=cost,
            error=(payload.get("result") or run.stderr) if is_error else None,
            duration_ms=int(payload.get("duration_ms") or run.duration_ms),
        )
