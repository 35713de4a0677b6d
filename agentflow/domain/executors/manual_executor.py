import logging
from pathlib import Path

from agentflow.domain.executors.agent_executor import AgentExecutor
from agentflow.domain.models.executor_result import ExecutorResult

logger = logging.getLogger(__name__)


class ManualExecutor(AgentExecutor):
    """Human-in-the-loop executor (prompt left on disk for the operator).

    Always available. Reports success with empty output.
    """

    name = "manual"
    binary = None

    async def _run(
        self,
        prompt_path: Path,
        cwd: Path,
        timeout_ms: int,
        model: str | None,
    ) -> ExecutorResult:
        logger.info(f"Manual execution: run the prompt at {prompt_path}")
        return ExecutorResult()
