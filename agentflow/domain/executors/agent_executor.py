import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from agentflow.domain.constants import DEFAULT_PHASE_TIMEOUT_MS
from agentflow.domain.errors import ExecutorError
from agentflow.domain.models.executor_result import ExecutorResult

logger = logging.getLogger(__name__)


class AgentExecutor(ABC):
    """Abstract interface for agent runners (Strategy pattern).

    An executor turns a compiled prompt file into an ExecutorResult by
    running an external agent. A failing agent is reported through a
    non-zero ``exit_code``, not an exception.
    """

    name: str = "unknown"
    binary: str | None = None

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        """Return executor metadata for discovery."""
        return {
            "name": cls.name,
            "binary": cls.binary,
            "reports_usage": False,
        }

    def is_available(self) -> bool:
        """True when the runner's binary is on PATH."""
        return self.binary is None or shutil.which(self.binary) is not None

    async def run(
        self,
        prompt_path: Path,
        cwd: Path,
        timeout_ms: int = DEFAULT_PHASE_TIMEOUT_MS,
        model: str | None = None,
    ) -> ExecutorResult:
        """Execute the prompt at ``prompt_path`` inside ``cwd``.

        Args:
            prompt_path: Compiled prompt file; its content goes to stdin
            cwd: Working directory for the agent
            timeout_ms: Kill the agent after this many milliseconds
            model: Optional model hint passed through to the runner

        Returns:
            ExecutorResult; spawn failures and timeouts become exit_code 1
        """
        try:
            return await self._run(prompt_path, cwd, timeout_ms, model)
        except ExecutorError as e:
            logger.warning(f"{self.name} executor failed: {e}")
            return ExecutorResult(exit_code=1, error=str(e))

    @abstractmethod
    async def _run(
        self,
        prompt_path: Path,
        cwd: Path,
        timeout_ms: int,
        model: str | None,
    ) -> ExecutorResult:
        ...

    @staticmethod
    def _read_prompt(prompt_path: Path) -> str:
        try:
            return prompt_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ExecutorError(f"Cannot read prompt {prompt_path}: {e}") from e
