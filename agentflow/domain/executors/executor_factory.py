import logging
from typing import Any

from agentflow.domain.context_tracker import normalize_runner
from agentflow.domain.executors.agent_executor import AgentExecutor
from agentflow.domain.executors.claude_code_executor import ClaudeCodeExecutor
from agentflow.domain.executors.codex_cli_executor import CodexCliExecutor
from agentflow.domain.executors.gemini_cli_executor import GeminiCliExecutor
from agentflow.domain.executors.manual_executor import ManualExecutor

logger = logging.getLogger(__name__)

AUTO_DETECT = "auto-detect"


class ExecutorFactory:
    """Factory for agent executors (Factory pattern).

    Runner names are normalized ('Claude Code' -> 'claude-code') and
    resolved by exact key, then by prefix in either direction. Executors
    whose binary is missing are skipped; the manual executor is the
    fallback.
    """

    _registry: dict[str, type[AgentExecutor]] = {
        "claude-code": ClaudeCodeExecutor,
        "claude": ClaudeCodeExecutor,
        "gemini-cli": GeminiCliExecutor,
        "gemini": GeminiCliExecutor,
        "codex-cli": CodexCliExecutor,
        "codex": CodexCliExecutor,
    }

    @classmethod
    def register(cls, key: str, executor_class: type[AgentExecutor]) -> None:
        """
        Register an executor implementation.

        Args:
            key: Normalized runner name (e.g., "claude-code")
            executor_class: The executor class to register
        """
        cls._registry[normalize_runner(key)] = executor_class

    @classmethod
    def create(cls, runner: str) -> AgentExecutor:
        """
        Create the executor for a configured runner.

        Args:
            runner: Runner name from configuration

        Returns:
            First available matching executor, or ManualExecutor
        """
        key = normalize_runner(runner)

        candidates: list[type[AgentExecutor]] = []
        if key in cls._registry:
            candidates.append(cls._registry[key])
        for name, executor_class in cls._registry.items():
            if key.startswith(name) or name.startswith(key):
                candidates.append(executor_class)
        if key == AUTO_DETECT:
            candidates.extend(cls._registry.values())

        for executor_class in candidates:
            executor = executor_class()
            if executor.is_available():
                logger.debug(f"Runner '{runner}' -> {executor.name} executor")
                return executor

        logger.info(f"No CLI found for runner '{runner}', using manual execution")
        return ManualExecutor()

    @classmethod
    def list_executors(cls) -> list[str]:
        return list(cls._registry.keys())

    @classmethod
    def get_all_metadata(cls) -> list[dict[str, Any]]:
        seen: list[type[AgentExecutor]] = []
        for executor_class in cls._registry.values():
            if executor_class not in seen:
                seen.append(executor_class)
        return [c.get_metadata() for c in seen]
