"""Agent executors: run a compiled prompt through an external agent CLI."""

from agentflow.domain.executors.agent_executor import AgentExecutor
from agentflow.domain.executors.claude_code_executor import ClaudeCodeExecutor
from agentflow.domain.executors.codex_cli_executor import CodexCliExecutor
from agentflow.domain.executors.executor_factory import ExecutorFactory
from agentflow.domain.executors.gemini_cli_executor import GeminiCliExecutor
from agentflow.domain.executors.manual_executor import ManualExecutor

__all__ = [
    "AgentExecutor",
    "ClaudeCodeExecutor",
    "CodexCliExecutor",
    "ExecutorFactory",
    "GeminiCliExecutor",
    "ManualExecutor",
]
