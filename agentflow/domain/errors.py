"""Domain-level exceptions for agentflow."""


class WorkflowDefinitionError(ValueError):
    """Raised when a workflow, agent or task definition is missing or malformed.

    Always fatal: raised before any session state is written.
    """

    pass


class ExecutorError(Exception):
    """Raised when an agent process cannot be spawned or exceeds its timeout."""

    pass


class InvalidCommand(Exception):
    """Raised when a command is not valid for the session's current state."""

    def __init__(self, command: str, status: str, detail: str | None = None):
        self.command = command
        self.status = status
        self.detail = detail
        message = f"Command '{command}' is not valid for a session that is {status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
