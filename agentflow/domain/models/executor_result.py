"""Executor result model for agent subprocess runs."""

from pydantic import BaseModel, Field


class ExecutorResult(BaseModel):
    """Outcome of one agent invocation.

    A non-zero exit_code is a failed attempt; ``error`` then carries the
    truncated stderr (or stdout when stderr was empty).
    """

    output: str = ""
    exit_code: int = 0
    tokens_used: int = Field(default=0, ge=0)
    cost_usd: float = Field(default=0.0, ge=0.0)
    error: str | None = None
    duration_ms: int = Field(default=0, ge=0)

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0
