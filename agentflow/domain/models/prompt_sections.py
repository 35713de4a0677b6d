"""Prompt section model for budget-aware prompt building."""

from enum import IntEnum

from pydantic import BaseModel, Field


class SectionPriority(IntEnum):
    """Drop order under budget pressure: higher values are dropped first.

    Priority 0 sections are protected and never dropped.
    """

    AGENT = 0
    TASK = 0
    OUTPUT_CONSTRAINTS = 0
    RULES = 1
    GOTCHAS = 2
    CONTEXT_FILES = 3
    CONTINUE_HERE = 4
    ARTIFACT_INDEX = 5
    SESSION_HISTORY = 6


class PromptSection(BaseModel):
    """One named block of a compiled prompt."""

    name: str
    content: str
    priority: int = Field(ge=0)
    tokens: int = Field(ge=0)

    @property
    def protected(self) -> bool:
        return self.priority == 0
