from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class GateType(str, Enum):
    """Gate declared on a phase.

    Only USER_APPROVAL suspends the session; the other values are accepted
    for compatibility with existing workflow files and do not pause.
    """

    USER_APPROVAL = "user_approval"
    AUTO_PASS = "auto_pass"
    USER_ACCEPTANCE = "user_acceptance"


class Phase(BaseModel):
    """One step of a workflow, executed by one agent against one task."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str
    agent: str
    task: str
    next: str | None = None
    gate: GateType | None = None
    # Output substring -> successor phase id, scanned in declaration order
    decision: dict[str, str] = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list, alias="dependsOn")
    retry: int = Field(default=0, ge=0, validation_alias=AliasChoices("retry", "retryLimit"))
    timeout_ms: int | None = Field(default=None, gt=0, alias="timeoutMs")

    @field_validator("id", "agent", "task")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("must be non-empty")
        return v2

    @field_validator("gate", mode="before")
    @classmethod
    def _normalize_gate(cls, v):
        # "user-approval" and "user_approval" are both in circulation
        return v.replace("-", "_").lower() if isinstance(v, str) else v

    @field_validator("depends_on", mode="before")
    @classmethod
    def _none_is_empty(cls, v):
        return [] if v is None else v

    @property
    def requires_approval(self) -> bool:
        return self.gate == GateType.USER_APPROVAL

    @property
    def task_id(self) -> str:
        """Task reference with its file extension dropped."""
        return self.task.replace(".md", "", 1).replace(".yaml", "", 1)


class WorkflowDefinition(BaseModel):
    """Immutable workflow definition, loaded once per run."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str | None = None
    phases: list[Phase] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_phase_ids(self) -> "WorkflowDefinition":
        seen: set[str] = set()
        duplicates: list[str] = []
        for phase in self.phases:
            if phase.id in seen:
                duplicates.append(phase.id)
            seen.add(phase.id)
        if duplicates:
            raise ValueError(f"Duplicate phase ids: {sorted(set(duplicates))}")
        return self

    @property
    def is_wave_mode(self) -> bool:
        """True when any phase declares dependencies."""
        return any(phase.depends_on for phase in self.phases)

    def phase_index(self, phase_id: str) -> int | None:
        for index, phase in enumerate(self.phases):
            if phase.id == phase_id:
                return index
        return None

    def get_phase(self, phase_id: str) -> Phase | None:
        index = self.phase_index(phase_id)
        return None if index is None else self.phases[index]
