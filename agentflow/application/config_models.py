"""Engine configuration models.

Config structure (``.agentflow/config.yml``)::

    runner: claude-code
    model_profile: balanced
    model_overrides:
      architect: claude-opus-4-6
    module: sdlc
    output_language: English
    wave_cycle_policy: degrade
    session:
      crash_detection_minutes: 30
      max_events: 200
      stale_hours: 168
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agentflow.domain.constants import (
    DEFAULT_CRASH_MINUTES,
    DEFAULT_MAX_EVENTS,
    DEFAULT_MODULE,
    DEFAULT_STALE_HOURS,
)
from agentflow.domain.model_profiles import ModelProfile
from agentflow.domain.wave_planner import WaveCyclePolicy


class SessionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    crash_detection_minutes: int = Field(default=DEFAULT_CRASH_MINUTES, ge=1)
    max_events: int = Field(default=DEFAULT_MAX_EVENTS, ge=2)
    stale_hours: float = Field(default=DEFAULT_STALE_HOURS, gt=0)


class EngineConfig(BaseModel):
    """Validated, merged engine configuration."""

    model_config = ConfigDict(extra="forbid")

    runner: str = "auto-detect"
    model_profile: ModelProfile = ModelProfile.BALANCED
    model_overrides: dict[str, str] = Field(default_factory=dict)
    modules: list[str] = Field(default_factory=list)  # installed, in install order
    module: str | None = None
    output_language: str = "English"
    wave_cycle_policy: WaveCyclePolicy = WaveCyclePolicy.DEGRADE
    session: SessionSettings = Field(default_factory=SessionSettings)

    @field_validator("model_overrides", mode="before")
    @classmethod
    def _null_overrides(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("modules", mode="before")
    @classmethod
    def _null_modules(cls, v: Any) -> Any:
        return [] if v is None else v

    def resolve_module(self) -> str:
        """Explicit module, else the first installed one, else 'sdlc'."""
        if self.module:
            return self.module
        if self.modules:
            return self.modules[0]
        return DEFAULT_MODULE
