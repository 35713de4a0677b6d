"""Workflow scheduling: drives a session through its phases.

Linear workflows follow decision routing, then ``next`` pointers, then
declaration order. Workflows that declare ``depends_on`` run in dependency
waves, with the members of a wave executed concurrently.

Every session mutation is persisted before the scheduler moves on, so an
interrupted run can be resumed from the PHASE_COMPLETE events on disk.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from agentflow.application.config_models import EngineConfig
from agentflow.application.prompt_compiler import PromptAssembler, PromptCompiler
from agentflow.application.session_continuity import delete_handoff, generate_handoff
from agentflow.application.workflow_loader import WorkflowLoader
from agentflow.domain.constants import (
    AGENTFLOW_DIRNAME,
    DEFAULT_PHASE_TIMEOUT_MS,
    MASTER_AGENT,
    MAX_BACKOFF_SECONDS,
    STATE_DIRNAME,
)
from agentflow.domain.context_tracker import get_bracket, get_max_context_for_runner
from agentflow.domain.errors import InvalidCommand, WorkflowDefinitionError
from agentflow.domain.events.emitter import WorkflowEventEmitter
from agentflow.domain.events.event import WorkflowEvent
from agentflow.domain.events.event_types import WorkflowEventType
from agentflow.domain.executors.agent_executor import AgentExecutor
from agentflow.domain.executors.executor_factory import ExecutorFactory
from agentflow.domain.model_profiles import resolve_model
from agentflow.domain.models.executor_result import ExecutorResult
from agentflow.domain.models.session import (
    CrashInfo,
    Session,
    SessionEventType,
    SessionStatus,
)
from agentflow.domain.models.workflow import Phase, WorkflowDefinition
from agentflow.domain.persistence.decision_log import DecisionLog, DecisionLogCorruptError
from agentflow.domain.persistence.gotchas_memory import GotchasMemory
from agentflow.domain.persistence.session_store import SessionStore
from agentflow.domain.session_health import detect_crashed_session, generate_session_title
from agentflow.domain.wave_planner import WavePlan, plan_waves

logger = logging.getLogger(__name__)

EXECUTION_DOMAIN = "execution"


class PhaseOutcome(str, Enum):
    COMPLETED = "completed"
    PAUSED = "paused"
    FAILED = "failed"


@dataclass
class WorkflowScheduler:
    """Runs workflows for one project.

    Collaborators default to the file-backed implementations under
    ``<project_root>/.agentflow``; tests inject fakes. ``sleep`` is the
    backoff primitive between retry attempts.
    """

    project_root: Path
    config: EngineConfig
    executor: AgentExecutor | None = None
    prompt_compiler: PromptAssembler | None = None
    workflow_loader: WorkflowLoader | None = None
    session_store: SessionStore | None = None
    decision_log: DecisionLog | None = None
    gotchas: GotchasMemory | None = None
    event_emitter: WorkflowEventEmitter | None = None
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    def __post_init__(self) -> None:
        self.agentflow_dir = self.project_root / AGENTFLOW_DIRNAME
        state_root = self.agentflow_dir / STATE_DIRNAME

        if self.session_store is None:
            self.session_store = SessionStore(
                state_root, max_events=self.config.session.max_events
            )
        if self.decision_log is None:
            self.decision_log = DecisionLog(state_root)
        if self.gotchas is None:
            self.gotchas = GotchasMemory(self.project_root)
        if self.workflow_loader is None:
            self.workflow_loader = WorkflowLoader(self.agentflow_dir)
        if self.prompt_compiler is None:
            self.prompt_compiler = PromptCompiler(
                self.project_root,
                output_language=self.config.output_language,
                session_store=self.session_store,
                gotchas=self.gotchas,
            )
        if self.executor is None:
            self.executor = ExecutorFactory.create(self.config.runner)
        if self.event_emitter is None:
            self.event_emitter = WorkflowEventEmitter()

    # ========================================================================
    # Commands
    # ========================================================================

    def start(self, workflow_id: str, module: str | None = None, mission: str | None = None) -> str:
        """Start a new session and run it until it completes, pauses or fails.

        Returns:
            The new session id

        Raises:
            WorkflowDefinitionError: If the workflow cannot be loaded or a
                phase names a missing agent or task; no session is written
                in that case
        """
        return asyncio.run(self.start_async(workflow_id, module=module, mission=mission))

    def resume(self, session_id: str) -> CrashInfo | None:
        """Continue a session from its first incomplete phase.

        Returns:
            CrashInfo when the session looked crashed, else None

        Raises:
            FileNotFoundError: If the session doesn't exist
        """
        return asyncio.run(self.resume_async(session_id))

    def approve(self, session_id: str) -> Session:
        """Approve the gate a session is paused at and continue the run.

        Raises:
            InvalidCommand: If the session is not paused at a user-approval gate
        """
        return asyncio.run(self.approve_async(session_id))

    async def start_async(
        self, workflow_id: str, module: str | None = None, mission: str | None = None
    ) -> str:
        module = module or self.config.resolve_module()
        workflow = self.workflow_loader.load(workflow_id, module)
        # Checked up front so definition errors fail before any write
        self._check_references(workflow, module)
        plan = self._plan(workflow) if workflow.is_wave_mode else None

        self._clean_stale_sessions()

        mission = mission or workflow.name
        first = workflow.phases[0] if workflow.phases else None
        session = Session(
            session_id=str(uuid.uuid4()),
            workflow_id=workflow_id,
            mission_title=mission,
            title=generate_session_title(mission, first.name if first else None),
            current_agent=MASTER_AGENT,
            current_phase=first.id if first else None,
            status=SessionStatus.RUNNING,
        )
        session.append_event(
            SessionEventType.SESSION_START,
            MASTER_AGENT,
            data={"workflow_id": workflow_id, "mission": mission, "module": module},
        )
        self.session_store.save(session)
        self._emit(
            WorkflowEventType.SESSION_STARTED,
            session,
            message=f"{workflow.name} ({len(workflow.phases)} phases)",
        )
        self._record_decision(
            session,
            title=f"Started workflow: {workflow_id}",
            context=(
                f'Initiated "{workflow.name}" with {len(workflow.phases)} phases. '
                f"Model profile: {self.config.model_profile.value}."
            ),
            decision=f'Execute workflow "{workflow_id}" from module "{module}"',
            agent=MASTER_AGENT,
        )

        if plan is not None:
            await self._run_waves(session, workflow, module, plan)
        else:
            await self._run_linear(session, workflow, module, 0)
        return session.session_id

    async def resume_async(self, session_id: str) -> CrashInfo | None:
        session = self.session_store.load(session_id)
        if session.status == SessionStatus.COMPLETED:
            logger.info(f"Session {session_id} is already completed")
            return None

        crash = detect_crashed_session(
            session, self.config.session.crash_detection_minutes
        )
        if crash:
            logger.warning(
                f"Session {session_id} may have crashed: last activity "
                f"{crash.minutes_since_activity}min ago (phase: {crash.last_phase}, "
                f"agent: @{crash.last_agent})"
            )
            self._emit(
                WorkflowEventType.CRASH_DETECTED,
                session,
                phase=crash.last_phase,
                agent=crash.last_agent,
                message=f"inactive for {crash.minutes_since_activity}min, resuming from last known state",
            )

        module = self._session_module(session)
        workflow = self.workflow_loader.load(session.workflow_id, module)
        self._check_references(workflow, module)
        plan = self._plan(workflow) if workflow.is_wave_mode else None

        completed = session.completed_phase_ids()
        next_index = next(
            (i for i, p in enumerate(workflow.phases) if p.id not in completed),
            None,
        )
        if next_index is None:
            session.status = SessionStatus.COMPLETED
            self.session_store.save(session)
            self.session_store.update_dashboard(session)
            return crash

        self._mark_resumed(session, crashed=crash is not None)
        if plan is not None:
            await self._run_waves(session, workflow, module, plan)
        else:
            await self._run_linear(session, workflow, module, next_index)
        return crash

    async def approve_async(self, session_id: str) -> Session:
        session = self.session_store.load(session_id)
        if session.status != SessionStatus.PAUSED:
            raise InvalidCommand("approve", session.status.value)

        module = self._session_module(session)
        workflow = self.workflow_loader.load(session.workflow_id, module)
        self._check_references(workflow, module)
        phase = self._pending_gate(session, workflow)
        if phase is None:
            raise InvalidCommand(
                "approve",
                session.status.value,
                f"phase '{session.current_phase}' has no approval gate",
            )
        index = workflow.phase_index(phase.id)

        session.current_phase = phase.id
        session.current_agent = phase.agent
        session.append_event(
            SessionEventType.GATE_APPROVED,
            phase.agent,
            phase.id,
            {"gate": phase.gate.value},
        )
        session.append_event(
            SessionEventType.PHASE_COMPLETE,
            phase.agent,
            phase.id,
            {"tokens": 0, "cost": 0.0, "duration_ms": 0, "approved": True},
        )
        delete_handoff(self.agentflow_dir)
        self.session_store.save(session)
        self.session_store.update_dashboard(session)
        self._emit(WorkflowEventType.GATE_APPROVED, session, phase=phase.id, agent=phase.agent)
        self._record_decision(
            session,
            title=f"Approved: {phase.name}",
            context=f'Phase "{phase.id}" was approved by the user.',
            decision="Gate approved, continuing workflow",
            agent=phase.agent,
            phase=phase.id,
        )

        self._mark_resumed(session, crashed=False)
        if workflow.is_wave_mode:
            await self._run_waves(session, workflow, module, self._plan(workflow))
        else:
            await self._run_linear(
                session, workflow, module, self._resolve_successor(session, workflow, index, "")
            )
        return session

    def record_metrics(self, session_id: str, tokens: int, cost_usd: float) -> Session:
        """Add externally reported usage (e.g. from a manual run) to a session."""

        def apply(session: Session) -> None:
            session.tokens_used += tokens
            session.cost_usd += cost_usd
            session.append_event(
                SessionEventType.METRICS_UPDATE,
                session.current_agent,
                session.current_phase,
                {"tokens": tokens, "cost": cost_usd},
            )

        session = self.session_store.update(session_id, apply)
        self.session_store.update_dashboard(session)
        return session

    def completed_phases(self, session_id: str) -> set[str]:
        return self.session_store.load(session_id).completed_phase_ids()

    # ========================================================================
    # Drivers
    # ========================================================================

    async def _run_linear(
        self,
        session: Session,
        workflow: WorkflowDefinition,
        module: str,
        index: int,
    ) -> None:
        while index < len(workflow.phases):
            phase = workflow.phases[index]
            outcome, result = await self._execute_phase(session, workflow, phase, module)
            if outcome != PhaseOutcome.COMPLETED:
                return
            index = self._resolve_successor(session, workflow, index, result.output)

        self._complete_session(session, workflow)

    def _resolve_successor(
        self,
        session: Session,
        workflow: WorkflowDefinition,
        index: int,
        output: str,
    ) -> int:
        """Index of the phase to run after ``workflow.phases[index]``.

        Decision keys are matched case-insensitively against the output in
        declaration order; the first key whose target exists wins. Then the
        ``next`` pointer, then the following phase. An index past the end
        means the workflow is done.
        """
        phase = workflow.phases[index]

        if phase.decision and output:
            lowered = output.lower()
            for key, target in phase.decision.items():
                if key.lower() not in lowered:
                    continue
                target_index = workflow.phase_index(target)
                if target_index is not None:
                    self._emit(
                        WorkflowEventType.DECISION_ROUTED,
                        session,
                        phase=phase.id,
                        agent=phase.agent,
                        message=f'"{key}" -> {target}',
                    )
                    return target_index

        if phase.next:
            next_index = workflow.phase_index(phase.next)
            if next_index is not None:
                return next_index
            logger.warning(f"Phase '{phase.id}' points to unknown phase '{phase.next}'")

        return index + 1

    async def _run_waves(
        self,
        session: Session,
        workflow: WorkflowDefinition,
        module: str,
        plan: WavePlan,
    ) -> None:
        if plan.degraded:
            self._emit(
                WorkflowEventType.WAVE_PLAN_DEGRADED,
                session,
                message=f"circular or unknown dependencies, running sequentially: {', '.join(plan.stalled)}",
            )

        completed = session.completed_phase_ids()
        for number, wave in enumerate(plan.waves, start=1):
            pending = [p for p in wave if p.id not in completed]
            if not pending:
                continue

            if len(pending) == 1:
                outcome, _ = await self._execute_phase(session, workflow, pending[0], module)
                outcomes = [outcome]
            else:
                self._emit(
                    WorkflowEventType.WAVE_STARTED,
                    session,
                    message=f"wave {number}: [{', '.join(p.name for p in pending)}] (parallel)",
                )
                results = await asyncio.gather(
                    *(self._execute_phase(session, workflow, p, module) for p in pending)
                )
                outcomes = [outcome for outcome, _ in results]

            if any(o != PhaseOutcome.COMPLETED for o in outcomes):
                return

        self._complete_session(session, workflow)

    def _plan(self, workflow: WorkflowDefinition) -> WavePlan:
        return plan_waves(workflow.phases, self.config.wave_cycle_policy)

    def _check_references(self, workflow: WorkflowDefinition, module: str) -> None:
        """Resolve every phase's agent and task before the session is touched."""
        for phase in workflow.phases:
            self.prompt_compiler.validate(phase.agent, phase.task_id, module)

    # ========================================================================
    # Phase lifecycle
    # ========================================================================

    async def _execute_phase(
        self,
        session: Session,
        workflow: WorkflowDefinition,
        phase: Phase,
        module: str,
    ) -> tuple[PhaseOutcome, ExecutorResult | None]:
        try:
            prompt_path, model = self._prepare_phase(session, phase, module)
        except WorkflowDefinitionError as e:
            # Agent or task file removed after the run started
            result = ExecutorResult(exit_code=1, error=str(e))
            self._fail_phase(session, workflow, phase, result)
            return PhaseOutcome.FAILED, result

        if phase.requires_approval:
            self._pause_at_gate(session, workflow, phase)
            return PhaseOutcome.PAUSED, None

        result = await self._execute_with_retry(session, phase, prompt_path, model)
        if not result.succeeded:
            self._fail_phase(session, workflow, phase, result)
            return PhaseOutcome.FAILED, result

        self._complete_phase(session, phase, result)
        return PhaseOutcome.COMPLETED, result

    def _prepare_phase(
        self, session: Session, phase: Phase, module: str
    ) -> tuple[Path, str | None]:
        session.current_agent = phase.agent
        session.current_phase = phase.id
        session.prompt_count += 1
        bracket = get_bracket(
            session.prompt_count, get_max_context_for_runner(self.config.runner)
        )
        session.context_bracket = bracket.bracket
        session.append_event(
            SessionEventType.PHASE_START,
            phase.agent,
            phase.id,
            {"name": phase.name, "task": phase.task, "bracket": bracket.bracket.value},
        )
        self.session_store.save(session)

        prompt_path = self.prompt_compiler.compile(
            phase.agent,
            phase.task_id,
            session_id=session.session_id,
            prompt_count=session.prompt_count,
            runner=self.config.runner,
            module=module,
        )
        model = resolve_model(
            self.config.runner,
            self.config.model_profile,
            phase.agent,
            self.config.model_overrides,
        )

        model_label = f" | model: {model}" if model else ""
        self._emit(
            WorkflowEventType.PHASE_STARTED,
            session,
            phase=phase.id,
            agent=phase.agent,
            message=f"{phase.name} | bracket: {bracket.bracket.value}{model_label}",
            prompt=str(prompt_path),
        )
        return prompt_path, model

    def _pause_at_gate(
        self, session: Session, workflow: WorkflowDefinition, phase: Phase
    ) -> None:
        # A failed sibling in the same wave outranks a pause
        if session.status != SessionStatus.FAILED:
            session.status = SessionStatus.PAUSED
        session.append_event(
            SessionEventType.GATE_PAUSE,
            phase.agent,
            phase.id,
            {"gate": phase.gate.value},
        )
        self.session_store.save(session)
        self.session_store.update_dashboard(session)
        generate_handoff(
            session, workflow, self.agentflow_dir, f"paused (gate: {phase.gate.value})"
        )
        self._emit(
            WorkflowEventType.GATE_PAUSED,
            session,
            phase=phase.id,
            agent=phase.agent,
            message="waiting for user approval",
        )
        self._record_decision(
            session,
            title=f"Gate: {phase.name}",
            context=f'Phase "{phase.id}" requires user approval before proceeding.',
            decision="Paused for user approval",
            agent=phase.agent,
            phase=phase.id,
        )

    async def _execute_with_retry(
        self,
        session: Session,
        phase: Phase,
        prompt_path: Path,
        model: str | None,
    ) -> ExecutorResult:
        """Run the executor up to ``phase.retry + 1`` times.

        Attempt n (n > 0) waits ``min(2 ** (n - 1), 30)`` seconds first.
        """
        attempt = 0
        while True:
            if attempt > 0:
                backoff = min(2 ** (attempt - 1), MAX_BACKOFF_SECONDS)
                self._emit(
                    WorkflowEventType.PHASE_RETRY,
                    session,
                    phase=phase.id,
                    agent=phase.agent,
                    attempt=attempt,
                    message=f"retry {attempt}/{phase.retry} in {backoff:.0f}s",
                )
                await self.sleep(backoff)

            result = await self._execute_prompt(session, phase, prompt_path, model)
            attempt += 1
            if result.succeeded or attempt > phase.retry:
                return result

    async def _execute_prompt(
        self,
        session: Session,
        phase: Phase,
        prompt_path: Path,
        model: str | None,
    ) -> ExecutorResult:
        timeout_ms = phase.timeout_ms or DEFAULT_PHASE_TIMEOUT_MS
        try:
            result = await self.executor.run(prompt_path, self.project_root, timeout_ms, model)
        except Exception as e:
            # Third-party executors may raise; treat it as a failed attempt
            error = str(e) or type(e).__name__
            logger.warning(f"Executor crashed on phase '{phase.id}': {error[:200]}")
            result = ExecutorResult(exit_code=1, error=error)

        session.tokens_used += result.tokens_used
        session.cost_usd += result.cost_usd
        session.touch()

        if not result.succeeded:
            logger.info(f"Phase '{phase.id}' attempt failed (exit {result.exit_code})")
            if result.error:
                self._record_gotcha(result.error, phase.agent)
        return result

    def _fail_phase(
        self,
        session: Session,
        workflow: WorkflowDefinition,
        phase: Phase,
        result: ExecutorResult,
    ) -> None:
        error = result.error or ""
        session.status = SessionStatus.FAILED
        session.append_event(
            SessionEventType.PHASE_FAILED,
            phase.agent,
            phase.id,
            {"error": result.error, "exit_code": result.exit_code},
        )
        self.session_store.save(session)
        self.session_store.update_dashboard(session)
        generate_handoff(
            session,
            workflow,
            self.agentflow_dir,
            f"failed at phase {phase.id}: {error[:100]}",
        )
        self._emit(
            WorkflowEventType.PHASE_FAILED,
            session,
            phase=phase.id,
            agent=phase.agent,
            message=f"exit {result.exit_code}: {error[:200]}",
        )
        self._record_decision(
            session,
            title=f"Failed: {phase.name}",
            context=f'Phase "{phase.id}" failed with exit code {result.exit_code}.',
            decision=f"Stopped execution. Error: {error[:200] or 'unknown'}",
            agent=phase.agent,
            phase=phase.id,
        )

    def _complete_phase(self, session: Session, phase: Phase, result: ExecutorResult) -> None:
        session.append_event(
            SessionEventType.PHASE_COMPLETE,
            phase.agent,
            phase.id,
            {
                "tokens": result.tokens_used,
                "cost": result.cost_usd,
                "duration_ms": result.duration_ms,
            },
        )
        self.session_store.save(session)
        self.session_store.update_dashboard(session)
        self._emit(
            WorkflowEventType.PHASE_COMPLETED,
            session,
            phase=phase.id,
            agent=phase.agent,
            message=(
                f"{result.duration_ms / 1000:.1f}s | tokens: {result.tokens_used} "
                f"| cost: ${result.cost_usd:.4f}"
            ),
        )

    def _complete_session(self, session: Session, workflow: WorkflowDefinition) -> None:
        session.status = SessionStatus.COMPLETED
        session.append_event(SessionEventType.SESSION_COMPLETE, MASTER_AGENT)
        self.session_store.save(session)
        self.session_store.update_dashboard(session)
        self._emit(
            WorkflowEventType.SESSION_COMPLETED,
            session,
            message=f"Mission accomplished: {workflow.name}",
        )

    # ========================================================================
    # Helpers
    # ========================================================================

    def _mark_resumed(self, session: Session, crashed: bool) -> None:
        session.status = SessionStatus.RUNNING
        session.append_event(
            SessionEventType.SESSION_RESUME,
            session.current_agent,
            data={"crashed": crashed},
        )
        self.session_store.save(session)
        self._emit(WorkflowEventType.SESSION_RESUMED, session, agent=session.current_agent)

    def _pending_gate(self, session: Session, workflow: WorkflowDefinition) -> Phase | None:
        """The gated phase the session is waiting on.

        In wave mode a sibling may have started after the gate paused, so
        the current phase is not enough; fall back to the newest unapproved
        GATE_PAUSE.
        """
        completed = session.completed_phase_ids()
        candidates = [session.current_phase] + [
            e.phase for e in reversed(session.events_of(SessionEventType.GATE_PAUSE))
        ]
        for phase_id in candidates:
            phase = workflow.get_phase(phase_id) if phase_id else None
            if phase and phase.requires_approval and phase.id not in completed:
                return phase
        return None

    def _session_module(self, session: Session) -> str:
        """Module recorded at start; falls back to configuration."""
        if session.events and session.events[0].type == SessionEventType.SESSION_START:
            module = session.events[0].data.get("module")
            if module:
                return module
        return self.config.resolve_module()

    def _clean_stale_sessions(self) -> None:
        cleaned = self.session_store.clean_stale_sessions(self.config.session.stale_hours)
        if cleaned:
            logger.info(f"Cleaned {cleaned} stale session(s)")

    def _record_decision(
        self,
        session: Session,
        *,
        title: str,
        context: str,
        decision: str,
        agent: str,
        phase: str | None = None,
    ) -> None:
        try:
            self.decision_log.record(
                title=title,
                context=context,
                decision=decision,
                agent=agent,
                session_id=session.session_id,
                phase=phase,
            )
        except (OSError, DecisionLogCorruptError) as e:
            logger.warning(f"Failed to record decision '{title}': {e}")

    def _record_gotcha(self, error: str, agent: str) -> None:
        try:
            self.gotchas.record_error(error, agent, EXECUTION_DOMAIN)
        except OSError as e:
            logger.warning(f"Failed to record gotcha: {e}")

    def _emit(
        self,
        event_type: WorkflowEventType,
        session: Session,
        *,
        phase: str | None = None,
        agent: str | None = None,
        attempt: int | None = None,
        **metadata: Any,
    ) -> None:
        """Emit a workflow event with common fields."""
        self.event_emitter.emit(
            WorkflowEvent(
                event_type=event_type,
                session_id=session.session_id,
                phase=phase,
                agent=agent,
                attempt=attempt,
                metadata=metadata,
            )
        )
