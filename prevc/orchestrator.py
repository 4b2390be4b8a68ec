from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, TypeVar, Union

from prevc.catalog import (
    PHASE_ORDER,
    PhaseDefinition,
    display_name,
    outputs_for_phase,
    outputs_for_role,
    phase_definition,
    responsibilities_for_role,
    roles_for_phase,
)
from prevc.config import WorkflowConfig
from prevc.errors import (
    InvalidRoleError,
    NoPlanToApproveError,
    RoleNotStartedError,
    StaleWriteError,
    WorkflowCompleteError,
    WorkflowGateError,
)
from prevc.gates.checker import GateChecker, GateCheckResult, hint_for
from prevc.models import (
    DONE_STATUSES,
    HistoryEntry,
    OutputRef,
    PhaseCode,
    PlanApproval,
    Progress,
    ProjectContext,
    RoleId,
    RoleStatus,
    ScaleLevel,
    StatusType,
    WorkflowSettings,
    WorkflowStatus,
    WorkflowSummary,
    as_output_refs,
)
from prevc.scaling import detect_scale, get_estimated_time, get_scale_route
from prevc.store.discovery import resolve_context_dir
from prevc.store.status_store import StatusStore
from prevc.store.templates import resume_context
from prevc.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

T = TypeVar("T")
RoleLike = Union[RoleId, str]
OutputsLike = Optional[List[Union[OutputRef, str]]]


def _coerce_role(value: RoleLike, phase: PhaseCode) -> RoleId:
    try:
        return RoleId(value)
    except ValueError:
        raise InvalidRoleError(str(value), phase) from None


def _append_outputs(target: List[OutputRef], outputs: List[OutputRef]) -> None:
    for ref in outputs:
        if ref not in target:
            target.append(ref)


def _record(status: WorkflowStatus, action: str, now: str, **fields) -> None:
    phase = status.project.current_phase
    status.history.append(HistoryEntry(timestamp=now, phase=phase, action=action, **fields))
    status.resume_context = resume_context(phase, action, fields.get("role"))


def _required_phases(status: WorkflowStatus) -> Tuple[PhaseCode, ...]:
    return get_scale_route(status.project.scale).required_phases


def _is_complete(status: WorkflowStatus) -> bool:
    return all(status.phases[phase].status in DONE_STATUSES for phase in _required_phases(status))


def _next_required_phase(status: WorkflowStatus) -> Tuple[Optional[PhaseCode], List[PhaseCode]]:
    """Next required phase after the current one, plus the phases passed over."""
    required = _required_phases(status)
    index = PHASE_ORDER.index(status.project.current_phase)
    passed: List[PhaseCode] = []
    for phase in PHASE_ORDER[index + 1 :]:
        if phase in required and status.phases[phase].status != StatusType.SKIPPED:
            return phase, passed
        passed.append(phase)
    return None, passed


def _start_role(status: WorkflowStatus, role: RoleId, now: str) -> RoleStatus:
    current = status.project.current_phase
    if role not in roles_for_phase(current):
        raise InvalidRoleError(role.value, current)
    existing = status.roles.get(role)
    if existing is not None and existing.status == StatusType.IN_PROGRESS and existing.phase == current:
        return existing
    role_status = RoleStatus(
        phase=current,
        status=StatusType.IN_PROGRESS,
        outputs=existing.outputs if existing is not None else [],
        last_active=now,
    )
    status.roles[role] = role_status
    _record(status, "role_started", now, role=role.value)
    logger.info("[workflow] role started role=%s phase=%s", role.value, current.value)
    return role_status


class Orchestrator:
    def __init__(self, context_dir: Path, config: Optional[WorkflowConfig] = None) -> None:
        self.config = config or WorkflowConfig()
        self.context_dir = context_dir
        self.store = StatusStore(context_dir, self.config)
        self.gate_checker = GateChecker()

    @classmethod
    def discover(cls, start_dir: Path, config: Optional[WorkflowConfig] = None) -> "Orchestrator":
        config = config or WorkflowConfig()
        return cls(resolve_context_dir(start_dir, config.context_dir_name), config)

    def _mutate(self, mutation: Callable[[WorkflowStatus], T]) -> T:
        """Load, apply ``mutation`` and save; reapply on stale writes."""
        attempt = 0
        while True:
            status = self.store.load()
            result = mutation(status)
            try:
                self.store.save(status)
                return result
            except StaleWriteError as exc:
                attempt += 1
                if attempt > self.config.max_write_retries:
                    raise
                logger.warning(
                    "[workflow] stale write, retrying attempt=%s/%s expected=%s actual=%s",
                    attempt,
                    self.config.max_write_retries,
                    exc.expected,
                    exc.actual,
                )

    # Lifecycle

    def has_workflow(self) -> bool:
        return self.store.exists()

    def init_workflow(
        self,
        context: ProjectContext,
        settings_overrides: Optional[Dict] = None,
        archive_previous: Optional[bool] = None,
    ) -> WorkflowStatus:
        scale = detect_scale(context)
        logger.info("[workflow] detected scale=%s name=%s", scale.name, context.name)
        return self.init_workflow_with_scale(
            context.name,
            scale,
            settings_overrides=settings_overrides,
            archive_previous=archive_previous,
            description=context.description or None,
        )

    def init_workflow_with_scale(
        self,
        name: str,
        scale: Union[ScaleLevel, int, str],
        settings_overrides: Optional[Dict] = None,
        archive_previous: Optional[bool] = None,
        description: Optional[str] = None,
    ) -> WorkflowStatus:
        if not name or not name.strip():
            raise ValueError("Workflow name must not be empty.")
        return self.store.create_from_scale(
            name.strip(),
            scale,
            settings_overrides=settings_overrides,
            archive_previous=archive_previous,
            description=description,
        )

    def reset_workflow(self, archive: bool) -> Optional[Path]:
        if archive:
            return self.store.archive()
        self.store.delete()
        return None

    # Reads

    def get_status(self) -> WorkflowStatus:
        return self.store.load()

    def get_current_phase(self) -> PhaseCode:
        return self.store.load().project.current_phase

    def get_current_phase_definition(self) -> PhaseDefinition:
        return phase_definition(self.get_current_phase())

    def get_active_role(self) -> Optional[RoleId]:
        status = self.store.load()
        current = status.project.current_phase
        for role in RoleId:
            role_status = status.roles.get(role)
            if (
                role_status is not None
                and role_status.status == StatusType.IN_PROGRESS
                and role_status.phase == current
            ):
                return role
        return None

    def get_next_phase(self) -> Optional[PhaseCode]:
        status = self.store.load()
        if _is_complete(status):
            return None
        return _next_required_phase(status)[0]

    def is_complete(self) -> bool:
        return _is_complete(self.store.load())

    def get_history(self) -> List[HistoryEntry]:
        return list(self.store.load().history)

    def check_gates(self) -> GateCheckResult:
        status = self.store.load()
        next_phase, _ = _next_required_phase(status)
        return self.gate_checker.check(status, next_phase)

    # Phase transitions

    def complete_phase(self, outputs: OutputsLike = None, force: bool = False) -> Optional[PhaseCode]:
        refs = as_output_refs(outputs)

        def mutation(status: WorkflowStatus) -> Optional[PhaseCode]:
            if _is_complete(status):
                raise WorkflowCompleteError()
            current = status.project.current_phase
            _append_outputs(status.phases[current].outputs, refs)
            next_phase, passed = _next_required_phase(status)

            result = self.gate_checker.check(status, next_phase)
            if not result.allowed:
                gate = result.blocking_gate
                if not force:
                    raise WorkflowGateError(
                        result.reason,
                        from_phase=current,
                        to_phase=next_phase,
                        gate=gate,
                        hint=result.hint,
                    )
                logger.warning(
                    "[workflow] gates bypassed with force from=%s blockers=%s",
                    current.value,
                    ",".join(item.value for item in result.blockers),
                )

            now = utc_now_iso()
            phase_status = status.phases[current]
            phase_status.status = StatusType.COMPLETED
            phase_status.completed_at = now
            description = None
            if not result.allowed:
                description = "forced past gates: " + ", ".join(item.value for item in result.blockers)
            _record(
                status,
                "completed",
                now,
                artifacts=[ref.path for ref in refs],
                description=description,
            )

            for phase in passed:
                if status.phases[phase].status != StatusType.SKIPPED:
                    status.phases[phase].status = StatusType.SKIPPED
                    status.phases[phase].reason = "Not required for this scale"
                    status.history.append(
                        HistoryEntry(timestamp=now, phase=phase, action="phase_skipped")
                    )

            if next_phase is None:
                logger.info("[workflow] workflow complete last_phase=%s", current.value)
                return None

            status.project.current_phase = next_phase
            status.phases[next_phase].status = StatusType.IN_PROGRESS
            status.phases[next_phase].started_at = now
            _record(status, "started", now)
            logger.info(
                "[workflow] phase advanced from=%s to=%s", current.value, next_phase.value
            )
            return next_phase

        return self._mutate(mutation)

    # Roles

    def start_role(self, role: RoleLike) -> RoleStatus:
        def mutation(status: WorkflowStatus) -> RoleStatus:
            if _is_complete(status):
                raise WorkflowCompleteError()
            role_id = _coerce_role(role, status.project.current_phase)
            return _start_role(status, role_id, utc_now_iso())

        return self._mutate(mutation)

    def complete_role(self, role: RoleLike, outputs: OutputsLike = None) -> RoleStatus:
        refs = as_output_refs(outputs)

        def mutation(status: WorkflowStatus) -> RoleStatus:
            current = status.project.current_phase
            role_id = _coerce_role(role, current)
            role_status = status.roles.get(role_id)
            if (
                role_status is None
                or role_status.status != StatusType.IN_PROGRESS
                or role_status.phase != current
            ):
                raise RoleNotStartedError(role_id.value, current)
            now = utc_now_iso()
            _append_outputs(role_status.outputs, refs)
            role_status.status = StatusType.COMPLETED
            role_status.last_active = now
            _record(
                status,
                "role_completed",
                now,
                role=role_id.value,
                artifacts=[ref.path for ref in refs],
            )
            logger.info("[workflow] role completed role=%s phase=%s", role_id.value, current.value)
            return role_status

        return self._mutate(mutation)

    def handoff(self, from_role: RoleLike, to_role: RoleLike, artifacts: OutputsLike = None) -> None:
        refs = as_output_refs(artifacts)

        def mutation(status: WorkflowStatus) -> None:
            if _is_complete(status):
                raise WorkflowCompleteError()
            current = status.project.current_phase
            source = _coerce_role(from_role, current)
            target = _coerce_role(to_role, current)
            if target not in roles_for_phase(current):
                raise InvalidRoleError(target.value, current)
            now = utc_now_iso()
            source_status = status.roles.get(source)
            if source_status is not None:
                source_status.last_active = now
            _record(
                status,
                "handoff",
                now,
                role=source.value,
                target_role=target.value,
                artifacts=[ref.path for ref in refs],
            )
            logger.info(
                "[workflow] handoff from=%s to=%s artifacts=%s",
                source.value,
                target.value,
                len(refs),
            )
            target_status = status.roles.get(target)
            if target_status is None or target_status.status == StatusType.PENDING:
                _start_role(status, target, now)

        self._mutate(mutation)

    def update_current_task(self, task: str) -> None:
        def mutation(status: WorkflowStatus) -> None:
            now = utc_now_iso()
            status.phases[status.project.current_phase].current_task = task
            _record(status, "task_updated", now, description=task)

        self._mutate(mutation)

    # Plan and approval

    def mark_plan_created(self, plan_id: str) -> None:
        if not plan_id or not plan_id.strip():
            raise ValueError("Plan identifier must not be empty.")
        plan_id = plan_id.strip()

        def mutation(status: WorkflowStatus) -> None:
            now = utc_now_iso()
            if status.linked_plan != plan_id:
                status.approval = None
            status.linked_plan = plan_id
            current = status.phases[status.project.current_phase]
            if current.status == StatusType.IN_PROGRESS:
                _append_outputs(current.outputs, [OutputRef(path=plan_id)])
            _record(status, "plan_linked", now, plan=plan_id)
            logger.info("[workflow] plan linked plan=%s", plan_id)

        self._mutate(mutation)

    def approve_plan(self, approver: RoleLike, notes: Optional[str] = None) -> PlanApproval:
        approver_name = approver.value if isinstance(approver, RoleId) else str(approver)

        def mutation(status: WorkflowStatus) -> PlanApproval:
            if not status.linked_plan:
                raise NoPlanToApproveError()
            now = utc_now_iso()
            status.approval = PlanApproval(approver=approver_name, approved_at=now, notes=notes)
            _record(status, "plan_approved", now, plan=status.linked_plan, approver=approver_name)
            logger.info(
                "[workflow] plan approved plan=%s approver=%s", status.linked_plan, approver_name
            )
            return status.approval

        return self._mutate(mutation)

    def get_approval(self) -> Optional[PlanApproval]:
        return self.store.load().approval

    # Settings

    def set_settings(self, partial: Dict) -> WorkflowSettings:
        def mutation(status: WorkflowStatus) -> WorkflowSettings:
            status.settings = status.settings.merged(partial)
            _record(
                status,
                "settings_changed",
                utc_now_iso(),
                description=", ".join(f"{key}={value}" for key, value in sorted(partial.items())),
            )
            logger.info("[workflow] settings changed %s", status.settings.to_dict())
            return status.settings

        return self._mutate(mutation)

    def get_settings(self) -> WorkflowSettings:
        return self.store.load().settings

    # Derived views

    def get_recommended_actions(self) -> List[str]:
        status = self.store.load()
        if _is_complete(status):
            return ["Workflow complete. Archive it with reset_workflow(archive=True) or start a new one."]

        current = status.project.current_phase
        definition = phase_definition(current)
        route = get_scale_route(status.project.scale)
        actions = [f"Complete {definition.name} phase tasks"]

        for role in route.roles_by_phase.get(current, ()):
            role_status = status.roles.get(role)
            if role_status is None or role_status.status == StatusType.PENDING:
                actions.append(
                    f"Start the {display_name(role)} role: {responsibilities_for_role(role)[0]}"
                )
            elif role_status.status == StatusType.IN_PROGRESS and role_status.phase == current:
                actions.append(
                    f"Finish {display_name(role)} work and record its outputs: "
                    f"{', '.join(outputs_for_role(role))}"
                )

        if not status.phases[current].outputs:
            actions.append(f"Create outputs: {', '.join(outputs_for_phase(current))}")

        next_phase, _ = _next_required_phase(status)
        result = self.gate_checker.check(status, next_phase)
        if result.allowed:
            if next_phase is None:
                actions.append("Complete the final phase to finish the workflow")
            else:
                actions.append(f"Advance to the {phase_definition(next_phase).name} phase")
        else:
            for gate in result.blockers:
                actions.append(hint_for(gate, current))
        return actions

    def get_summary(self) -> WorkflowSummary:
        status = self.store.load()
        required = _required_phases(status)
        completed = sum(1 for phase in required if status.phases[phase].status in DONE_STATUSES)
        total = len(required)
        percentage = round(completed / total * 100) if total else 100
        return WorkflowSummary(
            name=status.project.name,
            scale=status.project.scale,
            current_phase=status.project.current_phase,
            progress=Progress(completed=completed, total=total, percentage=percentage),
            is_complete=completed == total,
            started_at=status.project.started,
            estimated_time=get_estimated_time(status.project.scale),
            documents=list(get_scale_route(status.project.scale).documents),
        )
