from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from prevc.catalog import phase_definition
from prevc.models import GateType, PhaseCode, StatusType, WorkflowStatus

_GATE_HINTS: Dict[GateType, str] = {
    GateType.PLAN: "Link a plan via mark_plan_created before advancing, or enable autonomous mode.",
    GateType.APPROVAL: "Approve the plan via approve_plan before advancing, or enable autonomous mode.",
    GateType.OUTPUTS: "Record at least one output for the {phase} phase before advancing.",
}

_GATE_REASONS: Dict[GateType, str] = {
    GateType.PLAN: "A plan must be linked before leaving the Planning phase.",
    GateType.APPROVAL: "The plan must be approved before entering the Execution phase.",
    GateType.OUTPUTS: "The {phase} phase has no recorded outputs.",
}


@dataclass(frozen=True)
class GateCheckResult:
    allowed: bool
    from_phase: PhaseCode
    to_phase: Optional[PhaseCode]
    blockers: List[GateType] = field(default_factory=list)
    hint: str = ""
    reason: str = ""

    @property
    def blocking_gate(self) -> Optional[GateType]:
        return self.blockers[0] if self.blockers else None


class GateChecker:
    """Decides whether the current phase may hand over to ``to_phase``.

    Gates, in evaluation order:
      plan      leaving Planning requires ``linked_plan`` when ``require_plan``.
      approval  entering Execution requires ``approval`` when ``require_approval``.
      outputs   the departing phase needs at least one output unless skipped.
    ``autonomous_mode`` disables all of them. Results are never raised here.
    """

    def check(self, status: WorkflowStatus, to_phase: Optional[PhaseCode]) -> GateCheckResult:
        from_phase = status.project.current_phase
        settings = status.settings
        if settings.autonomous_mode:
            return GateCheckResult(allowed=True, from_phase=from_phase, to_phase=to_phase)

        blockers: List[GateType] = []
        if (
            from_phase == PhaseCode.PLANNING
            and settings.require_plan
            and not status.linked_plan
        ):
            blockers.append(GateType.PLAN)
        if (
            to_phase == PhaseCode.EXECUTION
            and from_phase != PhaseCode.EXECUTION
            and settings.require_approval
            and status.approval is None
        ):
            blockers.append(GateType.APPROVAL)
        departing = status.phases[from_phase]
        if departing.status != StatusType.SKIPPED and not departing.outputs:
            blockers.append(GateType.OUTPUTS)

        if not blockers:
            return GateCheckResult(allowed=True, from_phase=from_phase, to_phase=to_phase)

        phase_name = phase_definition(from_phase).name
        first = blockers[0]
        return GateCheckResult(
            allowed=False,
            from_phase=from_phase,
            to_phase=to_phase,
            blockers=blockers,
            hint=hint_for(first, from_phase),
            reason=_GATE_REASONS[first].format(phase=phase_name),
        )


def hint_for(gate: GateType, phase: PhaseCode) -> str:
    return _GATE_HINTS[gate].format(phase=phase_definition(phase).name)
