from __future__ import annotations

from typing import Dict, Optional

from prevc.catalog import PHASE_ORDER, phase_definition
from prevc.models import (
    HistoryEntry,
    PhaseCode,
    PhaseStatus,
    ProjectMetadata,
    RoleId,
    RoleStatus,
    ScaleLevel,
    StatusType,
    WorkflowSettings,
    WorkflowStatus,
)
from prevc.scaling import get_scale_route, scale_name
from prevc.utils.time import utc_now_iso

_ACTION_TEXT = {
    "started": "started",
    "completed": "completed",
    "phase_skipped": "skipped",
    "plan_linked": "has a linked plan",
    "plan_approved": "has an approved plan",
    "settings_changed": "settings changed",
    "role_started": "role started",
    "role_completed": "role completed",
    "handoff": "handoff recorded",
    "task_updated": "task updated",
}


def resume_context(phase: PhaseCode, action: str, role: Optional[str] = None) -> str:
    name = phase_definition(phase).name
    text = _ACTION_TEXT.get(action, action.replace("_", " "))
    if role:
        return f"{name} phase {text}: {role}"
    return f"{name} phase {text}"


def new_status(
    name: str,
    scale: ScaleLevel,
    settings: WorkflowSettings,
    description: Optional[str] = None,
) -> WorkflowStatus:
    route = get_scale_route(scale)
    now = utc_now_iso()
    first_phase = route.required_phases[0]

    phases: Dict[PhaseCode, PhaseStatus] = {}
    for phase in PHASE_ORDER:
        if phase not in route.required_phases:
            phases[phase] = PhaseStatus(
                status=StatusType.SKIPPED,
                reason=f"Not required for scale {scale_name(scale)}",
            )
        elif phase == first_phase:
            phases[phase] = PhaseStatus(status=StatusType.IN_PROGRESS, started_at=now)
        else:
            phases[phase] = PhaseStatus()

    roles: Dict[RoleId, RoleStatus] = {}
    for phase in route.required_phases:
        for role in route.roles_by_phase[phase]:
            if role not in roles:
                roles[role] = RoleStatus(phase=phase, last_active=now)

    return WorkflowStatus(
        project=ProjectMetadata(
            name=name,
            scale=scale,
            current_phase=first_phase,
            started=now,
            description=description,
        ),
        phases=phases,
        roles=roles,
        settings=settings,
        history=[HistoryEntry(timestamp=now, phase=first_phase, action="started")],
        resume_context=resume_context(first_phase, "started"),
    )
