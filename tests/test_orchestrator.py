from __future__ import annotations

from pathlib import Path

import pytest

from prevc.catalog import phase_order
from prevc.config import WorkflowConfig
from prevc.errors import (
    InvalidRoleError,
    NoPlanToApproveError,
    NoWorkflowError,
    RoleNotStartedError,
    StaleWriteError,
    WorkflowCompleteError,
    WorkflowGateError,
)
from prevc.models import GateType, OutputRef, PhaseCode, ProjectContext, RoleId, ScaleLevel, StatusType
from prevc.orchestrator import Orchestrator
from prevc.store.status_store import StatusStore


def test_quick_workflow_starts_at_first_required_phase(orchestrator: Orchestrator) -> None:
    status = orchestrator.init_workflow_with_scale("demo", ScaleLevel.QUICK)

    assert status.project.current_phase == PhaseCode.EXECUTION
    summary = orchestrator.get_summary()
    assert summary.progress.total == 2
    assert summary.progress.completed == 0
    assert summary.estimated_time == "~5 min"
    assert not summary.is_complete


def test_plan_gate_blocks_planning(medium_workflow: Orchestrator) -> None:
    with pytest.raises(WorkflowGateError) as excinfo:
        medium_workflow.complete_phase()

    error = excinfo.value
    assert error.gate == GateType.PLAN
    assert error.transition == {"from": "P", "to": "R"}
    assert "mark_plan_created" in error.hint
    status = medium_workflow.get_status()
    assert status.project.current_phase == PhaseCode.PLANNING
    assert status.phases[PhaseCode.PLANNING].status == StatusType.IN_PROGRESS


def test_linking_a_plan_opens_planning(medium_workflow: Orchestrator) -> None:
    medium_workflow.mark_plan_created("plan-1")

    assert medium_workflow.complete_phase() == PhaseCode.REVIEW
    status = medium_workflow.get_status()
    assert status.phases[PhaseCode.PLANNING].status == StatusType.COMPLETED
    assert status.phases[PhaseCode.PLANNING].completed_at
    assert status.phases[PhaseCode.PLANNING].outputs == [OutputRef("plan-1")]
    assert status.phases[PhaseCode.REVIEW].status == StatusType.IN_PROGRESS


def test_small_workflow_skips_review(orchestrator: Orchestrator) -> None:
    orchestrator.init_workflow_with_scale("demo", ScaleLevel.SMALL)
    assert orchestrator.get_next_phase() == PhaseCode.EXECUTION
    orchestrator.mark_plan_created("plan-1")
    assert orchestrator.complete_phase() == PhaseCode.EXECUTION
    assert orchestrator.get_status().phases[PhaseCode.REVIEW].status == StatusType.SKIPPED


def test_approval_gate_blocks_execution(medium_workflow: Orchestrator) -> None:
    medium_workflow.mark_plan_created("plan-1")
    medium_workflow.complete_phase()

    with pytest.raises(WorkflowGateError) as excinfo:
        medium_workflow.complete_phase(["docs/architecture.md"])
    assert excinfo.value.gate == GateType.APPROVAL
    assert excinfo.value.transition == {"from": "R", "to": "E"}
    # rejected call persisted nothing
    assert medium_workflow.get_status().phases[PhaseCode.REVIEW].outputs == []

    medium_workflow.approve_plan(RoleId.ARCHITECT, notes="looks good")
    assert medium_workflow.complete_phase(["docs/architecture.md"]) == PhaseCode.EXECUTION


def test_outputs_gate_blocks_empty_phase(orchestrator: Orchestrator) -> None:
    orchestrator.init_workflow_with_scale(
        "demo", ScaleLevel.QUICK, settings_overrides={"autonomous_mode": False}
    )
    with pytest.raises(WorkflowGateError) as excinfo:
        orchestrator.complete_phase()
    assert excinfo.value.gate == GateType.OUTPUTS
    assert orchestrator.complete_phase(["src/fix.py"]) == PhaseCode.VALIDATION


def test_full_run_is_monotonic_and_leaves_outputs(orchestrator: Orchestrator) -> None:
    orchestrator.init_workflow_with_scale("demo", ScaleLevel.LARGE)
    orchestrator.mark_plan_created("plan-1")
    orchestrator.approve_plan("planner")

    visited = [orchestrator.get_current_phase()]
    outputs = {
        PhaseCode.PLANNING: [],
        PhaseCode.REVIEW: ["docs/architecture.md"],
        PhaseCode.EXECUTION: ["src/app.py"],
        PhaseCode.VALIDATION: ["reports/qa.md"],
        PhaseCode.CONFIRMATION: ["CHANGELOG.md"],
    }
    while True:
        next_phase = orchestrator.complete_phase(outputs[visited[-1]])
        if next_phase is None:
            break
        visited.append(next_phase)

    assert visited == [PhaseCode.PLANNING, PhaseCode.REVIEW, PhaseCode.EXECUTION, PhaseCode.VALIDATION, PhaseCode.CONFIRMATION]
    assert [phase_order(p) for p in visited] == sorted(phase_order(p) for p in visited)
    status = orchestrator.get_status()
    for phase in visited:
        assert status.phases[phase].status == StatusType.COMPLETED
        assert status.phases[phase].outputs
    assert orchestrator.is_complete()
    assert orchestrator.get_next_phase() is None
    summary = orchestrator.get_summary()
    assert summary.is_complete
    assert summary.progress.percentage == 100

    with pytest.raises(WorkflowCompleteError):
        orchestrator.complete_phase(["late.md"])


def test_completing_last_phase_returns_none(orchestrator: Orchestrator) -> None:
    orchestrator.init_workflow_with_scale("demo", ScaleLevel.QUICK)
    assert orchestrator.complete_phase(["src/fix.py"]) == PhaseCode.VALIDATION
    assert orchestrator.complete_phase(["reports/check.md"]) is None
    assert orchestrator.is_complete()
    assert orchestrator.get_recommended_actions()[0].startswith("Workflow complete")


def test_force_bypasses_gates(medium_workflow: Orchestrator) -> None:
    assert medium_workflow.complete_phase(force=True) == PhaseCode.REVIEW
    completed = [entry for entry in medium_workflow.get_history() if entry.action == "completed"]
    assert "forced" in completed[-1].description


def test_autonomous_setting_bypasses_gates(medium_workflow: Orchestrator) -> None:
    settings = medium_workflow.set_settings({"autonomous_mode": True})
    assert settings.autonomous_mode
    assert medium_workflow.get_settings().autonomous_mode
    assert medium_workflow.complete_phase() == PhaseCode.REVIEW
    assert medium_workflow.complete_phase() == PhaseCode.EXECUTION


def test_unknown_setting_is_rejected(medium_workflow: Orchestrator) -> None:
    with pytest.raises(ValueError):
        medium_workflow.set_settings({"turbo": True})


@pytest.mark.parametrize(
    "partial",
    [{"require_plan": "false"}, {"autonomous_mode": "no"}, {"require_approval": 0}],
)
def test_non_boolean_setting_is_rejected(medium_workflow: Orchestrator, partial: dict) -> None:
    before = medium_workflow.get_settings()
    with pytest.raises(ValueError):
        medium_workflow.set_settings(partial)
    assert medium_workflow.get_settings() == before
    with pytest.raises(WorkflowGateError):
        medium_workflow.complete_phase()


def test_check_gates_is_a_repeatable_preview(medium_workflow: Orchestrator) -> None:
    first = medium_workflow.check_gates()
    second = medium_workflow.check_gates()
    assert first == second
    assert not first.allowed
    assert first.to_phase == PhaseCode.REVIEW
    assert medium_workflow.get_current_phase() == PhaseCode.PLANNING


def test_complete_role_requires_start(medium_workflow: Orchestrator) -> None:
    with pytest.raises(RoleNotStartedError):
        medium_workflow.complete_role("qa", ["report.md"])


def test_role_lifecycle(medium_workflow: Orchestrator) -> None:
    started = medium_workflow.start_role(RoleId.PLANNER)
    assert started.status == StatusType.IN_PROGRESS
    assert started.phase == PhaseCode.PLANNING
    assert medium_workflow.get_active_role() == RoleId.PLANNER

    done = medium_workflow.complete_role("planner", ["docs/prd.md"])
    assert done.status == StatusType.COMPLETED
    assert done.outputs == [OutputRef("docs/prd.md")]
    assert medium_workflow.get_active_role() is None

    with pytest.raises(RoleNotStartedError):
        medium_workflow.complete_role("planner", ["docs/prd-v2.md"])


def test_role_must_belong_to_current_phase(medium_workflow: Orchestrator) -> None:
    with pytest.raises(InvalidRoleError):
        medium_workflow.start_role(RoleId.DEVELOPER)
    with pytest.raises(InvalidRoleError):
        medium_workflow.start_role("manager")


def test_role_started_in_previous_phase_cannot_complete(medium_workflow: Orchestrator) -> None:
    medium_workflow.start_role(RoleId.DESIGNER)
    medium_workflow.mark_plan_created("plan-1")
    medium_workflow.complete_phase()
    with pytest.raises(RoleNotStartedError):
        medium_workflow.complete_role(RoleId.DESIGNER, ["design.md"])


def test_handoff_starts_pending_target(medium_workflow: Orchestrator) -> None:
    medium_workflow.start_role(RoleId.PLANNER)
    medium_workflow.handoff(RoleId.PLANNER, RoleId.DESIGNER, ["docs/prd.md"])

    status = medium_workflow.get_status()
    assert status.project.current_phase == PhaseCode.PLANNING
    assert status.roles[RoleId.DESIGNER].status == StatusType.IN_PROGRESS
    actions = [entry.action for entry in status.history]
    assert actions[-2:] == ["handoff", "role_started"]
    handoff = status.history[-2]
    assert handoff.role == "planner"
    assert handoff.target_role == "designer"
    assert handoff.artifacts == ["docs/prd.md"]


def test_handoff_to_role_outside_phase_fails(medium_workflow: Orchestrator) -> None:
    with pytest.raises(InvalidRoleError):
        medium_workflow.handoff(RoleId.PLANNER, RoleId.QA)


def test_plan_and_approval_bookkeeping(medium_workflow: Orchestrator) -> None:
    with pytest.raises(NoPlanToApproveError):
        medium_workflow.approve_plan("architect")

    medium_workflow.mark_plan_created("plan-1")
    approval = medium_workflow.approve_plan("architect", notes="ship it")
    assert medium_workflow.get_approval() == approval
    assert approval.notes == "ship it"

    medium_workflow.mark_plan_created("plan-1")
    assert medium_workflow.get_approval() == approval
    assert medium_workflow.get_status().phases[PhaseCode.PLANNING].outputs == [OutputRef("plan-1")]

    medium_workflow.mark_plan_created("plan-2")
    assert medium_workflow.get_approval() is None


def test_update_current_task(medium_workflow: Orchestrator) -> None:
    medium_workflow.update_current_task("Gather requirements")
    status = medium_workflow.get_status()
    assert status.phases[PhaseCode.PLANNING].current_task == "Gather requirements"
    assert status.history[-1].action == "task_updated"
    assert "Planning" in status.resume_context


def test_recommended_actions_reflect_blockers(medium_workflow: Orchestrator) -> None:
    actions = medium_workflow.get_recommended_actions()
    assert actions[0] == "Complete Planning phase tasks"
    assert any(action.startswith("Start the Planner role") for action in actions)
    assert any("mark_plan_created" in action for action in actions)

    medium_workflow.mark_plan_created("plan-1")
    actions = medium_workflow.get_recommended_actions()
    assert actions[-1] == "Advance to the Review phase"


def test_recommended_actions_name_expected_outputs(medium_workflow: Orchestrator) -> None:
    actions = medium_workflow.get_recommended_actions()
    assert "Create outputs: prd, tech-spec, requirements, wireframes" in actions

    medium_workflow.start_role(RoleId.PLANNER)
    actions = medium_workflow.get_recommended_actions()
    assert "Finish Planner work and record its outputs: prd, tech-spec, requirements" in actions


def test_summary_counts_required_phases(medium_workflow: Orchestrator) -> None:
    medium_workflow.mark_plan_created("plan-1")
    medium_workflow.complete_phase()
    summary = medium_workflow.get_summary()
    assert summary.name == "demo"
    assert summary.scale == ScaleLevel.MEDIUM
    assert summary.current_phase == PhaseCode.REVIEW
    assert (summary.progress.completed, summary.progress.total, summary.progress.percentage) == (1, 4, 25)
    assert summary.documents == ["prd", "architecture", "code", "test-report", "review"]


def test_reads_without_workflow_fail(orchestrator: Orchestrator) -> None:
    assert not orchestrator.has_workflow()
    with pytest.raises(NoWorkflowError):
        orchestrator.get_summary()
    with pytest.raises(NoWorkflowError):
        orchestrator.complete_phase()


def test_init_workflow_detects_scale(orchestrator: Orchestrator) -> None:
    status = orchestrator.init_workflow(ProjectContext(name="app", description="Fix login bug"))
    assert status.project.scale == ScaleLevel.QUICK
    assert status.project.description == "Fix login bug"
    assert status.settings.autonomous_mode


def test_reset_workflow(medium_workflow: Orchestrator) -> None:
    archived = medium_workflow.reset_workflow(archive=True)
    assert archived is not None and archived.exists()
    assert not medium_workflow.has_workflow()

    medium_workflow.init_workflow_with_scale("again", ScaleLevel.SMALL)
    assert medium_workflow.reset_workflow(archive=False) is None
    assert not medium_workflow.has_workflow()


def test_current_phase_definition(medium_workflow: Orchestrator) -> None:
    definition = medium_workflow.get_current_phase_definition()
    assert definition.name == "Planning"
    assert RoleId.PLANNER in definition.roles


def test_discover_walks_up(project_root: Path) -> None:
    nested = project_root / "src" / "pkg"
    nested.mkdir(parents=True)
    orchestrator = Orchestrator.discover(nested)
    assert orchestrator.context_dir == (project_root / ".context").resolve()


def test_stale_write_is_retried(medium_workflow: Orchestrator, monkeypatch: pytest.MonkeyPatch) -> None:
    rival = StatusStore(medium_workflow.context_dir, medium_workflow.config)
    original_load = medium_workflow.store.load
    calls = []

    def racing_load():
        status = original_load()
        if not calls:
            rival.save(rival.load())
        calls.append(status.revision)
        return status

    monkeypatch.setattr(medium_workflow.store, "load", racing_load)
    medium_workflow.update_current_task("Interview stakeholders")

    assert calls[:2] == [1, 2]
    status = medium_workflow.get_status()
    assert status.revision == 3
    assert status.phases[PhaseCode.PLANNING].current_task == "Interview stakeholders"


def test_stale_write_surfaces_after_retries(project_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = WorkflowConfig(max_write_retries=0)
    orchestrator = Orchestrator(project_root / ".context", config)
    orchestrator.init_workflow_with_scale("demo", ScaleLevel.MEDIUM)
    rival = StatusStore(orchestrator.context_dir, config)
    original_load = orchestrator.store.load

    def racing_load():
        status = original_load()
        rival.save(rival.load())
        return status

    monkeypatch.setattr(orchestrator.store, "load", racing_load)
    with pytest.raises(StaleWriteError):
        orchestrator.update_current_task("never lands")
