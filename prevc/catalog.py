from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from prevc.models import PhaseCode, RoleId

PHASE_ORDER: Tuple[PhaseCode, ...] = (
    PhaseCode.PLANNING,
    PhaseCode.REVIEW,
    PhaseCode.EXECUTION,
    PhaseCode.VALIDATION,
    PhaseCode.CONFIRMATION,
)


@dataclass(frozen=True)
class PhaseDefinition:
    code: PhaseCode
    name: str
    description: str
    roles: Tuple[RoleId, ...]
    outputs: Tuple[str, ...]
    optional: bool
    order: int


@dataclass(frozen=True)
class RoleDefinition:
    role: RoleId
    display_name: str
    phases: Tuple[PhaseCode, ...]
    responsibilities: Tuple[str, ...]
    outputs: Tuple[str, ...]
    specialists: Tuple[str, ...]


PHASES: Dict[PhaseCode, PhaseDefinition] = {
    PhaseCode.PLANNING: PhaseDefinition(
        code=PhaseCode.PLANNING,
        name="Planning",
        description="Discovery, requirements and specifications",
        roles=(RoleId.PLANNER, RoleId.DESIGNER),
        outputs=("prd", "tech-spec", "requirements", "wireframes"),
        optional=False,
        order=1,
    ),
    PhaseCode.REVIEW: PhaseDefinition(
        code=PhaseCode.REVIEW,
        name="Review",
        description="Architecture, technical decisions and design review",
        roles=(RoleId.ARCHITECT, RoleId.DESIGNER),
        outputs=("architecture", "adr", "design-spec"),
        optional=True,
        order=2,
    ),
    PhaseCode.EXECUTION: PhaseDefinition(
        code=PhaseCode.EXECUTION,
        name="Execution",
        description="Implementation and development",
        roles=(RoleId.DEVELOPER,),
        outputs=("code", "unit-tests"),
        optional=False,
        order=3,
    ),
    PhaseCode.VALIDATION: PhaseDefinition(
        code=PhaseCode.VALIDATION,
        name="Validation",
        description="Tests, QA and code review",
        roles=(RoleId.QA, RoleId.REVIEWER),
        outputs=("test-report", "review-comments", "approval"),
        optional=False,
        order=4,
    ),
    PhaseCode.CONFIRMATION: PhaseDefinition(
        code=PhaseCode.CONFIRMATION,
        name="Confirmation",
        description="Documentation, deploy and handoff",
        roles=(RoleId.DOCUMENTER,),
        outputs=("documentation", "changelog", "deploy"),
        optional=True,
        order=5,
    ),
}

ROLES: Dict[RoleId, RoleDefinition] = {
    RoleId.PLANNER: RoleDefinition(
        role=RoleId.PLANNER,
        display_name="Planner",
        phases=(PhaseCode.PLANNING,),
        responsibilities=(
            "Conduct discovery and requirements gathering",
            "Create specifications and project scope",
            "Define acceptance criteria",
            "Generate PRD or Tech Spec",
            "Identify risks and dependencies",
        ),
        outputs=("prd", "tech-spec", "requirements"),
        specialists=(),
    ),
    RoleId.DESIGNER: RoleDefinition(
        role=RoleId.DESIGNER,
        display_name="Designer",
        phases=(PhaseCode.PLANNING, PhaseCode.REVIEW),
        responsibilities=(
            "Create wireframes and prototypes",
            "Define design system and components",
            "Ensure accessibility and usability",
            "Document UI/UX patterns",
            "Validate user flows",
        ),
        outputs=("wireframes", "design-spec", "ui-components"),
        specialists=("frontend-specialist",),
    ),
    RoleId.ARCHITECT: RoleDefinition(
        role=RoleId.ARCHITECT,
        display_name="Architect",
        phases=(PhaseCode.REVIEW,),
        responsibilities=(
            "Define system architecture",
            "Create ADRs (Architecture Decision Records)",
            "Choose technologies and patterns",
            "Ensure scalability and maintainability",
            "Review technical impact of decisions",
        ),
        outputs=("architecture", "adr", "tech-decisions"),
        specialists=("architect-specialist",),
    ),
    RoleId.DEVELOPER: RoleDefinition(
        role=RoleId.DEVELOPER,
        display_name="Developer",
        phases=(PhaseCode.EXECUTION,),
        responsibilities=(
            "Implement code according to specifications",
            "Follow defined patterns and architecture",
            "Create basic unit tests",
            "Document code when necessary",
            "Solve technical problems",
        ),
        outputs=("code", "unit-tests"),
        specialists=(
            "feature-developer",
            "bug-fixer",
            "backend-specialist",
            "frontend-specialist",
            "mobile-specialist",
            "database-specialist",
            "devops-specialist",
        ),
    ),
    RoleId.QA: RoleDefinition(
        role=RoleId.QA,
        display_name="QA Engineer",
        phases=(PhaseCode.VALIDATION,),
        responsibilities=(
            "Create and execute integration tests",
            "Validate security and performance",
            "Ensure quality gates",
            "Report and track bugs",
            "Validate acceptance criteria",
        ),
        outputs=("test-report", "qa-approval", "bug-report"),
        specialists=("test-writer", "security-auditor", "performance-optimizer"),
    ),
    RoleId.REVIEWER: RoleDefinition(
        role=RoleId.REVIEWER,
        display_name="Reviewer",
        phases=(PhaseCode.VALIDATION,),
        responsibilities=(
            "Review code and architecture",
            "Ensure compliance with standards",
            "Suggest improvements and optimizations",
            "Validate best practices",
            "Approve or request changes",
        ),
        outputs=("review-comments", "approval"),
        specialists=("code-reviewer",),
    ),
    RoleId.DOCUMENTER: RoleDefinition(
        role=RoleId.DOCUMENTER,
        display_name="Documenter",
        phases=(PhaseCode.CONFIRMATION,),
        responsibilities=(
            "Create technical documentation",
            "Update README and APIs",
            "Prepare handoff to production",
            "Generate changelog and release notes",
            "Document important decisions",
        ),
        outputs=("documentation", "changelog", "readme"),
        specialists=("documentation-writer",),
    ),
    RoleId.SOLO_DEV: RoleDefinition(
        role=RoleId.SOLO_DEV,
        display_name="Solo Dev",
        phases=PHASE_ORDER,
        responsibilities=(
            "Execute complete flow for small tasks",
            "Bug fixes and quick refactorings",
            "Low complexity features",
            "Maintenance of existing code",
            "Adjustments and specific tweaks",
        ),
        outputs=("code", "tests", "docs"),
        specialists=("refactoring-specialist", "bug-fixer"),
    ),
}

# Agents that map onto more than one role resolve to the first listed here.
_SPECIALIST_PRIORITY: Tuple[RoleId, ...] = (
    RoleId.DESIGNER,
    RoleId.ARCHITECT,
    RoleId.DEVELOPER,
    RoleId.QA,
    RoleId.REVIEWER,
    RoleId.DOCUMENTER,
    RoleId.SOLO_DEV,
)


def phase_definition(phase: PhaseCode) -> PhaseDefinition:
    return PHASES[phase]


def phase_order(phase: PhaseCode) -> int:
    return PHASES[phase].order


def next_phase(phase: PhaseCode) -> Optional[PhaseCode]:
    index = PHASE_ORDER.index(phase)
    if index >= len(PHASE_ORDER) - 1:
        return None
    return PHASE_ORDER[index + 1]


def previous_phase(phase: PhaseCode) -> Optional[PhaseCode]:
    index = PHASE_ORDER.index(phase)
    if index == 0:
        return None
    return PHASE_ORDER[index - 1]


def roles_for_phase(phase: PhaseCode) -> List[RoleId]:
    """All catalog roles that may work in ``phase``, solo-dev included."""
    return [role for role in RoleId if phase in ROLES[role].phases]


def is_phase_optional(phase: PhaseCode) -> bool:
    return PHASES[phase].optional


def outputs_for_phase(phase: PhaseCode) -> List[str]:
    return list(PHASES[phase].outputs)


def responsibilities_for_role(role: RoleId) -> List[str]:
    return list(ROLES[role].responsibilities)


def outputs_for_role(role: RoleId) -> List[str]:
    return list(ROLES[role].outputs)


def display_name(role: RoleId) -> str:
    return ROLES[role].display_name


def specialists_for_role(role: RoleId) -> List[str]:
    return list(ROLES[role].specialists)


def role_for_specialist(specialist: str) -> Optional[RoleId]:
    for role in _SPECIALIST_PRIORITY:
        if specialist in ROLES[role].specialists:
            return role
    return None


def is_valid_phase(value: str) -> bool:
    return value in {code.value for code in PhaseCode}


def is_valid_role(value: str) -> bool:
    return value in {role.value for role in RoleId}
