from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from prevc.catalog import PHASE_ORDER, ROLES, roles_for_phase
from prevc.models import PhaseCode, ProjectContext, RoleId, ScaleLevel

P, R, E, V, C = PHASE_ORDER


@dataclass(frozen=True)
class ScaleRoute:
    scale: ScaleLevel
    required_phases: Tuple[PhaseCode, ...]
    optional_phases: Tuple[PhaseCode, ...]
    roles_by_phase: Dict[PhaseCode, Tuple[RoleId, ...]]
    documents: Tuple[str, ...]
    extras: Tuple[str, ...] = ()

    @property
    def roles(self) -> List[RoleId]:
        seen: List[RoleId] = []
        for phase in self.required_phases:
            for role in self.roles_by_phase.get(phase, ()):
                if role not in seen:
                    seen.append(role)
        return seen


# None stands for every specialised role (solo-dev excluded).
_ROUTE_TABLE: Dict[ScaleLevel, Dict] = {
    ScaleLevel.QUICK: {
        "phases": (E, V),
        "roles": (RoleId.SOLO_DEV,),
        "documents": ("code",),
    },
    ScaleLevel.SMALL: {
        "phases": (P, E, V),
        "roles": (RoleId.PLANNER, RoleId.DEVELOPER, RoleId.QA),
        "documents": ("tech-spec", "code", "test-report"),
    },
    ScaleLevel.MEDIUM: {
        "phases": (P, R, E, V),
        "roles": (
            RoleId.PLANNER,
            RoleId.ARCHITECT,
            RoleId.DEVELOPER,
            RoleId.QA,
            RoleId.REVIEWER,
        ),
        "documents": ("prd", "architecture", "code", "test-report", "review"),
    },
    ScaleLevel.LARGE: {
        "phases": (P, R, E, V, C),
        "roles": None,
        "documents": ("prd", "architecture", "code", "test-report", "documentation"),
    },
    ScaleLevel.ENTERPRISE: {
        "phases": (P, R, E, V, C),
        "roles": None,
        "documents": (
            "prd",
            "tech-spec",
            "requirements",
            "architecture",
            "adr",
            "code",
            "unit-tests",
            "test-report",
            "review",
            "documentation",
            "changelog",
        ),
        "extras": ("security-audit", "compliance-check", "adr"),
    },
}

_ESTIMATED_TIMES: Dict[ScaleLevel, str] = {
    ScaleLevel.QUICK: "~5 min",
    ScaleLevel.SMALL: "~15 min",
    ScaleLevel.MEDIUM: "~30 min",
    ScaleLevel.LARGE: "~1 hour",
    ScaleLevel.ENTERPRISE: "~2+ hours",
}

BUG_FIX_KEYWORDS = (
    "fix",
    "bug",
    "hotfix",
    "patch",
    "correção",
    "corrigir",
    "erro",
    "issue",
    "problema",
)
SIMPLE_FEATURE_KEYWORDS = (
    "add",
    "adicionar",
    "simple",
    "simples",
    "pequeno",
    "small",
    "minor",
    "tweak",
    "ajuste",
)
SECURITY_KEYWORDS = (
    "security",
    "segurança",
    "compliance",
    "audit",
    "auditoria",
    "gdpr",
    "lgpd",
    "pci",
    "hipaa",
    "soc2",
)
DOCUMENTATION_KEYWORDS = (
    "document",
    "documentar",
    "docs",
    "readme",
    "api",
    "public",
    "externa",
    "external",
)

QUICK_MAX_FILES = 3
SMALL_MAX_FILES = 10
LARGE_MIN_FILES = 30
LARGE_MIN_STACK_ITEMS = 4


def _mentions(text: str, keywords: Tuple[str, ...]) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in keywords)


def detect_scale(context: ProjectContext) -> ScaleLevel:
    description = context.description or ""
    file_count = context.file_count
    stack_items = 0
    if context.stack is not None:
        stack_items = len(set(context.stack.languages)) + len(set(context.stack.frameworks))

    if _mentions(description, BUG_FIX_KEYWORDS):
        return ScaleLevel.QUICK
    if file_count is not None and file_count <= QUICK_MAX_FILES and not context.has_compliance:
        return ScaleLevel.QUICK

    if context.has_compliance or _mentions(description, SECURITY_KEYWORDS):
        return ScaleLevel.ENTERPRISE

    if _mentions(description, SIMPLE_FEATURE_KEYWORDS) and (
        file_count is None or file_count <= SMALL_MAX_FILES
    ):
        return ScaleLevel.SMALL

    if (
        (file_count is not None and file_count > LARGE_MIN_FILES)
        or _mentions(description, DOCUMENTATION_KEYWORDS)
        or context.complexity == "high"
        or stack_items >= LARGE_MIN_STACK_ITEMS
    ):
        return ScaleLevel.LARGE

    return ScaleLevel.MEDIUM


def parse_scale(value: Union[ScaleLevel, int, str, None]) -> ScaleLevel:
    """Coerce user input into a scale; anything unrecognised is MEDIUM."""
    if isinstance(value, ScaleLevel):
        return value
    if isinstance(value, bool) or value is None:
        return ScaleLevel.MEDIUM
    if isinstance(value, int):
        try:
            return ScaleLevel(value)
        except ValueError:
            return ScaleLevel.MEDIUM
    text = str(value).strip()
    if text.isdigit():
        return parse_scale(int(text))
    return ScaleLevel.__members__.get(text.upper(), ScaleLevel.MEDIUM)


def scale_name(scale: ScaleLevel) -> str:
    return scale.name.capitalize()


def get_scale_route(scale: Union[ScaleLevel, int, str, None]) -> ScaleRoute:
    level = parse_scale(scale)
    entry = _ROUTE_TABLE[level]
    required: Tuple[PhaseCode, ...] = entry["phases"]
    allowed_roles: Optional[Tuple[RoleId, ...]] = entry["roles"]

    roles_by_phase: Dict[PhaseCode, Tuple[RoleId, ...]] = {}
    for phase in required:
        if allowed_roles is None:
            roles = [role for role in roles_for_phase(phase) if role != RoleId.SOLO_DEV]
        else:
            roles = [role for role in allowed_roles if phase in ROLES[role].phases]
        roles_by_phase[phase] = tuple(roles)

    return ScaleRoute(
        scale=level,
        required_phases=required,
        optional_phases=tuple(phase for phase in PHASE_ORDER if phase not in required),
        roles_by_phase=roles_by_phase,
        documents=entry["documents"],
        extras=entry.get("extras", ()),
    )


def is_phase_required_for_scale(phase: PhaseCode, scale: ScaleLevel) -> bool:
    return phase in get_scale_route(scale).required_phases


def get_estimated_time(scale: Union[ScaleLevel, int, str, None]) -> str:
    return _ESTIMATED_TIMES[parse_scale(scale)]
