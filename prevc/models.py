from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Optional


class PhaseCode(str, Enum):
    PLANNING = "P"
    REVIEW = "R"
    EXECUTION = "E"
    VALIDATION = "V"
    CONFIRMATION = "C"


class RoleId(str, Enum):
    PLANNER = "planner"
    DESIGNER = "designer"
    ARCHITECT = "architect"
    DEVELOPER = "developer"
    QA = "qa"
    REVIEWER = "reviewer"
    DOCUMENTER = "documenter"
    SOLO_DEV = "solo-dev"


class ScaleLevel(IntEnum):
    QUICK = 0
    SMALL = 1
    MEDIUM = 2
    LARGE = 3
    ENTERPRISE = 4


class StatusType(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class GateType(str, Enum):
    PLAN = "plan"
    APPROVAL = "approval"
    OUTPUTS = "outputs"


DONE_STATUSES = (StatusType.COMPLETED, StatusType.SKIPPED)


@dataclass(frozen=True)
class OutputRef:
    path: str

    def to_dict(self) -> Dict:
        return {"path": self.path}

    @classmethod
    def from_dict(cls, data: Dict) -> "OutputRef":
        return cls(path=data["path"])


def as_output_refs(outputs: Optional[List]) -> List[OutputRef]:
    """Accept plain path strings or OutputRef values from callers."""
    refs: List[OutputRef] = []
    for item in outputs or []:
        if isinstance(item, OutputRef):
            refs.append(item)
        else:
            refs.append(OutputRef(path=str(item)))
    return refs


@dataclass
class PhaseStatus:
    status: StatusType = StatusType.PENDING
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    outputs: List[OutputRef] = field(default_factory=list)
    reason: Optional[str] = None
    current_task: Optional[str] = None

    def to_dict(self) -> Dict:
        payload: Dict = {
            "status": self.status.value,
            "outputs": [item.to_dict() for item in self.outputs],
        }
        for key in ("started_at", "completed_at", "reason", "current_task"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload

    @classmethod
    def from_dict(cls, data: Dict) -> "PhaseStatus":
        return cls(
            status=StatusType(data.get("status", StatusType.PENDING.value)),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            outputs=[OutputRef.from_dict(item) for item in data.get("outputs", [])],
            reason=data.get("reason"),
            current_task=data.get("current_task"),
        )


@dataclass
class RoleStatus:
    phase: PhaseCode
    last_active: str
    status: StatusType = StatusType.PENDING
    outputs: List[OutputRef] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "status": self.status.value,
            "phase": self.phase.value,
            "outputs": [item.to_dict() for item in self.outputs],
            "last_active": self.last_active,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "RoleStatus":
        return cls(
            status=StatusType(data.get("status", StatusType.PENDING.value)),
            phase=PhaseCode(data["phase"]),
            outputs=[OutputRef.from_dict(item) for item in data.get("outputs", [])],
            last_active=data["last_active"],
        )


@dataclass
class WorkflowSettings:
    autonomous_mode: bool = False
    require_plan: bool = True
    require_approval: bool = True

    def merged(self, overrides: Optional[Dict]) -> "WorkflowSettings":
        values = self.to_dict()
        for key, value in (overrides or {}).items():
            if key not in values:
                raise ValueError(f"Unknown workflow setting: {key}")
            if value is None:
                continue
            if not isinstance(value, bool):
                raise ValueError(f"Workflow setting {key} must be true or false, got {value!r}")
            values[key] = value
        return WorkflowSettings(**values)

    def to_dict(self) -> Dict[str, bool]:
        return {
            "autonomous_mode": self.autonomous_mode,
            "require_plan": self.require_plan,
            "require_approval": self.require_approval,
        }


@dataclass
class PlanApproval:
    approver: str
    approved_at: str
    notes: Optional[str] = None

    def to_dict(self) -> Dict:
        payload = {"approver": self.approver, "approved_at": self.approved_at}
        if self.notes is not None:
            payload["notes"] = self.notes
        return payload

    @classmethod
    def from_dict(cls, data: Dict) -> "PlanApproval":
        return cls(
            approver=data["approver"],
            approved_at=data["approved_at"],
            notes=data.get("notes"),
        )


@dataclass
class ProjectMetadata:
    name: str
    scale: ScaleLevel
    current_phase: PhaseCode
    started: str
    description: Optional[str] = None

    def to_dict(self) -> Dict:
        payload = {
            "name": self.name,
            "scale": self.scale.name,
            "current_phase": self.current_phase.value,
            "started": self.started,
        }
        if self.description is not None:
            payload["description"] = self.description
        return payload

    @classmethod
    def from_dict(cls, data: Dict) -> "ProjectMetadata":
        return cls(
            name=data["name"],
            scale=ScaleLevel[data["scale"]],
            current_phase=PhaseCode(data["current_phase"]),
            started=data["started"],
            description=data.get("description"),
        )


@dataclass
class HistoryEntry:
    timestamp: str
    phase: PhaseCode
    action: str
    role: Optional[str] = None
    target_role: Optional[str] = None
    plan: Optional[str] = None
    approver: Optional[str] = None
    artifacts: List[str] = field(default_factory=list)
    description: Optional[str] = None

    def to_dict(self) -> Dict:
        payload: Dict = {
            "timestamp": self.timestamp,
            "phase": self.phase.value,
            "action": self.action,
        }
        for key in ("role", "target_role", "plan", "approver", "description"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        if self.artifacts:
            payload["artifacts"] = list(self.artifacts)
        return payload

    @classmethod
    def from_dict(cls, data: Dict) -> "HistoryEntry":
        return cls(
            timestamp=data["timestamp"],
            phase=PhaseCode(data["phase"]),
            action=data["action"],
            role=data.get("role"),
            target_role=data.get("target_role"),
            plan=data.get("plan"),
            approver=data.get("approver"),
            artifacts=list(data.get("artifacts", [])),
            description=data.get("description"),
        )


@dataclass
class WorkflowStatus:
    project: ProjectMetadata
    phases: Dict[PhaseCode, PhaseStatus]
    roles: Dict[RoleId, RoleStatus]
    settings: WorkflowSettings
    linked_plan: Optional[str] = None
    approval: Optional[PlanApproval] = None
    history: List[HistoryEntry] = field(default_factory=list)
    resume_context: str = ""
    revision: int = 0

    def to_dict(self) -> Dict:
        payload: Dict = {
            "revision": self.revision,
            "project": self.project.to_dict(),
            "phases": {code.value: self.phases[code].to_dict() for code in PhaseCode},
            "roles": {
                role.value: self.roles[role].to_dict()
                for role in RoleId
                if role in self.roles
            },
            "settings": self.settings.to_dict(),
            "history": [entry.to_dict() for entry in self.history],
            "resume_context": self.resume_context,
        }
        if self.linked_plan is not None:
            payload["linked_plan"] = self.linked_plan
        if self.approval is not None:
            payload["approval"] = self.approval.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: Dict, default_settings: WorkflowSettings) -> "WorkflowStatus":
        """Build the in-memory model, filling optional fields with defaults."""
        phases_raw = data.get("phases", {})
        approval_raw = data.get("approval")
        return cls(
            project=ProjectMetadata.from_dict(data["project"]),
            phases={
                code: PhaseStatus.from_dict(phases_raw.get(code.value, {}))
                for code in PhaseCode
            },
            roles={
                RoleId(role): RoleStatus.from_dict(payload)
                for role, payload in data.get("roles", {}).items()
            },
            settings=default_settings.merged(data.get("settings")),
            linked_plan=data.get("linked_plan"),
            approval=PlanApproval.from_dict(approval_raw) if approval_raw else None,
            history=[HistoryEntry.from_dict(item) for item in data.get("history", [])],
            resume_context=data.get("resume_context", ""),
            revision=int(data.get("revision", 0)),
        )


@dataclass
class StackSummary:
    languages: List[str] = field(default_factory=list)
    frameworks: List[str] = field(default_factory=list)


@dataclass
class ProjectContext:
    name: str
    description: str = ""
    file_count: Optional[int] = None
    complexity: Optional[str] = None
    has_compliance: bool = False
    stack: Optional[StackSummary] = None


@dataclass
class Progress:
    completed: int
    total: int
    percentage: int


@dataclass
class WorkflowSummary:
    name: str
    scale: ScaleLevel
    current_phase: PhaseCode
    progress: Progress
    is_complete: bool
    started_at: str
    estimated_time: str
    documents: List[str] = field(default_factory=list)
