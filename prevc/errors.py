from __future__ import annotations

from typing import Dict, Optional

from prevc.models import GateType, PhaseCode


class WorkflowError(Exception):
    pass


class NoWorkflowError(WorkflowError):
    def __init__(self, message: str = "No workflow found. Initialize a workflow first.") -> None:
        super().__init__(message)


class WorkflowExistsError(WorkflowError):
    def __init__(
        self,
        message: str = (
            "A workflow already exists. Pass archive_previous=True to archive it "
            "or archive_previous=False to delete it."
        ),
    ) -> None:
        super().__init__(message)


class NoPlanToApproveError(WorkflowError):
    def __init__(
        self, message: str = "No plan is linked to approve. Call mark_plan_created first."
    ) -> None:
        super().__init__(message)


class WorkflowGateError(WorkflowError):
    def __init__(
        self,
        message: str,
        from_phase: PhaseCode,
        to_phase: Optional[PhaseCode],
        gate: GateType,
        hint: str,
    ) -> None:
        super().__init__(message)
        self.from_phase = from_phase
        self.to_phase = to_phase
        self.gate = gate
        self.hint = hint

    @property
    def transition(self) -> Dict[str, Optional[str]]:
        return {
            "from": self.from_phase.value,
            "to": self.to_phase.value if self.to_phase is not None else None,
        }


class RoleNotStartedError(WorkflowError):
    def __init__(self, role: str, phase: PhaseCode) -> None:
        super().__init__(
            f"Role {role} has not been started in phase {phase.value}. Call start_role first."
        )
        self.role = role
        self.phase = phase


class InvalidRoleError(WorkflowError):
    def __init__(self, role: str, phase: PhaseCode) -> None:
        super().__init__(f"Role {role} does not operate in phase {phase.value}.")
        self.role = role
        self.phase = phase


class WorkflowCompleteError(WorkflowError):
    def __init__(self, message: str = "The workflow is already complete.") -> None:
        super().__init__(message)


class CorruptStatusError(WorkflowError):
    pass


class StaleWriteError(WorkflowError):
    """The document changed on disk since it was loaded; reload and retry."""

    retryable = True

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Stale write: status document is at revision {actual}, expected {expected}."
        )
        self.expected = expected
        self.actual = actual


class CollaborationError(WorkflowError):
    pass


class SessionNotFoundError(CollaborationError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Collaboration session not found: {session_id}")
        self.session_id = session_id


class SessionStateError(CollaborationError):
    pass


class NotAParticipantError(CollaborationError):
    def __init__(self, role: str, session_id: str) -> None:
        super().__init__(f"Role {role} is not a participant in session {session_id}")
        self.role = role
        self.session_id = session_id
