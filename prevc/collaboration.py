from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from prevc.catalog import display_name, responsibilities_for_role
from prevc.errors import NotAParticipantError, SessionNotFoundError, SessionStateError
from prevc.models import RoleId
from prevc.utils.time import parse_iso, utc_now_iso

logger = logging.getLogger(__name__)

DECISION_KEYWORDS = (
    "decidimos",
    "decided",
    "conclusão",
    "conclusion",
    "definimos",
    "defined",
    "escolhemos",
    "chose",
    "optamos",
    "opted",
)

RECOMMENDATION_KEYWORDS = (
    "recomendo",
    "recommend",
    "sugiro",
    "suggest",
    "devemos",
    "should",
    "melhor",
    "better",
    "ideal",
)

# First match wins.
TOPIC_ROLE_RULES: Tuple[Tuple[Tuple[str, ...], Tuple[RoleId, ...]], ...] = (
    (
        ("arquitetura", "architecture", "design"),
        (RoleId.ARCHITECT, RoleId.DEVELOPER, RoleId.DESIGNER),
    ),
    (
        ("teste", "test", "qualidade", "quality"),
        (RoleId.QA, RoleId.REVIEWER, RoleId.DEVELOPER),
    ),
    (
        ("requisito", "requirement", "planejamento", "planning"),
        (RoleId.PLANNER, RoleId.ARCHITECT, RoleId.DESIGNER),
    ),
    (
        ("documentação", "documentation", "docs"),
        (RoleId.DOCUMENTER, RoleId.DEVELOPER, RoleId.PLANNER),
    ),
    (
        ("segurança", "security"),
        (RoleId.QA, RoleId.ARCHITECT, RoleId.REVIEWER),
    ),
    (
        ("performance", "desempenho"),
        (RoleId.QA, RoleId.DEVELOPER, RoleId.ARCHITECT),
    ),
)

DEFAULT_ROLES = (RoleId.PLANNER, RoleId.ARCHITECT, RoleId.DEVELOPER)


class SessionStatus(str, Enum):
    ACTIVE = "active"
    SYNTHESIZING = "synthesizing"
    CONCLUDED = "concluded"


@dataclass
class Contribution:
    role: RoleId
    message: str
    timestamp: str


@dataclass
class CollaborationSynthesis:
    topic: str
    participants: List[RoleId]
    contributions: int
    decisions: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


class SynthesisStrategy(Protocol):
    def synthesize(
        self, topic: str, participants: Sequence[RoleId], contributions: Sequence[Contribution]
    ) -> CollaborationSynthesis: ...


class KeywordSynthesisStrategy:
    """Pulls decisions and recommendations out of contributions by keyword.

    Each participant also gets one generic recommendation built from the
    first responsibility the catalog lists for its role.
    """

    def __init__(
        self,
        decision_keywords: Sequence[str] = DECISION_KEYWORDS,
        recommendation_keywords: Sequence[str] = RECOMMENDATION_KEYWORDS,
    ) -> None:
        self.decision_keywords = tuple(k.lower() for k in decision_keywords)
        self.recommendation_keywords = tuple(k.lower() for k in recommendation_keywords)

    def synthesize(
        self, topic: str, participants: Sequence[RoleId], contributions: Sequence[Contribution]
    ) -> CollaborationSynthesis:
        decisions: List[str] = []
        recommendations: List[str] = []
        for contribution in contributions:
            text = contribution.message.lower()
            attributed = f"[{display_name(contribution.role)}]: {contribution.message}"
            if any(keyword in text for keyword in self.decision_keywords):
                decisions.append(attributed)
            if any(keyword in text for keyword in self.recommendation_keywords):
                recommendations.append(attributed)

        for role in participants:
            responsibilities = responsibilities_for_role(role)
            if responsibilities:
                recommendations.append(
                    f"Consider {display_name(role)}'s expertise in: {responsibilities[0]}"
                )

        return CollaborationSynthesis(
            topic=topic,
            participants=list(participants),
            contributions=len(contributions),
            decisions=decisions,
            recommendations=recommendations,
        )


def select_roles_for_topic(topic: str) -> List[RoleId]:
    text = topic.lower()
    for keywords, roles in TOPIC_ROLE_RULES:
        if any(keyword in text for keyword in keywords):
            return list(roles)
    return list(DEFAULT_ROLES)


class CollaborationSession:
    def __init__(
        self,
        topic: str,
        participants: Optional[Sequence[RoleId]] = None,
        strategy: Optional[SynthesisStrategy] = None,
    ) -> None:
        self.id = f"collab-{uuid.uuid4().hex[:12]}"
        self.topic = topic
        roles = [RoleId(role) for role in participants] if participants else select_roles_for_topic(topic)
        self.participants: List[RoleId] = list(dict.fromkeys(roles))
        self.contributions: List[Contribution] = []
        self.status = SessionStatus.ACTIVE
        self.started_at = utc_now_iso()
        self.concluded_at: Optional[str] = None
        self.synthesis: Optional[CollaborationSynthesis] = None
        self._strategy: SynthesisStrategy = strategy or KeywordSynthesisStrategy()

    def _require_active(self) -> None:
        if self.status != SessionStatus.ACTIVE:
            raise SessionStateError(f"Session {self.id} is {self.status.value}; it no longer accepts changes.")

    def add_participant(self, role: RoleId) -> None:
        self._require_active()
        role = RoleId(role)
        if role not in self.participants:
            self.participants.append(role)

    def remove_participant(self, role: RoleId) -> None:
        self._require_active()
        role = RoleId(role)
        if role not in self.participants:
            raise NotAParticipantError(role.value, self.id)
        self.participants.remove(role)

    def contribute(self, role: RoleId, message: str) -> Contribution:
        self._require_active()
        role = RoleId(role)
        if role not in self.participants:
            raise NotAParticipantError(role.value, self.id)
        if not message or not message.strip():
            raise ValueError("Contribution message must not be empty.")
        contribution = Contribution(role=role, message=message.strip(), timestamp=utc_now_iso())
        self.contributions.append(contribution)
        return contribution

    def synthesize(self) -> CollaborationSynthesis:
        self._require_active()
        self.status = SessionStatus.SYNTHESIZING
        try:
            self.synthesis = self._strategy.synthesize(self.topic, self.participants, self.contributions)
        except Exception:
            self.status = SessionStatus.ACTIVE
            raise
        self.status = SessionStatus.CONCLUDED
        self.concluded_at = utc_now_iso()
        return self.synthesis

    def contributions_by_role(self, role: RoleId) -> List[Contribution]:
        role = RoleId(role)
        return [item for item in self.contributions if item.role == role]

    def participant_names(self) -> List[str]:
        return [display_name(role) for role in self.participants]

    def duration_minutes(self) -> int:
        end = parse_iso(self.concluded_at) if self.concluded_at else datetime.now(timezone.utc)
        return int((end - parse_iso(self.started_at)).total_seconds() // 60)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


class CollaborationManager:
    def __init__(self, strategy: Optional[SynthesisStrategy] = None) -> None:
        self._strategy = strategy
        self._sessions: Dict[str, CollaborationSession] = {}
        self._lock = threading.Lock()

    def create_session(
        self, topic: str, participants: Optional[Sequence[RoleId]] = None
    ) -> CollaborationSession:
        if not topic or not topic.strip():
            raise ValueError("Collaboration topic must not be empty.")
        session = CollaborationSession(topic.strip(), participants, strategy=self._strategy)
        with self._lock:
            self._sessions[session.id] = session
        logger.info(
            "[collab] session created id=%s topic=%r participants=%s",
            session.id,
            session.topic,
            ",".join(role.value for role in session.participants),
        )
        return session

    def get_session(self, session_id: str) -> CollaborationSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def contribute(self, session_id: str, role: RoleId, message: str) -> Contribution:
        session = self.get_session(session_id)
        with self._lock:
            return session.contribute(role, message)

    def synthesize(self, session_id: str) -> CollaborationSynthesis:
        session = self.get_session(session_id)
        with self._lock:
            synthesis = session.synthesize()
        logger.info(
            "[collab] session concluded id=%s decisions=%s recommendations=%s",
            session_id,
            len(synthesis.decisions),
            len(synthesis.recommendations),
        )
        return synthesis

    def end_session(self, session_id: str) -> CollaborationSynthesis:
        return self.synthesize(session_id)

    def get_active_sessions(self) -> List[CollaborationSession]:
        with self._lock:
            return [session for session in self._sessions.values() if session.is_active]

    def clear_concluded_sessions(self) -> int:
        with self._lock:
            concluded = [
                session_id
                for session_id, session in self._sessions.items()
                if session.status == SessionStatus.CONCLUDED
            ]
            for session_id in concluded:
                del self._sessions[session_id]
        if concluded:
            logger.debug("[collab] cleared concluded sessions count=%s", len(concluded))
        return len(concluded)
