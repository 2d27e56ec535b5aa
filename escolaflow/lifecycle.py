"""Occurrence lifecycle: statuses, action types and the role-gated transition table."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import FrozenSet, List, Optional


class UserRole(str, enum.Enum):
    PROFESSOR = "professor"
    VICE_DIRECTOR = "vice_director"
    ADMIN = "admin"


class OccurrenceStatus(str, enum.Enum):
    PENDING_TUTOR = "PENDING_TUTOR"
    ESCALATED_VP = "ESCALATED_VP"
    CONCLUDED = "CONCLUDED"


class ActionType(str, enum.Enum):
    RESOLUTION = "resolution"
    ESCALATION = "escalation"
    VP_RESOLUTION = "vp_resolution"


INITIAL_STATUS = OccurrenceStatus.PENDING_TUTOR
TERMINAL_STATUSES = frozenset({OccurrenceStatus.CONCLUDED})

STATUS_LABELS = {
    OccurrenceStatus.PENDING_TUTOR: "Aguardando Tratativa",
    OccurrenceStatus.ESCALATED_VP: "Encaminhado à Vice-Direção",
    OccurrenceStatus.CONCLUDED: "Concluída",
}

ACTION_TYPE_LABELS = {
    ActionType.RESOLUTION: "Resolução",
    ActionType.ESCALATION: "Escalonamento",
    ActionType.VP_RESOLUTION: "Resolução Vice-Direção",
}

ROLE_LABELS = {
    UserRole.PROFESSOR: "Professor(a)",
    UserRole.VICE_DIRECTOR: "Vice-Diretor(a)",
    UserRole.ADMIN: "Administrador(a)",
}

# Used when an edge is taken without a written treatment.
DIRECT_DESCRIPTIONS = {
    ActionType.RESOLUTION: "Ocorrência resolvida diretamente pelo tutor, sem tratativa formal registrada.",
    ActionType.ESCALATION: "Ocorrência encaminhada diretamente à Vice-Direção, sem tratativa formal registrada.",
    ActionType.VP_RESOLUTION: "Ocorrência concluída diretamente pela Vice-Direção, sem tratativa formal registrada.",
}


@dataclass(frozen=True)
class Transition:
    source: OccurrenceStatus
    action_type: ActionType
    target: OccurrenceStatus
    # roles allowed regardless of tutor assignment
    roles: FrozenSet[UserRole]
    # roles allowed only when the actor is the occurrence's assigned tutor
    tutor_roles: FrozenSet[UserRole]

    def permits(self, role: UserRole, is_assigned_tutor: bool) -> bool:
        if role in self.roles:
            return True
        return is_assigned_tutor and role in self.tutor_roles


TRANSITIONS: List[Transition] = [
    Transition(
        OccurrenceStatus.PENDING_TUTOR,
        ActionType.RESOLUTION,
        OccurrenceStatus.CONCLUDED,
        roles=frozenset({UserRole.ADMIN}),
        tutor_roles=frozenset({UserRole.PROFESSOR, UserRole.VICE_DIRECTOR}),
    ),
    Transition(
        OccurrenceStatus.PENDING_TUTOR,
        ActionType.ESCALATION,
        OccurrenceStatus.ESCALATED_VP,
        roles=frozenset(),
        tutor_roles=frozenset({UserRole.PROFESSOR}),
    ),
    Transition(
        OccurrenceStatus.PENDING_TUTOR,
        ActionType.VP_RESOLUTION,
        OccurrenceStatus.CONCLUDED,
        roles=frozenset({UserRole.VICE_DIRECTOR, UserRole.ADMIN}),
        tutor_roles=frozenset(),
    ),
    Transition(
        OccurrenceStatus.ESCALATED_VP,
        ActionType.VP_RESOLUTION,
        OccurrenceStatus.CONCLUDED,
        roles=frozenset({UserRole.VICE_DIRECTOR, UserRole.ADMIN}),
        tutor_roles=frozenset(),
    ),
]

_BY_EDGE = {(t.source, t.action_type): t for t in TRANSITIONS}


def find_transition(current: OccurrenceStatus, action_type: ActionType) -> Optional[Transition]:
    return _BY_EDGE.get((OccurrenceStatus(current), ActionType(action_type)))


def can_transition(
    actor_role: UserRole,
    is_assigned_tutor: bool,
    current: OccurrenceStatus,
    target: OccurrenceStatus,
) -> bool:
    """True when some edge from ``current`` to ``target`` is open to the actor."""
    return any(
        t.source == current and t.target == target and t.permits(UserRole(actor_role), is_assigned_tutor)
        for t in TRANSITIONS
    )


def is_forward_move(current: Optional[OccurrenceStatus], target: OccurrenceStatus) -> bool:
    if current is None:
        return OccurrenceStatus(target) == INITIAL_STATUS
    if OccurrenceStatus(current) == OccurrenceStatus(target):
        return True
    return any(t.source == current and t.target == target for t in TRANSITIONS)


def available_actions(
    actor_role: UserRole,
    is_assigned_tutor: bool,
    current: OccurrenceStatus,
) -> List[ActionType]:
    return [
        t.action_type
        for t in TRANSITIONS
        if t.source == current and t.permits(UserRole(actor_role), is_assigned_tutor)
    ]
