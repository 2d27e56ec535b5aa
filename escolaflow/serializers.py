"""Plain-dict views of the ORM rows returned by the API."""
from __future__ import annotations

from typing import Dict, Optional

from .directory import Actor, is_assigned_tutor
from .lifecycle import (
    ACTION_TYPE_LABELS,
    ROLE_LABELS,
    STATUS_LABELS,
    ActionType,
    OccurrenceStatus,
    UserRole,
    available_actions,
    can_transition,
)


def _ts(value):
    return value.isoformat() + "Z" if value else None


def profile_summary(profile) -> Optional[Dict[str, object]]:
    if profile is None:
        return None
    role = UserRole(profile.role)
    return {
        "id": profile.id,
        "full_name": profile.full_name,
        "role": role.value,
        "role_label": ROLE_LABELS[role],
    }


def profile_to_dict(profile) -> Dict[str, object]:
    data = profile_summary(profile)
    data.update({
        "whatsapp_number": profile.whatsapp_number,
        "email": profile.email,
        "active": profile.active,
        "created_at": _ts(profile.created_at),
        "updated_at": _ts(profile.updated_at),
    })
    return data


def class_to_dict(school_class) -> Dict[str, object]:
    return {
        "id": school_class.id,
        "name": school_class.name,
        "year": school_class.year,
        "active": school_class.active,
        "created_at": _ts(school_class.created_at),
    }


def student_to_dict(student) -> Dict[str, object]:
    return {
        "id": student.id,
        "name": student.name,
        "matricula": student.matricula,
        "class_id": student.class_id,
        "class_name": student.school_class.name if student.school_class else None,
        "tutor": profile_summary(student.tutor),
        "guardian_phone": student.guardian_phone,
        "active": student.active,
        "created_at": _ts(student.created_at),
    }


def action_to_dict(action) -> Dict[str, object]:
    action_type = ActionType(action.action_type)
    return {
        "id": action.id,
        "occurrence_id": action.occurrence_id,
        "action_type": action_type.value,
        "action_label": ACTION_TYPE_LABELS[action_type],
        "description": action.description,
        "author": profile_summary(action.author),
        "created_at": _ts(action.created_at),
    }


def occurrence_to_dict(occurrence, session=None, actor: Actor = None, with_actions: bool = False) -> Dict[str, object]:
    status = OccurrenceStatus(occurrence.status)
    data = {
        "id": occurrence.id,
        "status": status.value,
        "status_label": STATUS_LABELS[status],
        "student": {
            "id": occurrence.student_id,
            "name": occurrence.student.name if occurrence.student else None,
            "class_name": (
                occurrence.student.school_class.name
                if occurrence.student and occurrence.student.school_class
                else None
            ),
        },
        "author": profile_summary(occurrence.author),
        "tutor": profile_summary(occurrence.tutor),
        "description_original": occurrence.description_original,
        "description_formal": occurrence.description_formal,
        "created_at": _ts(occurrence.created_at),
        "updated_at": _ts(occurrence.updated_at),
    }
    if session is not None and actor is not None:
        assigned = is_assigned_tutor(session, actor, occurrence)
        data["available_actions"] = [a.value for a in available_actions(actor.role, assigned, status)]
        data["can_escalate"] = can_transition(actor.role, assigned, status, OccurrenceStatus.ESCALATED_VP)
        data["can_conclude"] = can_transition(actor.role, assigned, status, OccurrenceStatus.CONCLUDED)
    if with_actions:
        data["actions"] = [action_to_dict(a) for a in occurrence.actions]
    return data
