"""Profile lookups: who is calling, and how they relate to an occurrence."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import Unauthorized
from .lifecycle import UserRole
from .models import Occurrence, Profile, Student


@dataclass(frozen=True)
class Actor:
    profile_id: str
    role: UserRole
    full_name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def sees_everything(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.VICE_DIRECTOR)


def get_profile(session, profile_id: str) -> Optional[Profile]:
    if not profile_id:
        return None
    return session.get(Profile, profile_id)


def get_actor(session, profile_id: Optional[str]) -> Actor:
    profile = get_profile(session, profile_id)
    if profile is None:
        raise Unauthorized("Unknown profile")
    if not profile.active:
        raise Unauthorized("Profile is inactive")
    return Actor(profile_id=profile.id, role=UserRole(profile.role), full_name=profile.full_name)


def require_admin(actor: Actor):
    if not actor.is_admin:
        raise Unauthorized("Admin access required")


def tutor_of(session, occurrence: Occurrence) -> Optional[str]:
    if occurrence.tutor_id:
        return occurrence.tutor_id
    student = session.get(Student, occurrence.student_id)
    return student.tutor_id if student else None


def is_assigned_tutor(session, actor: Actor, occurrence: Occurrence) -> bool:
    return tutor_of(session, occurrence) == actor.profile_id


def can_view(session, actor: Actor, occurrence: Occurrence) -> bool:
    if actor.sees_everything or occurrence.author_id == actor.profile_id:
        return True
    return is_assigned_tutor(session, actor, occurrence)
