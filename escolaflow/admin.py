"""Administration of profiles, classes and students."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError

from .directory import Actor, require_admin
from .errors import CollaboratorUnavailable, NotFound, ValidationError
from .lifecycle import UserRole
from .models import Profile, SchoolClass, Student

log = logging.getLogger(__name__)

PROFILE_FIELDS = ("full_name", "role", "whatsapp_number", "email", "active")
STUDENT_FIELDS = ("name", "matricula", "class_id", "tutor_id", "guardian_phone", "active")


def _required(payload: Dict, field: str) -> str:
    value = payload.get(field)
    if isinstance(value, str):
        value = value.strip()
    if not value:
        raise ValidationError(f"{field} is required")
    return value


def _role(value) -> UserRole:
    try:
        return UserRole(value)
    except ValueError:
        raise ValidationError(f"Unknown role: {value}")


def _flag(field: str, value) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false")
    return value


def _commit(session, duplicate_message: str):
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ValidationError(duplicate_message)
    except OperationalError as e:
        session.rollback()
        log.error("Database unavailable, admin write rolled back: %s", e)
        raise CollaboratorUnavailable("Database unavailable; nothing was recorded")


def create_profile(session, actor: Actor, payload: Dict) -> Profile:
    require_admin(actor)
    profile = Profile(
        full_name=_required(payload, "full_name"),
        role=_role(payload.get("role") or UserRole.PROFESSOR.value),
        whatsapp_number=payload.get("whatsapp_number") or None,
        email=payload.get("email") or None,
        active=_flag("active", payload.get("active", True)),
    )
    session.add(profile)
    _commit(session, "Profile could not be created")
    log.info("Profile %s (%s) created by %s", profile.id, profile.role.value, actor.profile_id)
    return profile


def update_profile(session, actor: Actor, profile_id: str, payload: Dict) -> Profile:
    require_admin(actor)
    profile = session.get(Profile, profile_id)
    if profile is None:
        raise NotFound("Profile not found")
    if "active" in payload:
        _flag("active", payload["active"])
    for field in PROFILE_FIELDS:
        if field not in payload:
            continue
        value = payload[field]
        if field == "role":
            value = _role(value)
        elif field == "full_name" and not (value or "").strip():
            raise ValidationError("full_name is required")
        setattr(profile, field, value)
    _commit(session, "Profile could not be updated")
    return profile


def list_profiles(session, actor: Actor, role: Optional[str] = None) -> List[Profile]:
    require_admin(actor)
    query = session.query(Profile)
    if role:
        query = query.filter(Profile.role == _role(role))
    return query.order_by(Profile.full_name.asc()).all()


def create_class(session, actor: Actor, payload: Dict) -> SchoolClass:
    require_admin(actor)
    school_class = SchoolClass(name=_required(payload, "name"))
    if payload.get("year"):
        try:
            school_class.year = int(payload["year"])
        except (TypeError, ValueError):
            raise ValidationError("year must be a number")
    session.add(school_class)
    _commit(session, "Class could not be created")
    return school_class


def list_classes(session) -> List[SchoolClass]:
    return (
        session.query(SchoolClass)
        .filter(SchoolClass.active.is_(True))
        .order_by(SchoolClass.name.asc())
        .all()
    )


def _check_references(session, class_id: Optional[str], tutor_id: Optional[str]):
    if class_id is not None and session.get(SchoolClass, class_id) is None:
        raise NotFound(f"Class {class_id} not found")
    if tutor_id and session.get(Profile, tutor_id) is None:
        raise NotFound(f"Tutor {tutor_id} not found")


def create_student(session, actor: Actor, payload: Dict) -> Student:
    require_admin(actor)
    class_id = _required(payload, "class_id")
    tutor_id = payload.get("tutor_id") or None
    _check_references(session, class_id, tutor_id)
    student = Student(
        name=_required(payload, "name"),
        matricula=payload.get("matricula") or None,
        class_id=class_id,
        tutor_id=tutor_id,
        guardian_phone=payload.get("guardian_phone") or None,
    )
    session.add(student)
    _commit(session, f"Matrícula \"{student.matricula}\" já existe")
    return student


def update_student(session, actor: Actor, student_id: str, payload: Dict) -> Student:
    """Edit a student; setting ``tutor_id`` to null clears the tutorship."""
    require_admin(actor)
    student = session.get(Student, student_id)
    if student is None:
        raise NotFound("Student not found")
    _check_references(session, payload.get("class_id"), payload.get("tutor_id"))
    if "active" in payload:
        _flag("active", payload["active"])
    for field in STUDENT_FIELDS:
        if field not in payload:
            continue
        value = payload[field]
        setattr(student, field, value if field == "active" else (value or None))
    if not student.name or not student.class_id:
        session.rollback()
        raise ValidationError("name and class_id are required")
    _commit(session, f"Matrícula \"{student.matricula}\" já existe")
    return student


def list_students(session, class_id: Optional[str] = None, tutor_id: Optional[str] = None) -> List[Student]:
    query = session.query(Student).filter(Student.active.is_(True))
    if class_id:
        query = query.filter(Student.class_id == class_id)
    if tutor_id:
        query = query.filter(Student.tutor_id == tutor_id)
    return query.order_by(Student.name.asc()).all()
