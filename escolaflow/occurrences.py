"""Occurrence lifecycle operations.

Every write here commits as one unit: the occurrence row, the action row
and the outbox event row either all land or none do. Delivery of the
outbox event happens afterwards (see ``notifier.dispatch``) and can fail
without touching the committed transition.
"""
from __future__ import annotations

import datetime as dt
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import and_, case, func, or_
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from .directory import Actor, can_view, is_assigned_tutor, require_admin
from .errors import CollaboratorUnavailable, InvalidTransition, NotFound, Unauthorized, ValidationError
from .lifecycle import (
    DIRECT_DESCRIPTIONS,
    INITIAL_STATUS,
    ActionType,
    OccurrenceStatus,
    find_transition,
)
from .metrics import metrics
from .models import Action, NotificationEvent, Occurrence, Profile, Student

log = logging.getLogger(__name__)

OCCURRENCE_CREATED = "occurrence_created"
STATUS_CHANGED = "status_changed"


@dataclass
class Outcome:
    occurrence: Occurrence
    event: NotificationEvent
    action: Optional[Action] = None


def _clean(text) -> str:
    return (text or "").strip()


@contextmanager
def _writing(session):
    """Roll back and map persistence failures for the enclosed writes."""
    try:
        yield
    except StaleDataError:
        session.rollback()
        raise InvalidTransition("Occurrence was changed by another request; reload it and try again")
    except OperationalError as e:
        session.rollback()
        log.error("Database unavailable, write rolled back: %s", e)
        raise CollaboratorUnavailable("Database unavailable; nothing was recorded")
    except Exception:
        session.rollback()
        raise


def _commit(session):
    with _writing(session):
        session.commit()


def record_event(session, occurrence_id, event_type, payload) -> NotificationEvent:
    """Queue an outbox row in the caller's transaction. Does not commit."""
    event = NotificationEvent(
        occurrence_id=occurrence_id,
        event_type=event_type,
        payload=payload,
        status="PENDING",
        attempts=0,
    )
    session.add(event)
    return event


def _event_payload(occurrence: Occurrence, event_type: str, **extra) -> Dict[str, object]:
    payload = {
        "event": event_type,
        "occurrence_id": occurrence.id,
        "student_id": occurrence.student_id,
        "author_id": occurrence.author_id,
        "tutor_id": occurrence.tutor_id,
    }
    payload.update(extra)
    return payload


def create_occurrence(
    session,
    actor: Actor,
    student_id: str,
    description_original: str,
    description_formal: str,
    tutor_id: Optional[str] = None,
) -> Outcome:
    formal = _clean(description_formal)
    if not formal:
        raise ValidationError("description_formal must not be empty")

    student = session.get(Student, student_id) if student_id else None
    if student is None or not student.active:
        raise NotFound("Student not found")

    if tutor_id and tutor_id != student.tutor_id:
        if session.get(Profile, tutor_id) is None:
            raise NotFound("Tutor not found")
        if not actor.is_admin:
            raise Unauthorized("Only an admin may assign a tutor other than the student's")
    tutor_id = tutor_id or student.tutor_id

    now = dt.datetime.utcnow()
    occurrence = Occurrence(
        student_id=student.id,
        author_id=actor.profile_id,
        tutor_id=tutor_id,
        description_original=_clean(description_original) or formal,
        description_formal=formal,
        status=INITIAL_STATUS,
        created_at=now,
        updated_at=now,
    )
    with _writing(session):
        session.add(occurrence)
        session.flush()
        event = record_event(
            session,
            occurrence.id,
            OCCURRENCE_CREATED,
            _event_payload(occurrence, OCCURRENCE_CREATED, status=INITIAL_STATUS.value),
        )
        session.commit()

    metrics.record_created()
    log.info("Occurrence %s created by %s for student %s", occurrence.id, actor.profile_id, student.id)
    return Outcome(occurrence=occurrence, event=event)


def submit_action(
    session,
    actor: Actor,
    occurrence_id: str,
    action_type,
    description: Optional[str] = None,
    direct: bool = False,
) -> Outcome:
    """Apply one edge of the lifecycle on behalf of ``actor``.

    ``direct`` replaces the description with the system text for the
    action type, for treatments concluded without a written report.
    """
    try:
        action_type = ActionType(action_type)
    except ValueError:
        raise ValidationError(f"Unknown action type: {action_type}")

    if direct:
        description = DIRECT_DESCRIPTIONS[action_type]
    description = _clean(description)
    if not description:
        raise ValidationError("description must not be empty")

    occurrence = session.get(Occurrence, occurrence_id) if occurrence_id else None
    if occurrence is None:
        raise NotFound("Occurrence not found")

    current = OccurrenceStatus(occurrence.status)
    transition = find_transition(current, action_type)
    if transition is None:
        raise InvalidTransition(f"Cannot apply {action_type.value} to an occurrence in {current.value}")

    if not transition.permits(actor.role, is_assigned_tutor(session, actor, occurrence)):
        log.warning(
            "Refused %s on occurrence %s for %s (%s)",
            action_type.value, occurrence.id, actor.profile_id, actor.role.value,
        )
        raise Unauthorized(f"{actor.role.value} may not apply {action_type.value} to this occurrence")

    now = dt.datetime.utcnow()
    action = Action(
        occurrence_id=occurrence.id,
        author_id=actor.profile_id,
        action_type=action_type,
        description=description,
        created_at=now,
    )
    session.add(action)
    occurrence.status = transition.target
    occurrence.updated_at = now

    event = record_event(
        session,
        occurrence.id,
        STATUS_CHANGED,
        _event_payload(
            occurrence,
            STATUS_CHANGED,
            old_status=current.value,
            new_status=transition.target.value,
            action_type=action_type.value,
            resolution_text=description,
        ),
    )
    _commit(session)

    metrics.record_transition(action_type.value)
    log.info(
        "Occurrence %s moved %s -> %s by %s",
        occurrence.id, current.value, transition.target.value, actor.profile_id,
    )
    return Outcome(occurrence=occurrence, event=event, action=action)


def get_occurrence(session, actor: Actor, occurrence_id: str) -> Occurrence:
    occurrence = session.get(Occurrence, occurrence_id) if occurrence_id else None
    if occurrence is None:
        raise NotFound("Occurrence not found")
    if not can_view(session, actor, occurrence):
        raise Unauthorized("Occurrence is not visible to this profile")
    return occurrence


def list_occurrences(
    session,
    actor: Actor,
    status: Optional[str] = None,
    student_id: Optional[str] = None,
) -> List[Occurrence]:
    query = session.query(Occurrence)
    if status:
        try:
            query = query.filter(Occurrence.status == OccurrenceStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown status: {status}")
    if student_id:
        query = query.filter(Occurrence.student_id == student_id)
    if not actor.sees_everything:
        # occurrences without a stamped tutor fall back to the student's current tutor
        query = query.outerjoin(Student, Student.id == Occurrence.student_id).filter(
            or_(
                Occurrence.author_id == actor.profile_id,
                Occurrence.tutor_id == actor.profile_id,
                and_(Occurrence.tutor_id.is_(None), Student.tutor_id == actor.profile_id),
            )
        )
    return query.order_by(Occurrence.created_at.desc()).all()


def list_actions(session, actor: Actor, occurrence_id: str) -> List[Action]:
    occurrence = get_occurrence(session, actor, occurrence_id)
    return (
        session.query(Action)
        .filter(Action.occurrence_id == occurrence.id)
        .order_by(Action.created_at.asc())
        .all()
    )


def delete_occurrence(session, actor: Actor, occurrence_id: str) -> None:
    """Remove an occurrence and its actions, whatever its status."""
    require_admin(actor)
    occurrence = session.get(Occurrence, occurrence_id) if occurrence_id else None
    if occurrence is None:
        raise NotFound("Occurrence not found")
    session.delete(occurrence)
    _commit(session)
    metrics.record_deleted()
    log.info("Occurrence %s deleted by %s", occurrence_id, actor.profile_id)


def occurrence_stats(session) -> List[Dict[str, object]]:
    def _count(status):
        return func.sum(case((Occurrence.status == status, 1), else_=0))

    rows = (
        session.query(
            Occurrence.author_id,
            Profile.full_name,
            func.count(Occurrence.id),
            _count(OccurrenceStatus.PENDING_TUTOR),
            _count(OccurrenceStatus.ESCALATED_VP),
            _count(OccurrenceStatus.CONCLUDED),
        )
        .join(Profile, Profile.id == Occurrence.author_id)
        .group_by(Occurrence.author_id, Profile.full_name)
        .order_by(func.count(Occurrence.id).desc())
        .all()
    )
    return [
        {
            "author_id": author_id,
            "author_name": name,
            "total_occurrences": total,
            "pending": int(pending or 0),
            "escalated": int(escalated or 0),
            "concluded": int(concluded or 0),
        }
        for author_id, name, total, pending, escalated, concluded in rows
    ]
