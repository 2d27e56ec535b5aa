import datetime as dt
import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship, validates
from sqlalchemy.types import JSON

from .db import Base
from .errors import InvalidTransition
from .lifecycle import ActionType, OccurrenceStatus, UserRole, is_forward_move


def _new_id():
    return str(uuid.uuid4())


def _enum_column(enum_cls, name):
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=_new_id)
    full_name = Column(String, nullable=False)
    role = Column(_enum_column(UserRole, "user_role"), nullable=False, default=UserRole.PROFESSOR)
    whatsapp_number = Column(String)
    email = Column(String)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=dt.datetime.utcnow)
    updated_at = Column(DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow)


class SchoolClass(Base):
    __tablename__ = "classes"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    year = Column(Integer, default=lambda: dt.date.today().year)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=dt.datetime.utcnow)

    students = relationship("Student", back_populates="school_class")


class Student(Base):
    __tablename__ = "students"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    matricula = Column(String, unique=True)
    class_id = Column(String, ForeignKey("classes.id"), nullable=False, index=True)
    tutor_id = Column(String, ForeignKey("profiles.id"), index=True)
    guardian_phone = Column(String)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=dt.datetime.utcnow)
    updated_at = Column(DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow)

    school_class = relationship("SchoolClass", back_populates="students")
    tutor = relationship("Profile")


class Occurrence(Base):
    __tablename__ = "occurrences"

    id = Column(String, primary_key=True, default=_new_id)
    student_id = Column(String, ForeignKey("students.id"), nullable=False, index=True)
    author_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    tutor_id = Column(String, ForeignKey("profiles.id"), index=True)
    description_original = Column(Text, nullable=False, default="")
    description_formal = Column(Text, nullable=False)
    status = Column(
        _enum_column(OccurrenceStatus, "occurrence_status"),
        nullable=False,
        default=OccurrenceStatus.PENDING_TUTOR,
        index=True,
    )
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=dt.datetime.utcnow)
    updated_at = Column(DateTime, default=dt.datetime.utcnow)

    student = relationship("Student")
    author = relationship("Profile", foreign_keys=[author_id])
    tutor = relationship("Profile", foreign_keys=[tutor_id])
    actions = relationship(
        "Action",
        back_populates="occurrence",
        order_by="Action.created_at",
        cascade="all, delete-orphan",
    )

    # UPDATEs are conditional on the version that was read.
    __mapper_args__ = {"version_id_col": version}

    @validates("status")
    def _check_status(self, key, value):
        value = OccurrenceStatus(value)
        if not is_forward_move(self.status, value):
            current = self.status.value if self.status else "nothing"
            raise InvalidTransition(f"Status cannot move from {current} to {value.value}")
        return value


class Action(Base):
    __tablename__ = "actions"

    id = Column(String, primary_key=True, default=_new_id)
    occurrence_id = Column(String, ForeignKey("occurrences.id"), nullable=False, index=True)
    author_id = Column(String, ForeignKey("profiles.id"), nullable=False)
    action_type = Column(_enum_column(ActionType, "action_type"), nullable=False)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime, default=dt.datetime.utcnow)

    occurrence = relationship("Occurrence", back_populates="actions")
    author = relationship("Profile")


class NotificationEvent(Base):
    __tablename__ = "notification_events"

    id = Column(Integer, primary_key=True, index=True)
    occurrence_id = Column(String, index=True)
    event_type = Column(String, index=True)
    payload = Column(JSON)
    status = Column(String, default="PENDING", index=True)
    attempts = Column(Integer, default=0)
    last_error = Column(Text)
    created_at = Column(DateTime, default=dt.datetime.utcnow)
    updated_at = Column(DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow)
