"""
Pytest configuration and fixtures
"""
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from escolaflow import config
from escolaflow.db import Base, get_db
from escolaflow.directory import Actor
from escolaflow.lifecycle import UserRole
from escolaflow.metrics import metrics
from escolaflow.models import Profile, SchoolClass, Student
from escolaflow.occurrences import create_occurrence


def actor_for(profile) -> Actor:
    return Actor(profile_id=profile.id, role=UserRole(profile.role), full_name=profile.full_name)


@pytest.fixture(autouse=True)
def offline(monkeypatch):
    """Keep collaborators off the network unless a test opts in."""
    monkeypatch.setattr(config, "USE_MOCK_LLM", True)
    monkeypatch.setattr(config, "GEMINI_API_KEY", "")
    monkeypatch.setattr(config, "EVOLUTION_API_URL", "")
    monkeypatch.setattr(config, "EVOLUTION_API_KEY", "")
    monkeypatch.setattr(config, "NOTIFICATIONS_ENABLED", True)
    metrics.reset()


@pytest.fixture
def engine():
    import escolaflow.models  # noqa: F401
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    """Database session on a fresh in-memory schema"""
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def school(db):
    admin = Profile(full_name="Ana Admin", role=UserRole.ADMIN)
    vp = Profile(full_name="Vera Vice", role=UserRole.VICE_DIRECTOR, whatsapp_number="11 98888-0002")
    tutor = Profile(full_name="Tiago Tutor", role=UserRole.PROFESSOR, whatsapp_number="(11) 97777-0003")
    professor = Profile(full_name="Paula Professora", role=UserRole.PROFESSOR, whatsapp_number="11966660004")
    db.add_all([admin, vp, tutor, professor])
    db.flush()

    school_class = SchoolClass(name="7º A", year=2026)
    db.add(school_class)
    db.flush()

    student = Student(
        name="João Silva",
        matricula="2026001",
        class_id=school_class.id,
        tutor_id=tutor.id,
        guardian_phone="11955550005",
    )
    db.add(student)
    db.commit()

    return SimpleNamespace(
        admin=actor_for(admin),
        vp=actor_for(vp),
        tutor=actor_for(tutor),
        professor=actor_for(professor),
        school_class=school_class,
        student=student,
    )


@pytest.fixture
def occurrence(db, school):
    """A PENDING_TUTOR occurrence filed by a non-tutor professor"""
    outcome = create_occurrence(
        db,
        school.professor,
        student_id=school.student.id,
        description_original="o aluno jogou a mochila no colega",
        description_formal="O aluno arremessou a mochila em direção a um colega durante a aula.",
    )
    return outcome.occurrence


@pytest.fixture
def client(db):
    from escolaflow.main import app

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.pop(get_db, None)


def headers_for(actor: Actor):
    return {"X-Profile-Id": actor.profile_id}
