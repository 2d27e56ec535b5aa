"""
Tests for WhatsApp notification routing and delivery
"""
import pytest
import requests

from escolaflow import config, notifier
from escolaflow.lifecycle import ActionType, UserRole
from escolaflow.metrics import metrics
from escolaflow.models import NotificationEvent, Profile
from escolaflow.occurrences import submit_action


class FakeResponse:
    def __init__(self, status_code=200, text="{}"):
        self.status_code = status_code
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400


@pytest.fixture
def evolution(monkeypatch):
    monkeypatch.setattr(config, "EVOLUTION_API_URL", "http://evolution.local/")
    monkeypatch.setattr(config, "EVOLUTION_API_KEY", "secret")
    monkeypatch.setattr(config, "EVOLUTION_INSTANCE_NAME", "escola")
    sent = []

    def fake_post(url, json=None, headers=None, timeout=None):
        sent.append({"url": url, "json": json, "headers": headers})
        return FakeResponse()

    monkeypatch.setattr(requests, "post", fake_post)
    return sent


def _recipients(messages):
    return [recipient for recipient, _, _ in messages]


def test_format_phone():
    assert notifier.format_phone("(11) 97777-0003") == "5511977770003"
    assert notifier.format_phone("55 11 97777-0003") == "5511977770003"
    assert notifier.format_phone("") == ""
    assert notifier.format_phone(None) == ""


def test_created_event_notifies_tutor_only(db, school, occurrence):
    event = db.query(NotificationEvent).filter_by(event_type="occurrence_created").one()
    messages = notifier.build_messages(db, event.payload)

    assert _recipients(messages) == ["tutor"]
    _, phone, text = messages[0]
    assert phone == "(11) 97777-0003"
    assert "João Silva" in text
    assert "Paula Professora" in text


def test_escalation_notifies_author_and_vice_directors(db, school, occurrence):
    inactive_vp = Profile(
        full_name="Vitor Inativo", role=UserRole.VICE_DIRECTOR, whatsapp_number="11900000000", active=False
    )
    db.add(inactive_vp)
    db.commit()

    outcome = submit_action(db, school.tutor, occurrence.id, ActionType.ESCALATION, "Encaminho.")
    messages = notifier.build_messages(db, outcome.event.payload)

    assert _recipients(messages) == ["author_escalated", f"vp_{school.vp.profile_id}"]


def test_tutor_conclusion_notifies_author_and_guardian(db, school, occurrence):
    outcome = submit_action(db, school.tutor, occurrence.id, ActionType.RESOLUTION, "Conversa com o aluno.")
    messages = notifier.build_messages(db, outcome.event.payload)

    assert _recipients(messages) == ["author_concluded_tutor", "guardian_concluded"]
    assert "Conversa com o aluno." in messages[0][2]
    assert config.SCHOOL_NAME in messages[1][2]


def test_vp_conclusion_notifies_author_tutor_and_guardian(db, school, occurrence):
    submit_action(db, school.tutor, occurrence.id, ActionType.ESCALATION, "Encaminho.")
    outcome = submit_action(db, school.vp, occurrence.id, ActionType.VP_RESOLUTION, "Pais convocados.")
    messages = notifier.build_messages(db, outcome.event.payload)

    assert _recipients(messages) == ["author_concluded_vp", "tutor_concluded_vp", "guardian_concluded"]
    assert "Vice-Direção" in messages[0][2]


def test_dispatch_sends_and_marks_event(db, school, occurrence, evolution):
    event = db.query(NotificationEvent).filter_by(event_type="occurrence_created").one()

    results = notifier.dispatch(db, event)

    assert results == [{"recipient": "tutor", "success": True}]
    assert evolution[0]["url"] == "http://evolution.local/message/sendText/escola"
    assert evolution[0]["json"]["number"] == "5511977770003"
    assert evolution[0]["headers"] == {"apikey": "secret"}
    assert event.status == "SENT"
    assert event.attempts == 1
    assert metrics.counters["notifications_sent"] == 1


def test_dispatch_failure_is_recorded_not_raised(db, school, occurrence, monkeypatch):
    monkeypatch.setattr(config, "EVOLUTION_API_URL", "http://evolution.local")
    monkeypatch.setattr(config, "EVOLUTION_API_KEY", "secret")

    def broken_post(*args, **kwargs):
        raise requests.ConnectionError("gateway down")

    monkeypatch.setattr(requests, "post", broken_post)
    event = db.query(NotificationEvent).filter_by(event_type="occurrence_created").one()

    results = notifier.dispatch(db, event)

    assert results[0]["success"] is False
    assert event.status == "FAILED"
    assert "gateway down" in event.last_error
    assert metrics.counters["notifications_failed"] == 1


def test_dispatch_without_credentials_fails_softly(db, school, occurrence):
    event = db.query(NotificationEvent).filter_by(event_type="occurrence_created").one()
    results = notifier.dispatch(db, event)
    assert results[0]["error"] == "Evolution API credentials not configured"
    assert event.status == "FAILED"


def test_dispatch_disabled_leaves_event_pending(db, school, occurrence, monkeypatch):
    monkeypatch.setattr(config, "NOTIFICATIONS_ENABLED", False)
    event = db.query(NotificationEvent).filter_by(event_type="occurrence_created").one()
    assert notifier.dispatch(db, event) == []
    assert event.status == "PENDING"


def test_dispatch_pending_retries_failed_events(db, school, occurrence, evolution):
    event = db.query(NotificationEvent).filter_by(event_type="occurrence_created").one()
    event.status = "FAILED"
    event.attempts = 1
    db.commit()

    summary = notifier.dispatch_pending(db)

    assert summary == {"processed": 1, "sent": 1, "failed": 0}
    assert event.status == "SENT"
    assert event.attempts == 2
