"""
Tests for the formal rewrite / transcription client
"""
import base64

import pytest
import requests

from escolaflow import config, rewriter
from escolaflow.errors import CollaboratorUnavailable, ValidationError
from escolaflow.metrics import metrics


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


def _gemini_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


@pytest.fixture
def live(monkeypatch):
    monkeypatch.setattr(config, "USE_MOCK_LLM", False)
    monkeypatch.setattr(config, "GEMINI_API_KEY", "test-key")
    calls = []
    return calls


def test_mock_rewrite_is_deterministic():
    result = rewriter.rewrite_text("  tipo, ele empurrou o colega no corredor  ")
    assert result == {
        "original": "tipo, ele empurrou o colega no corredor",
        "formal": "Ele empurrou o colega no corredor.",
        "rewrite_error": None,
    }


def test_empty_text_is_rejected():
    with pytest.raises(ValidationError):
        rewriter.rewrite_text("   ")


def test_rewrite_calls_gemini(live, monkeypatch):
    def fake_post(url, params=None, json=None, timeout=None):
        live.append({"url": url, "params": params, "json": json})
        return FakeResponse(_gemini_reply("  O aluno agrediu verbalmente um colega.  "))

    monkeypatch.setattr(requests, "post", fake_post)

    result = rewriter.rewrite_text("ele xingou o colega")

    assert result["formal"] == "O aluno agrediu verbalmente um colega."
    assert result["rewrite_error"] is None
    assert live[0]["url"].endswith(f"/{config.GEMINI_MODEL}:generateContent")
    assert live[0]["params"] == {"key": "test-key"}
    assert "ele xingou o colega" in live[0]["json"]["contents"][0]["parts"][0]["text"]
    assert len(metrics.durations["rewrite_latency_ms"]) == 1


def test_rewrite_failure_echoes_original(live, monkeypatch):
    def fake_post(*args, **kwargs):
        return FakeResponse({"error": "quota"}, status_code=429)

    monkeypatch.setattr(requests, "post", fake_post)

    result = rewriter.rewrite_text("ele xingou o colega")

    assert result["formal"] == "ele xingou o colega"
    assert "Formalization failed" in result["rewrite_error"]
    assert metrics.counters["rewrite_fallbacks"] == 1


def test_rewrite_without_candidates_echoes_original(live, monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **k: FakeResponse({"candidates": []}))
    result = rewriter.rewrite_text("ele xingou o colega")
    assert result["formal"] == "ele xingou o colega"
    assert result["rewrite_error"] == "Empty rewrite response"


def test_missing_api_key_is_a_collaborator_outage(monkeypatch):
    monkeypatch.setattr(config, "USE_MOCK_LLM", False)
    with pytest.raises(CollaboratorUnavailable):
        rewriter.rewrite_text("ele xingou o colega")


def test_process_audio_transcribes_then_rewrites(live, monkeypatch):
    replies = [_gemini_reply("tipo, ele chutou a porta"), _gemini_reply("O aluno chutou a porta da sala.")]

    def fake_post(url, params=None, json=None, timeout=None):
        live.append(json)
        return FakeResponse(replies.pop(0))

    monkeypatch.setattr(requests, "post", fake_post)
    audio = base64.b64encode(b"fake-audio").decode()

    result = rewriter.process_audio(audio, "audio/webm")

    assert result == {
        "original": "tipo, ele chutou a porta",
        "formal": "O aluno chutou a porta da sala.",
        "rewrite_error": None,
    }
    inline = live[0]["contents"][0]["parts"][1]["inline_data"]
    assert inline == {"mime_type": "audio/webm", "data": audio}


def test_failed_transcription_raises(live, monkeypatch):
    def fake_post(*args, **kwargs):
        raise requests.Timeout("slow")

    monkeypatch.setattr(requests, "post", fake_post)
    audio = base64.b64encode(b"fake-audio").decode()

    with pytest.raises(CollaboratorUnavailable):
        rewriter.process_audio(audio)


def test_audio_must_be_base64():
    with pytest.raises(ValidationError):
        rewriter.process_audio("not base64!!")
    with pytest.raises(ValidationError):
        rewriter.process_audio("")


@pytest.mark.parametrize("reply", [
    [],
    {"candidates": ["not a dict"]},
    {"candidates": [{"content": "text"}]},
    {"candidates": [{"content": {"parts": [{"text": 42}]}}]},
])
def test_malformed_reply_echoes_original(live, monkeypatch, reply):
    monkeypatch.setattr(requests, "post", lambda *a, **k: FakeResponse(reply))
    result = rewriter.rewrite_text("ele xingou o colega")
    assert result["formal"] == "ele xingou o colega"
    assert "Unexpected Gemini reply" in result["rewrite_error"]
