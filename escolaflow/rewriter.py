import base64
import binascii
import logging
import re

import requests

from . import config
from .errors import CollaboratorUnavailable, ValidationError
from .metrics import metrics, timed

log = logging.getLogger(__name__)

FORMAL_REWRITE_PROMPT = """
Você é um assistente especializado em redação escolar e gestão de conflitos educacionais.
Reescreva o texto abaixo em um formato estritamente formal, claro e objetivo, adequado
para o registro em um sistema de controle de ocorrências escolares.

Instruções:
- Elimine gírias, hesitações e coloquialismos.
- Mantenha todo o contexto, todos os fatos detalhados e os nomes citados.
- Escreva em terceira pessoa ou primeira pessoa formal de forma coerente com o relato original.
- NÃO invente fatos, opiniões, nem resoluções.
- Seja impessoal e direto.
- Retorne APENAS a versão final do texto formatada para sistema profissional, sem apresentações, aspas nem cumprimentos.

Texto original para revisão:
"{text}"
"""

TRANSCRIPTION_PROMPT = (
    "Transcreva fielmente o áudio a seguir, em português, sem resumir nem corrigir. "
    "Retorne apenas o texto transcrito."
)

_FILLERS = re.compile(r"\b(tipo|né|aí|hum+|ahn*|éh+)\b[,]?\s*", re.IGNORECASE)


def _endpoint(model):
    return config.GEMINI_URL.format(model=model)


def _generation_config():
    return {"temperature": 0.3, "maxOutputTokens": 2048}


def _extract_text(data):
    """Pull the first candidate's text; raise ValueError on an unexpected shape."""
    if not isinstance(data, dict):
        raise ValueError(f"Unexpected Gemini reply: {type(data).__name__}")
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    try:
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = (parts[0].get("text") or "") if parts else ""
    except (AttributeError, TypeError) as e:
        raise ValueError(f"Unexpected Gemini reply: {e}")
    if not isinstance(text, str):
        raise ValueError("Unexpected Gemini reply: text is not a string")
    return text.strip()


def _generate(model, parts):
    if not config.GEMINI_API_KEY:
        raise CollaboratorUnavailable("Gemini API key not configured")
    payload = {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": _generation_config(),
    }
    resp = requests.post(
        _endpoint(model),
        params={"key": config.GEMINI_API_KEY},
        json=payload,
        timeout=config.LLM_TIMEOUT,
    )
    resp.raise_for_status()
    return _extract_text(resp.json())


def _mock_formal(text):
    """Deterministic stand-in for offline development."""
    cleaned = _FILLERS.sub("", text).strip()
    cleaned = re.sub(r"\s+", " ", cleaned)
    if cleaned and cleaned[-1] not in ".!?":
        cleaned += "."
    return cleaned[:1].upper() + cleaned[1:]


@timed
def rewrite_text(text):
    """Return ``{"original", "formal", "rewrite_error"}`` for a raw report.

    Rewrite failures degrade to echoing the original text.
    """
    original = (text or "").strip()
    if not original:
        raise ValidationError("No text data provided")

    if config.USE_MOCK_LLM:
        return {"original": original, "formal": _mock_formal(original), "rewrite_error": None}

    try:
        formal = _generate(config.GEMINI_MODEL, [{"text": FORMAL_REWRITE_PROMPT.format(text=original)}])
    except (requests.RequestException, ValueError) as e:
        log.warning("Formal rewrite failed, returning original text: %s", e)
        metrics.record_rewrite_fallback()
        return {
            "original": original,
            "formal": original,
            "rewrite_error": f"Formalization failed, returning original text instead: {e}",
        }

    if not formal:
        log.warning("Formal rewrite returned no content, using original")
        metrics.record_rewrite_fallback()
        return {"original": original, "formal": original, "rewrite_error": "Empty rewrite response"}

    log.info("Rewritten formal text (%d chars)", len(formal))
    return {"original": original, "formal": formal, "rewrite_error": None}


def transcribe_audio(audio_b64, mime_type="audio/mp4"):
    if not audio_b64:
        raise ValidationError("No audio data provided")
    try:
        base64.b64decode(audio_b64, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Audio must be base64 encoded")

    if config.USE_MOCK_LLM:
        return "Transcrição simulada do áudio enviado."

    parts = [
        {"text": TRANSCRIPTION_PROMPT},
        {"inline_data": {"mime_type": mime_type or "audio/mp4", "data": audio_b64}},
    ]
    try:
        transcript = _generate(config.GEMINI_AUDIO_MODEL, parts)
    except (requests.RequestException, ValueError) as e:
        log.error("Audio transcription failed: %s", e)
        raise CollaboratorUnavailable(f"Audio transcription failed: {e}")
    if not transcript:
        raise CollaboratorUnavailable("Audio transcription returned no text")
    return transcript


def process_audio(audio_b64, mime_type="audio/mp4"):
    transcript = transcribe_audio(audio_b64, mime_type)
    return rewrite_text(transcript)
