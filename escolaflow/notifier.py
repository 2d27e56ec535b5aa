"""WhatsApp notifications for occurrence events via the Evolution API."""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Tuple

import requests

from . import config
from .lifecycle import OccurrenceStatus, UserRole
from .metrics import metrics
from .models import NotificationEvent, Profile, Student

log = logging.getLogger(__name__)

Message = Tuple[str, str, str]  # (recipient label, phone, text)


def format_phone(phone: str) -> str:
    cleaned = re.sub(r"\D", "", phone or "")
    if not cleaned:
        return ""
    if cleaned.startswith(config.WHATSAPP_COUNTRY_CODE):
        return cleaned
    return f"{config.WHATSAPP_COUNTRY_CODE}{cleaned}"


def send_text(phone: str, text: str) -> Dict[str, object]:
    if not config.EVOLUTION_API_URL or not config.EVOLUTION_API_KEY:
        return {"success": False, "error": "Evolution API credentials not configured"}

    number = format_phone(phone)
    if not number:
        return {"success": False, "error": "No phone provided"}

    url = f"{config.EVOLUTION_API_URL.rstrip('/')}/message/sendText/{config.EVOLUTION_INSTANCE_NAME}"
    try:
        resp = requests.post(
            url,
            json={"number": number, "textMessage": {"text": text}},
            headers={"apikey": config.EVOLUTION_API_KEY},
            timeout=config.NOTIFY_TIMEOUT,
        )
    except requests.RequestException as e:
        log.warning("WhatsApp send to %s failed: %s", number, e)
        return {"success": False, "error": str(e)}

    if not resp.ok:
        log.warning("Evolution API answered %s for %s", resp.status_code, number)
        return {"success": False, "error": f"HTTP {resp.status_code}: {resp.text[:200]}"}
    return {"success": True}


def _created_messages(student_name, author, tutor) -> List[Message]:
    if not (tutor and tutor.whatsapp_number):
        return []
    text = (
        "🔔 *Nova Ocorrência Escolar*\n\n"
        f"Olá, {tutor.full_name}!\n\n"
        f"O(a) Prof(a). {author.full_name if author else 'Professor'} registrou uma nova ocorrência "
        f"para o seu aluno tutorado *{student_name}*.\n\n"
        "Acesse o app EscolaFlow para visualizar os detalhes e tomar as providências necessárias."
    )
    return [("tutor", tutor.whatsapp_number, text)]


def _escalated_messages(session, student_name, author) -> List[Message]:
    messages = []
    if author and author.whatsapp_number:
        messages.append((
            "author_escalated",
            author.whatsapp_number,
            "🔄 *Ocorrência Escalonada*\n\n"
            f"Sua ocorrência referente ao aluno *{student_name}* foi escalonada para a Vice-Direção.\n\n"
            "Você será notificado assim que houver uma resolução.",
        ))

    vps = (
        session.query(Profile)
        .filter(Profile.role == UserRole.VICE_DIRECTOR, Profile.active.is_(True))
        .filter(Profile.whatsapp_number.isnot(None))
        .all()
    )
    for vp in vps:
        messages.append((
            f"vp_{vp.id}",
            vp.whatsapp_number,
            "🏢 *Ocorrência Encaminhada*\n\n"
            f"Olá, {vp.full_name}!\n\n"
            f"Uma ocorrência do(a) aluno(a) *{student_name}* "
            f"(registrada por {author.full_name if author else 'Professor'}) foi encaminhada para sua análise.\n"
            "Acesse o app EscolaFlow.",
        ))
    return messages


def _concluded_messages(payload, student, student_name, author, tutor) -> List[Message]:
    messages = []
    resolution = payload.get("resolution_text") or "Resolução não fornecida."

    if payload.get("old_status") == OccurrenceStatus.ESCALATED_VP.value:
        text = (
            "✅ *Ocorrência Concluída (Vice-Direção)*\n\n"
            f"A ocorrência do aluno *{student_name}* foi resolvida pela Vice-Direção.\n\n"
            f"*Resumo da Resolução:*\n{resolution}"
        )
        if author and author.whatsapp_number:
            messages.append(("author_concluded_vp", author.whatsapp_number, text))
        if tutor and tutor.whatsapp_number:
            messages.append(("tutor_concluded_vp", tutor.whatsapp_number, text))
    else:
        text = (
            "✅ *Ocorrência Concluída (Tutor)*\n\n"
            f"A ocorrência do aluno *{student_name}* que você registrou foi resolvida pelo tutor responsável.\n\n"
            f"*Resumo da Resolução:*\n{resolution}"
        )
        if author and author.whatsapp_number:
            messages.append(("author_concluded_tutor", author.whatsapp_number, text))

    if student is not None and student.guardian_phone:
        messages.append((
            "guardian_concluded",
            student.guardian_phone,
            f"🏫 *{config.SCHOOL_NAME}*\n\n"
            "Prezado(a) responsável,\n"
            f"Informamos que uma ocorrência escolar registrada envolvendo o aluno *{student_name}* "
            "foi acompanhada e concluída com sucesso.\n\n"
            "Para maiores esclarecimentos, fique à vontade para entrar em contato com a equipe pedagógica.\n"
            "Obrigado pela parceria.",
        ))
    return messages


def build_messages(session, payload: Dict[str, object]) -> List[Message]:
    """Work out who is told what for one event payload."""
    author = session.get(Profile, payload["author_id"]) if payload.get("author_id") else None
    tutor = session.get(Profile, payload["tutor_id"]) if payload.get("tutor_id") else None
    student = session.get(Student, payload["student_id"]) if payload.get("student_id") else None
    student_name = student.name if student else "Aluno"

    event = payload.get("event")
    if event == "occurrence_created":
        return _created_messages(student_name, author, tutor)
    if event == "status_changed":
        new_status = payload.get("new_status")
        if new_status == OccurrenceStatus.ESCALATED_VP.value:
            return _escalated_messages(session, student_name, author)
        if new_status == OccurrenceStatus.CONCLUDED.value:
            return _concluded_messages(payload, student, student_name, author, tutor)
    return []


def dispatch(session, event: NotificationEvent) -> List[Dict[str, object]]:
    """Deliver one outbox event. Failures are recorded on the row, never raised."""
    if not config.NOTIFICATIONS_ENABLED:
        return []

    event_id = event.id
    results = []
    try:
        for recipient, phone, text in build_messages(session, event.payload or {}):
            result = send_text(phone, text)
            metrics.record_notification(bool(result.get("success")))
            results.append({"recipient": recipient, **result})

        failures = [r for r in results if not r.get("success")]
        event.attempts = (event.attempts or 0) + 1
        event.status = "FAILED" if failures else "SENT"
        event.last_error = "; ".join(f"{r['recipient']}: {r.get('error')}" for r in failures) or None
        session.commit()
    except Exception:
        session.rollback()
        log.exception("Notification dispatch crashed for event %s", event_id)
        return results

    log.info("Event %s (%s) dispatched: %d message(s), status %s",
             event.id, event.event_type, len(results), event.status)
    return results


def dispatch_pending(session, limit: int = 50) -> Dict[str, int]:
    events = (
        session.query(NotificationEvent)
        .filter(NotificationEvent.status.in_(["PENDING", "FAILED"]))
        .order_by(NotificationEvent.created_at.asc())
        .limit(limit)
        .all()
    )
    summary = {"processed": 0, "sent": 0, "failed": 0}
    for event in events:
        dispatch(session, event)
        summary["processed"] += 1
        if event.status == "SENT":
            summary["sent"] += 1
        else:
            summary["failed"] += 1
    return summary
