from typing import Optional

from fastapi import Depends, FastAPI, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import admin, notifier, occurrences, rewriter
from .db import get_db, init_db
from .directory import Actor, get_actor, require_admin
from .errors import EscolaFlowError
from .logging_config import setup_logging
from .metrics import metrics
from .serializers import (
    action_to_dict,
    class_to_dict,
    occurrence_to_dict,
    profile_to_dict,
    student_to_dict,
)

app = FastAPI(title="EscolaFlow")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup():
    setup_logging()
    init_db()


@app.exception_handler(EscolaFlowError)
async def handle_domain_error(request, exc: EscolaFlowError):
    metrics.record_refusal(exc.code)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "error": exc.code})


def current_actor(
    x_profile_id: Optional[str] = Header(None),
    session=Depends(get_db),
) -> Actor:
    return get_actor(session, x_profile_id)


# ---- occurrences ----

@app.post("/occurrences", status_code=201)
def create_occurrence(payload: dict, actor: Actor = Depends(current_actor), session=Depends(get_db)):
    outcome = occurrences.create_occurrence(
        session,
        actor,
        student_id=payload.get("student_id"),
        description_original=payload.get("description_original"),
        description_formal=payload.get("description_formal"),
        tutor_id=payload.get("tutor_id"),
    )
    notifier.dispatch(session, outcome.event)
    return occurrence_to_dict(outcome.occurrence, session, actor)


@app.get("/occurrences")
def list_occurrences(
    status: Optional[str] = None,
    student_id: Optional[str] = None,
    actor: Actor = Depends(current_actor),
    session=Depends(get_db),
):
    rows = occurrences.list_occurrences(session, actor, status=status, student_id=student_id)
    return [occurrence_to_dict(o) for o in rows]


@app.get("/occurrences/{occurrence_id}")
def get_occurrence(occurrence_id: str, actor: Actor = Depends(current_actor), session=Depends(get_db)):
    occurrence = occurrences.get_occurrence(session, actor, occurrence_id)
    return occurrence_to_dict(occurrence, session, actor, with_actions=True)


@app.delete("/occurrences/{occurrence_id}")
def delete_occurrence(occurrence_id: str, actor: Actor = Depends(current_actor), session=Depends(get_db)):
    occurrences.delete_occurrence(session, actor, occurrence_id)
    return {"deleted": occurrence_id}


@app.post("/occurrences/{occurrence_id}/actions")
def submit_action(
    occurrence_id: str,
    payload: dict,
    actor: Actor = Depends(current_actor),
    session=Depends(get_db),
):
    outcome = occurrences.submit_action(
        session,
        actor,
        occurrence_id,
        action_type=payload.get("action_type"),
        description=payload.get("description"),
        direct=bool(payload.get("direct", False)),
    )
    notifier.dispatch(session, outcome.event)
    result = occurrence_to_dict(outcome.occurrence, session, actor)
    result["action"] = action_to_dict(outcome.action)
    return result


@app.get("/occurrences/{occurrence_id}/actions")
def occurrence_actions(occurrence_id: str, actor: Actor = Depends(current_actor), session=Depends(get_db)):
    timeline = occurrences.list_actions(session, actor, occurrence_id)
    return {"occurrence_id": occurrence_id, "timeline": [action_to_dict(a) for a in timeline]}


@app.get("/stats")
def stats(actor: Actor = Depends(current_actor), session=Depends(get_db)):
    if not actor.sees_everything:
        require_admin(actor)
    return occurrences.occurrence_stats(session)


# ---- text / audio processing ----

@app.post("/process-text")
def process_text(payload: dict, actor: Actor = Depends(current_actor)):
    return rewriter.rewrite_text(payload.get("text"))


@app.post("/process-audio")
def process_audio(payload: dict, actor: Actor = Depends(current_actor)):
    return rewriter.process_audio(payload.get("audio"), payload.get("mimeType") or "audio/mp4")


# ---- administration ----

@app.get("/admin/profiles")
def list_profiles(role: Optional[str] = None, actor: Actor = Depends(current_actor), session=Depends(get_db)):
    return [profile_to_dict(p) for p in admin.list_profiles(session, actor, role=role)]


@app.post("/admin/profiles", status_code=201)
def create_profile(payload: dict, actor: Actor = Depends(current_actor), session=Depends(get_db)):
    return profile_to_dict(admin.create_profile(session, actor, payload))


@app.patch("/admin/profiles/{profile_id}")
def update_profile(profile_id: str, payload: dict, actor: Actor = Depends(current_actor), session=Depends(get_db)):
    return profile_to_dict(admin.update_profile(session, actor, profile_id, payload))


@app.get("/classes")
def list_classes(actor: Actor = Depends(current_actor), session=Depends(get_db)):
    return [class_to_dict(c) for c in admin.list_classes(session)]


@app.post("/admin/classes", status_code=201)
def create_class(payload: dict, actor: Actor = Depends(current_actor), session=Depends(get_db)):
    return class_to_dict(admin.create_class(session, actor, payload))


@app.get("/students")
def list_students(
    class_id: Optional[str] = None,
    tutor_id: Optional[str] = None,
    actor: Actor = Depends(current_actor),
    session=Depends(get_db),
):
    return [student_to_dict(s) for s in admin.list_students(session, class_id=class_id, tutor_id=tutor_id)]


@app.post("/admin/students", status_code=201)
def create_student(payload: dict, actor: Actor = Depends(current_actor), session=Depends(get_db)):
    return student_to_dict(admin.create_student(session, actor, payload))


@app.patch("/admin/students/{student_id}")
def update_student(student_id: str, payload: dict, actor: Actor = Depends(current_actor), session=Depends(get_db)):
    return student_to_dict(admin.update_student(session, actor, student_id, payload))


@app.post("/admin/notifications/retry")
def retry_notifications(actor: Actor = Depends(current_actor), session=Depends(get_db)):
    require_admin(actor)
    return notifier.dispatch_pending(session)


@app.get("/metrics")
def get_metrics():
    return metrics.snapshot()
