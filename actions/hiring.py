from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select

from actions import orchestrator
from actions.helpers import actor_id, append_audit, next_prefixed_id, paginate
from auth import assert_same_org
from events import APPLICATION_OFFER, LifecycleEvent, emit
from models import Application, Candidate
from tokens import token_fingerprint
from utils import (
    ApiError,
    AuthContext,
    is_valid_email,
    normalize_email,
    pagination_block,
    parse_json_list,
    parse_json_object,
    parse_page_args,
    to_iso_utc,
    utc_now,
)


PIPELINE = ("applied", "screening", "interview", "offer", "hired")
STAGES = set(PIPELINE) | {"rejected"}
TERMINAL_STAGES = {"hired", "rejected"}
EMPLOYMENT_TYPES = {"full-time", "part-time", "contract", "internship"}

_log = logging.getLogger("lifecycle")


def _require_enabled(cfg) -> None:
    if not cfg.HIRING_MODULE_ENABLED:
        raise ApiError("NOT_IMPLEMENTED", "Hiring module is disabled")


def _next_stage(stage: str) -> str:
    try:
        i = PIPELINE.index(stage)
    except ValueError:
        return ""
    return PIPELINE[i + 1] if i + 1 < len(PIPELINE) else ""


def _timeline_entry(stage: str, *, now: str, actor: str, notes: str = "", automated: bool = False) -> dict[str, Any]:
    return {"stage": stage, "movedAt": now, "movedBy": actor, "notes": notes, "automated": automated}


def serialize_candidate(row: Candidate) -> dict[str, Any]:
    return {
        "id": row.candidateId,
        "organizationId": row.organizationId,
        "fullName": row.fullName or "",
        "email": row.email or "",
        "phone": row.phone or "",
        "source": row.source or "",
        "createdAt": row.createdAt or "",
    }


def serialize_application(row: Application) -> dict[str, Any]:
    return {
        "id": row.applicationId,
        "organizationId": row.organizationId,
        "candidateId": row.candidateId,
        "candidateEmail": row.candidateEmail or "",
        "positionTitle": row.positionTitle or "",
        "department": row.department or "",
        "employmentType": row.employmentType or "",
        "stage": row.stage,
        "timeline": parse_json_list(row.timelineJson),
        "offer": parse_json_object(row.offerJson),
        "onboardingId": row.onboardingId or "",
        "createdAt": row.createdAt or "",
        "updatedAt": row.updatedAt or "",
    }


def create_candidate(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    _require_enabled(cfg)
    data = data or {}
    full_name = str(data.get("fullName") or "").strip()
    email = normalize_email(data.get("email"))
    position = str(data.get("positionTitle") or "").strip()
    if not full_name or not email or not position:
        raise ApiError("VALIDATION_FAILED", "fullName, email and positionTitle are required")
    if not is_valid_email(email):
        raise ApiError("VALIDATION_FAILED", "Please provide a valid email address")
    employment_type = str(data.get("employmentType") or "full-time").strip().lower()
    if employment_type not in EMPLOYMENT_TYPES:
        raise ApiError("VALIDATION_FAILED", f"employmentType must be one of: {', '.join(sorted(EMPLOYMENT_TYPES))}")

    now = to_iso_utc(utc_now())
    actor = actor_id(auth)

    candidate = (
        db.execute(select(Candidate).where(Candidate.organizationId == org["id"]).where(Candidate.email == email))
        .scalars()
        .first()
    )
    if candidate is None:
        candidate = Candidate(
            candidateId=next_prefixed_id(db, counter_key=f"candidate:{org['id']}", prefix="CAN-", pad=6),
            organizationId=org["id"],
            email=email,
            createdAt=now,
            createdBy=actor,
        )
        db.add(candidate)
    candidate.fullName = full_name
    candidate.phone = str(data.get("phone") or candidate.phone or "").strip()
    candidate.source = str(data.get("source") or candidate.source or "").strip()
    candidate.updatedAt = now
    candidate.updatedBy = actor

    application = Application(
        applicationId=next_prefixed_id(db, counter_key=f"application:{org['id']}", prefix="APP-", pad=6),
        organizationId=org["id"],
        candidateId=candidate.candidateId,
        candidateEmail=email,
        positionTitle=position,
        department=str(data.get("department") or "").strip(),
        employmentType=employment_type,
        stage="applied",
        timelineJson=json.dumps([_timeline_entry("applied", now=now, actor=actor)]),
        offerJson="{}",
        onboardingId="",
        createdAt=now,
        createdBy=actor,
        updatedAt=now,
        updatedBy=actor,
    )
    db.add(application)

    append_audit(
        db,
        entityType="APPLICATION",
        entityId=application.applicationId,
        action="APPLICATION_CREATE",
        toState="applied",
        stageTag="APPLICATION_CREATE",
        actor=auth,
        at=now,
        organizationId=org["id"],
        meta={"candidateId": candidate.candidateId},
    )
    return {"candidate": serialize_candidate(candidate), "application": serialize_application(application)}


def list_applications(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    data = data or {}
    page, limit = parse_page_args(data)
    if not cfg.HIRING_MODULE_ENABLED:
        return {"applications": [], "pagination": pagination_block(page=page, limit=limit, total=0)}

    stage = str(data.get("stage") or "").strip().lower()
    if stage and stage not in STAGES:
        raise ApiError("VALIDATION_FAILED", f"Unknown stage: {stage}")

    q = select(Application).where(Application.organizationId == org["id"])
    if stage:
        q = q.where(Application.stage == stage)
    rows, total = paginate(db, q.order_by(Application.createdAt.desc()), q, page=page, limit=limit)
    return {
        "applications": [serialize_application(r) for r in rows],
        "pagination": pagination_block(page=page, limit=limit, total=total),
    }


def _get_scoped(db, auth: AuthContext, org: dict[str, Any], application_id: str) -> Application:
    row = db.execute(select(Application).where(Application.applicationId == str(application_id or ""))).scalar_one_or_none()
    if not row:
        raise ApiError("NOT_FOUND", "Application not found")
    assert_same_org(auth, org["id"], row.organizationId)
    return row


def get_application(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    _require_enabled(cfg)
    row = _get_scoped(db, auth, org, (data or {}).get("applicationId"))
    out = serialize_application(row)
    candidate = db.execute(select(Candidate).where(Candidate.candidateId == row.candidateId)).scalar_one_or_none()
    out["candidate"] = serialize_candidate(candidate) if candidate else None
    return out


def move_stage(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    """
    Moves an application one step forward, or to ``rejected`` from any open stage.

    Reaching ``offer`` provisions the onboarding in the same transaction; when that
    fails the move fails too.
    """
    _require_enabled(cfg)
    data = data or {}
    row = _get_scoped(db, auth, org, data.get("applicationId"))
    target = str(data.get("stage") or "").strip().lower()
    if target not in STAGES:
        raise ApiError("VALIDATION_FAILED", f"Unknown stage: {target}")
    if row.stage in TERMINAL_STAGES:
        raise ApiError("CONFLICT", f"Application is already {row.stage}")
    if target != "rejected" and target != _next_stage(row.stage):
        raise ApiError("CONFLICT", f"Cannot move application from {row.stage} to {target}")

    now_dt = utc_now()
    now = to_iso_utc(now_dt)
    actor = actor_id(auth)
    notes = str(data.get("notes") or "").strip()
    from_stage = row.stage

    raw = ""
    if target == "offer":
        candidate = db.execute(select(Candidate).where(Candidate.candidateId == row.candidateId)).scalar_one_or_none()
        offer = dict(data.get("offer") or {}) if isinstance(data.get("offer"), dict) else {}
        offer.setdefault("fullName", candidate.fullName if candidate else "")
        offer.setdefault("phone", candidate.phone if candidate else "")
        try:
            onboarding, raw = orchestrator.provision_onboarding_from_application(
                db, row, offer=offer, auth=auth, cfg=cfg, now_dt=now_dt
            )
        except ApiError:
            raise
        except Exception:
            _log.exception("onboarding provisioning failed application=%s", row.applicationId)
            raise ApiError("DEPENDENCY_FAILURE", "Failed to create onboarding for this offer. Please try again.")
        row.onboardingId = onboarding.onboardingId
        row.offerJson = json.dumps(
            {
                "designation": onboarding.designation,
                "department": onboarding.department,
                "salary": onboarding.salary,
                "joiningDate": onboarding.joiningDate,
                "sentAt": now,
            }
        )

    timeline = parse_json_list(row.timelineJson)
    timeline.append(_timeline_entry(target, now=now, actor=actor, notes=notes))
    row.stage = target
    row.timelineJson = json.dumps(timeline)
    row.updatedAt = now
    row.updatedBy = actor

    append_audit(
        db,
        entityType="APPLICATION",
        entityId=row.applicationId,
        action="APPLICATION_MOVE",
        fromState=from_stage,
        toState=target,
        stageTag="APPLICATION_MOVE",
        remark=notes,
        actor=auth,
        at=now,
        organizationId=row.organizationId,
    )

    if raw:
        emit(
            db,
            LifecycleEvent(
                name=APPLICATION_OFFER,
                organizationId=row.organizationId,
                entityType="APPLICATION",
                entityId=row.applicationId,
                payload={
                    "token": raw,
                    "onboardingId": row.onboardingId,
                    "email": onboarding.email,
                    "fullName": onboarding.fullName,
                    "designation": onboarding.designation,
                    "department": onboarding.department,
                    "salary": onboarding.salary,
                    "joiningDate": onboarding.joiningDate,
                    "expiresAt": onboarding.tokenExpiry,
                },
            ),
        )
        _log.info("offer issued application=%s token=%s", row.applicationId, token_fingerprint(raw))
    return serialize_application(row)
