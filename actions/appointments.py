from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select

from actions.helpers import actor_id, append_audit, compare_and_set_status, paginate
from auth import assert_same_org
from events import APPOINTMENT_ACCEPTED, APPOINTMENT_SENT, LifecycleEvent, emit
from models import AppointmentLetter
from tokens import assign_token, is_expired, resolve_token, token_fingerprint
from utils import (
    ApiError,
    AuthContext,
    is_valid_email,
    new_prefixed_id,
    normalize_email,
    pagination_block,
    parse_json_object,
    parse_page_args,
    to_iso_utc,
    utc_now,
)


STATUSES = {"sent", "viewed", "accepted", "rejected"}
OPEN_STATUSES = {"sent", "viewed"}
RESPONSES = {"accept": "accepted", "reject": "rejected"}

_CONTENT_KEYS = (
    "subject",
    "greeting",
    "body",
    "closing",
    "signature",
    "position",
    "department",
    "joiningDate",
    "salary",
    "benefits",
)
DEFAULT_CONTENT = {
    "subject": "New Appointment Letter",
    "greeting": "Dear",
    "body": "Please find your appointment letter details attached. Please review and let us know if you have any questions.",
    "closing": "Best regards,",
    "signature": "The HR Team",
}

_log = logging.getLogger("lifecycle")


def serialize_letter(row: AppointmentLetter) -> dict[str, Any]:
    return {
        "id": row.letterId,
        "organizationId": row.organizationId,
        "employeeEmail": row.employeeEmail or "",
        "employeeName": row.employeeName or "",
        "letterContent": parse_json_object(row.letterContentJson),
        "status": row.status,
        "expiresAt": row.tokenExpiry or "",
        "sentAt": row.sentAt or "",
        "viewedAt": row.viewedAt or "",
        "respondedAt": row.respondedAt or "",
        "response": row.response or "",
        "createdBy": row.createdBy or "",
        "createdAt": row.createdAt or "",
    }


def _letter_content(raw: Any) -> dict[str, Any]:
    if raw is not None and not isinstance(raw, dict):
        raise ApiError("VALIDATION_FAILED", "letterContent must be an object")
    d = raw or {}
    content = dict(DEFAULT_CONTENT)
    content.update({k: d.get(k) for k in _CONTENT_KEYS if d.get(k) not in (None, "")})
    if "benefits" in content and not isinstance(content["benefits"], list):
        content["benefits"] = [str(content["benefits"])]
    return content


def send_letter(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    data = data or {}
    email = normalize_email(data.get("employeeEmail"))
    name = str(data.get("employeeName") or "").strip()
    if not email or not is_valid_email(email):
        raise ApiError("VALIDATION_FAILED", "A valid employeeEmail is required")
    if not name:
        raise ApiError("VALIDATION_FAILED", "employeeName is required")
    content = _letter_content(data.get("letterContent"))

    now_dt = utc_now()
    now = to_iso_utc(now_dt)
    row = AppointmentLetter(
        letterId=new_prefixed_id("APL"),
        organizationId=org["id"],
        employeeEmail=email,
        employeeName=name,
        letterContentJson=json.dumps(content),
        status="sent",
        sentAt=now,
        createdAt=now,
        createdBy=actor_id(auth),
        updatedAt=now,
        updatedBy=actor_id(auth),
    )
    raw = assign_token(row, cfg.TOKEN_PEPPER, ttl_days=cfg.LIFECYCLE_TOKEN_TTL_DAYS, now=now_dt)
    db.add(row)

    append_audit(
        db,
        entityType="APPOINTMENT_LETTER",
        entityId=row.letterId,
        action="APPOINTMENT_SEND",
        toState="sent",
        stageTag="APPOINTMENT_SEND",
        actor=auth,
        at=now,
        organizationId=row.organizationId,
    )
    emit(
        db,
        LifecycleEvent(
            name=APPOINTMENT_SENT,
            organizationId=row.organizationId,
            entityType="APPOINTMENT_LETTER",
            entityId=row.letterId,
            payload={"token": raw, "email": email, "fullName": name, "letterContent": content},
        ),
    )
    _log.info("appointment letter sent id=%s token=%s", row.letterId, token_fingerprint(raw))
    return serialize_letter(row)


def _resolve_open(db, cfg, token) -> AppointmentLetter:
    row = resolve_token(db, AppointmentLetter, token, cfg.TOKEN_PEPPER)
    if not row:
        raise ApiError("NOT_FOUND", "Appointment letter not found")
    # No expired status for letters: refuse without changing state.
    if is_expired(row.tokenExpiry):
        raise ApiError("EXPIRED", "This appointment letter link has expired")
    return row


def mark_as_viewed(data, auth, db, cfg):
    row = _resolve_open(db, cfg, (data or {}).get("token"))
    if row.status != "sent":
        return serialize_letter(row)

    now = to_iso_utc(utc_now())
    if compare_and_set_status(db, row, expected={"sent"}, values={"status": "viewed", "viewedAt": now, "updatedAt": now}):
        append_audit(
            db,
            entityType="APPOINTMENT_LETTER",
            entityId=row.letterId,
            action="APPOINTMENT_VIEW",
            fromState="sent",
            toState="viewed",
            stageTag="APPOINTMENT_VIEW",
            at=now,
            organizationId=row.organizationId,
        )
    else:
        db.refresh(row)
    return serialize_letter(row)


def respond(data, auth, db, cfg):
    data = data or {}
    action = str(data.get("action") or "").strip().lower()
    if action not in RESPONSES:
        raise ApiError("BAD_REQUEST", "Invalid action. Must be 'accept' or 'reject'")

    row = _resolve_open(db, cfg, data.get("token"))
    if row.status not in OPEN_STATUSES:
        raise ApiError("CONFLICT", f"Appointment letter was already {row.status}")

    new_status = RESPONSES[action]
    now = to_iso_utc(utc_now())
    from_state = row.status
    values: dict[str, Any] = {"status": new_status, "respondedAt": now, "updatedAt": now}
    if new_status == "rejected":
        values["response"] = str(data.get("reason") or "").strip()
    if not compare_and_set_status(db, row, expected=OPEN_STATUSES, values=values):
        raise ApiError("CONFLICT", "Appointment letter was already answered")

    append_audit(
        db,
        entityType="APPOINTMENT_LETTER",
        entityId=row.letterId,
        action="APPOINTMENT_RESPOND",
        fromState=from_state,
        toState=new_status,
        stageTag="APPOINTMENT_RESPOND",
        remark=row.response or "",
        at=now,
        organizationId=row.organizationId,
    )
    if new_status == "accepted":
        emit(
            db,
            LifecycleEvent(
                name=APPOINTMENT_ACCEPTED,
                organizationId=row.organizationId,
                entityType="APPOINTMENT_LETTER",
                entityId=row.letterId,
                payload={"email": row.employeeEmail, "fullName": row.employeeName},
            ),
        )
    return serialize_letter(row)


def _get_scoped(db, auth: AuthContext, org: dict[str, Any], letter_id: str) -> AppointmentLetter:
    row = db.execute(select(AppointmentLetter).where(AppointmentLetter.letterId == str(letter_id or ""))).scalar_one_or_none()
    if not row:
        raise ApiError("NOT_FOUND", "Appointment letter not found")
    assert_same_org(auth, org["id"], row.organizationId)
    return row


def get_letter(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    return serialize_letter(_get_scoped(db, auth, org, (data or {}).get("letterId")))


def list_letters(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    data = data or {}
    page, limit = parse_page_args(data)
    status = str(data.get("status") or "").strip().lower()
    if status and status not in STATUSES:
        raise ApiError("VALIDATION_FAILED", f"Unknown status: {status}")

    q = select(AppointmentLetter).where(AppointmentLetter.organizationId == org["id"])
    if status:
        q = q.where(AppointmentLetter.status == status)
    rows, total = paginate(db, q.order_by(AppointmentLetter.createdAt.desc()), q, page=page, limit=limit)
    return {
        "appointmentLetters": [serialize_letter(r) for r in rows],
        "pagination": pagination_block(page=page, limit=limit, total=total),
    }
