from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import func, select

from actions import orchestrator
from actions.accounts import activate_account, deactivate_account, get_user, provision_placeholder
from actions.helpers import actor_id, append_audit, compare_and_set_status, paginate
from actions.organizations import get_branding, public_branding
from auth import assert_same_org
from events import ONBOARDING_CREATED, ONBOARDING_RESENT, LifecycleEvent, emit
from models import Onboarding
from passwords import validate_password_policy
from tokens import assign_token, is_expired, resolve_token, token_fingerprint
from utils import (
    ApiError,
    AuthContext,
    is_valid_email,
    new_prefixed_id,
    normalize_email,
    pagination_block,
    parse_datetime_maybe,
    parse_page_args,
    to_iso_utc,
    utc_now,
)


STATUSES = {"pending", "accepted", "rejected", "expired", "revoked", "completed"}
ACTIVE_STATUSES = {"pending", "accepted"}

_log = logging.getLogger("lifecycle")


def _conflict(message: str) -> ApiError:
    # Onboarding endpoints report illegal transitions as 400.
    return ApiError("CONFLICT", message, http_status=400)


def _offer_details(row: Onboarding) -> dict[str, Any]:
    return {
        "fullName": row.fullName or "",
        "email": row.email or "",
        "designation": row.designation or "",
        "department": row.department or "",
        "salary": row.salary,
        "joiningDate": row.joiningDate or "",
        "phone": row.phone or "",
    }


def serialize_onboarding(row: Onboarding) -> dict[str, Any]:
    return {
        "id": row.onboardingId,
        "organizationId": row.organizationId,
        "employeeId": row.employeeId or "",
        "status": row.status,
        "offerDetails": _offer_details(row),
        "expiresAt": row.tokenExpiry or "",
        "offerSentAt": row.offerSentAt or "",
        "respondedAt": row.respondedAt or "",
        "rejectionReason": row.rejectionReason or "",
        "completedAt": row.completedAt or "",
        "revokedAt": row.revokedAt or "",
        "revokedBy": row.revokedBy or "",
        "revocationReason": row.revocationReason or "",
        "createdBy": row.createdBy or "",
        "createdAt": row.createdAt or "",
        "updatedAt": row.updatedAt or "",
    }


def validate_offer_profile(data: dict[str, Any], *, now_dt=None) -> dict[str, Any]:
    data = data or {}
    full_name = str(data.get("fullName") or "").strip()
    email = normalize_email(data.get("email"))
    designation = str(data.get("designation") or "").strip()
    phone = str(data.get("phone") or "").strip()
    salary_raw = data.get("salary")

    if not full_name or not email or not designation or not phone or salary_raw in (None, ""):
        raise ApiError("VALIDATION_FAILED", "Full name, email, designation, salary, and phone are required")
    if not is_valid_email(email):
        raise ApiError("VALIDATION_FAILED", "Please provide a valid email address")
    try:
        salary = float(salary_raw)
    except (TypeError, ValueError):
        raise ApiError("VALIDATION_FAILED", "Salary must be a number")
    if salary < 0:
        raise ApiError("VALIDATION_FAILED", "Salary must be a positive number")

    joining_raw = str(data.get("joiningDate") or "").strip()
    if joining_raw:
        joining_dt = parse_datetime_maybe(joining_raw)
        if not joining_dt:
            raise ApiError("VALIDATION_FAILED", "joiningDate must be an ISO date")
    else:
        joining_dt = (now_dt or utc_now()) + timedelta(days=7)

    return {
        "fullName": full_name,
        "email": email,
        "designation": designation,
        "department": str(data.get("department") or "").strip(),
        "salary": salary,
        "joiningDate": to_iso_utc(joining_dt),
        "phone": phone,
    }


def _active_onboarding_for(db, *, org_id: str, email: str) -> Onboarding | None:
    return (
        db.execute(
            select(Onboarding)
            .where(Onboarding.organizationId == org_id)
            .where(Onboarding.email == email)
            .where(Onboarding.status.in_(sorted(ACTIVE_STATUSES)))
        )
        .scalars()
        .first()
    )


def create_onboarding_record(
    db,
    *,
    org_id: str,
    profile: dict[str, Any],
    auth: AuthContext | None,
    cfg,
    now_dt=None,
) -> tuple[Onboarding, Any, str]:
    """
    Placeholder user + pending onboarding + fresh token. Sends nothing.

    Returns ``(onboarding, user, raw_token)``.
    """
    now_dt = now_dt or utc_now()
    now = to_iso_utc(now_dt)
    actor = actor_id(auth)

    if _active_onboarding_for(db, org_id=org_id, email=profile["email"]):
        raise _conflict("An active onboarding already exists for this email")

    user = provision_placeholder(db, org_id=org_id, profile=profile, actor=actor, now=now)

    row = Onboarding(
        onboardingId=new_prefixed_id("ONB"),
        organizationId=org_id,
        employeeId=user.userId,
        fullName=profile["fullName"],
        email=profile["email"],
        designation=profile["designation"],
        department=profile.get("department") or "",
        salary=float(profile.get("salary") or 0),
        joiningDate=profile["joiningDate"],
        phone=profile.get("phone") or "",
        status="pending",
        offerSentAt=now,
        createdAt=now,
        createdBy=actor,
        updatedAt=now,
        updatedBy=actor,
    )
    raw = assign_token(row, cfg.TOKEN_PEPPER, ttl_days=cfg.LIFECYCLE_TOKEN_TTL_DAYS, now=now_dt)
    db.add(row)

    append_audit(
        db,
        entityType="ONBOARDING",
        entityId=row.onboardingId,
        action="ONBOARDING_CREATE",
        toState="pending",
        stageTag="ONBOARDING_CREATE",
        actor=auth,
        at=now,
        organizationId=org_id,
        meta={"employeeId": user.userId, "email": row.email},
    )
    _log.info("onboarding created id=%s org=%s token=%s", row.onboardingId, org_id, token_fingerprint(raw))
    return row, user, raw


def _offer_event(name: str, row: Onboarding, raw: str) -> LifecycleEvent:
    return LifecycleEvent(
        name=name,
        organizationId=row.organizationId,
        entityType="ONBOARDING",
        entityId=row.onboardingId,
        payload={"token": raw, "expiresAt": row.tokenExpiry, **_offer_details(row)},
    )


def create_employee(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    now_dt = utc_now()
    profile = validate_offer_profile(data, now_dt=now_dt)
    row, user, raw = create_onboarding_record(db, org_id=org["id"], profile=profile, auth=auth, cfg=cfg, now_dt=now_dt)
    emit(db, _offer_event(ONBOARDING_CREATED, row, raw))

    return {
        "employee": {
            "id": user.userId,
            "fullName": user.fullName,
            "email": user.email,
            "designation": user.designation,
            "department": user.department,
            "salary": user.salary,
            "joiningDate": user.joiningDate,
            "isActive": bool(user.isActive),
        },
        "onboarding": {
            "id": row.onboardingId,
            "status": row.status,
            "expiresAt": row.tokenExpiry,
            "offerDetails": _offer_details(row),
        },
        "token": raw,
    }


def _resolve(db, cfg, token) -> Onboarding:
    row = resolve_token(db, Onboarding, token, cfg.TOKEN_PEPPER)
    if not row:
        raise ApiError("NOT_FOUND", "Invalid onboarding link")
    return row


def _expire_lazily(db, row: Onboarding, *, now: str) -> ApiError:
    """Persists pending -> expired (once) and returns the error to raise."""
    moved = compare_and_set_status(
        db,
        row,
        expected={"pending"},
        values={"status": "expired", "expiredAt": now, "updatedAt": now, "updatedBy": "SYSTEM"},
    )
    if moved:
        append_audit(
            db,
            entityType="ONBOARDING",
            entityId=row.onboardingId,
            action="ONBOARDING_EXPIRE",
            fromState="pending",
            toState="expired",
            stageTag="LAZY_EXPIRY",
            at=now,
            organizationId=row.organizationId,
        )
        _log.info("onboarding expired id=%s", row.onboardingId)
    db.commit()
    return ApiError("EXPIRED", "This onboarding link has expired")


def get_details(data, auth, db, cfg, *, branding=None):
    row = _resolve(db, cfg, (data or {}).get("token"))
    now_dt = utc_now()

    if is_expired(row.tokenExpiry, now_dt):
        raise _expire_lazily(db, row, now=to_iso_utc(now_dt))
    if row.status == "completed":
        raise _conflict("Onboarding already completed")
    if row.status == "revoked":
        raise ApiError("FORBIDDEN", "This offer has been revoked by the admin")

    out = {
        "status": row.status,
        "offerDetails": _offer_details(row),
        "respondedAt": row.respondedAt or "",
        "rejectionReason": row.rejectionReason or "",
        "expiresAt": row.tokenExpiry,
    }
    try:
        org = public_branding(get_branding(db, row.organizationId, cache=branding))
    except Exception:
        _log.warning("branding lookup failed org=%s", row.organizationId, exc_info=True)
        org = None
    if org:
        out["org"] = org
    return out


def accept_offer(data, auth, db, cfg):
    row = _resolve(db, cfg, (data or {}).get("token"))
    if row.status != "pending":
        raise _conflict(f"Cannot accept offer with status: {row.status}")

    now_dt = utc_now()
    now = to_iso_utc(now_dt)
    if is_expired(row.tokenExpiry, now_dt):
        raise _expire_lazily(db, row, now=now)

    moved = compare_and_set_status(
        db,
        row,
        expected={"pending"},
        values={"status": "accepted", "respondedAt": now, "updatedAt": now, "updatedBy": row.employeeId or ""},
    )
    if not moved:
        raise _conflict("Offer was already answered")

    append_audit(
        db,
        entityType="ONBOARDING",
        entityId=row.onboardingId,
        action="ONBOARDING_ACCEPT",
        fromState="pending",
        toState="accepted",
        stageTag="ONBOARDING_ACCEPT",
        at=now,
        organizationId=row.organizationId,
    )

    try:
        _form, form_token = orchestrator.provision_employment_form(db, row, cfg, now_dt=now_dt)
    except ApiError:
        raise
    except Exception:
        _log.exception("employment form provisioning failed onboarding=%s", row.onboardingId)
        raise ApiError("DEPENDENCY_FAILURE", "Failed to create employment form link. Please try again.")

    return {"status": row.status, "employmentFormToken": form_token}


def reject_offer(data, auth, db, cfg):
    row = _resolve(db, cfg, (data or {}).get("token"))
    if row.status != "pending":
        raise _conflict(f"Cannot reject offer with status: {row.status}")

    now_dt = utc_now()
    now = to_iso_utc(now_dt)
    if is_expired(row.tokenExpiry, now_dt):
        raise _expire_lazily(db, row, now=now)

    reason = str((data or {}).get("reason") or "").strip() or "No reason provided"
    moved = compare_and_set_status(
        db,
        row,
        expected={"pending"},
        values={
            "status": "rejected",
            "respondedAt": now,
            "rejectionReason": reason,
            "updatedAt": now,
            "updatedBy": row.employeeId or "",
        },
    )
    if not moved:
        raise _conflict("Offer was already answered")

    deactivate_account(db, row.employeeId, actor="SYSTEM", now=now)
    append_audit(
        db,
        entityType="ONBOARDING",
        entityId=row.onboardingId,
        action="ONBOARDING_REJECT",
        fromState="pending",
        toState="rejected",
        stageTag="ONBOARDING_REJECT",
        remark=reason,
        at=now,
        organizationId=row.organizationId,
    )
    return {"status": row.status}


def complete_onboarding(data, auth, db, cfg):
    data = data or {}
    row = _resolve(db, cfg, data.get("token"))
    if row.status != "accepted":
        raise _conflict(f"Cannot complete onboarding with status: {row.status}. Please accept the offer first.")

    password = validate_password_policy(str(data.get("password") or ""))
    github = str(data.get("github") or "").strip()
    linkedin = str(data.get("linkedin") or "").strip()
    if not github and not linkedin:
        raise ApiError("VALIDATION_FAILED", "At least one social link (GitHub or LinkedIn) is required")

    user = get_user(db, row.employeeId)
    if not user:
        raise ApiError("NOT_FOUND", "Employee account not found")

    now = to_iso_utc(utc_now())
    moved = compare_and_set_status(
        db,
        row,
        expected={"accepted"},
        values={"status": "completed", "completedAt": now, "updatedAt": now, "updatedBy": user.userId},
    )
    if not moved:
        raise _conflict("Onboarding was already completed")

    profile: dict[str, Any] = {
        "cnicImage": str(data.get("cnicImage") or ""),
        "avatar": str(data.get("avatar") or ""),
    }
    if data.get("dateOfBirth"):
        profile["dateOfBirth"] = str(data.get("dateOfBirth"))
    if isinstance(data.get("address"), dict):
        profile["address"] = data["address"]
    if isinstance(data.get("emergencyContact"), dict):
        profile["emergencyContact"] = data["emergencyContact"]

    activate_account(
        user,
        password=password,
        social={"github": github, "linkedin": linkedin},
        profile=profile,
        actor=user.userId,
        now=now,
    )
    append_audit(
        db,
        entityType="ONBOARDING",
        entityId=row.onboardingId,
        action="ONBOARDING_COMPLETE",
        fromState="accepted",
        toState="completed",
        stageTag="ONBOARDING_COMPLETE",
        at=now,
        organizationId=row.organizationId,
        meta={"employeeId": user.userId},
    )
    return {"email": user.email, "fullName": user.fullName}


def ensure_employment_form(data, auth, db, cfg):
    row = _resolve(db, cfg, (data or {}).get("token"))
    if row.status != "accepted":
        raise _conflict("Offer must be accepted first")
    form, raw, created = orchestrator.ensure_employment_form(db, row, cfg, now_dt=utc_now())
    return {"token": raw, "formId": form.formId, "created": created}


def _get_scoped(db, auth: AuthContext, org: dict[str, Any], onboarding_id: str) -> Onboarding:
    row = db.execute(select(Onboarding).where(Onboarding.onboardingId == str(onboarding_id or ""))).scalar_one_or_none()
    if not row:
        raise ApiError("NOT_FOUND", "Onboarding not found")
    assert_same_org(auth, org["id"], row.organizationId)
    return row


def get_onboarding(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    return serialize_onboarding(_get_scoped(db, auth, org, (data or {}).get("onboardingId")))


def list_onboardings(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    data = data or {}
    page, limit = parse_page_args(data)
    status = str(data.get("status") or "").strip().lower()
    if status and status not in STATUSES:
        raise ApiError("VALIDATION_FAILED", f"Unknown status: {status}")

    q = select(Onboarding).where(Onboarding.organizationId == org["id"])
    if status:
        q = q.where(Onboarding.status == status)

    rows, total = paginate(db, q.order_by(Onboarding.createdAt.desc()), q, page=page, limit=limit)

    counts_rows = db.execute(
        select(Onboarding.status, func.count())
        .where(Onboarding.organizationId == org["id"])
        .group_by(Onboarding.status)
    ).all()
    counts = {str(s): int(c) for s, c in counts_rows}

    return {
        "onboardings": [serialize_onboarding(r) for r in rows],
        "pagination": pagination_block(page=page, limit=limit, total=total),
        "statusCounts": counts,
    }


def revoke_onboarding(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    row = _get_scoped(db, auth, org, (data or {}).get("onboardingId"))
    if row.status not in ACTIVE_STATUSES:
        raise _conflict(f"Cannot revoke onboarding with status: {row.status}")

    now = to_iso_utc(utc_now())
    reason = str((data or {}).get("reason") or "").strip() or "No reason provided"
    from_state = row.status
    moved = compare_and_set_status(
        db,
        row,
        expected=ACTIVE_STATUSES,
        values={
            "status": "revoked",
            "revokedAt": now,
            "revokedBy": actor_id(auth),
            "revocationReason": reason,
            "updatedAt": now,
            "updatedBy": actor_id(auth),
        },
    )
    if not moved:
        raise _conflict("Onboarding changed status, reload and try again")

    deactivate_account(db, row.employeeId, actor=actor_id(auth), now=now)
    append_audit(
        db,
        entityType="ONBOARDING",
        entityId=row.onboardingId,
        action="ONBOARDING_REVOKE",
        fromState=from_state,
        toState="revoked",
        stageTag="ONBOARDING_REVOKE",
        remark=reason,
        actor=auth,
        at=now,
        organizationId=row.organizationId,
    )
    return serialize_onboarding(row)


def resend_offer_letter(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    row = _get_scoped(db, auth, org, (data or {}).get("onboardingId"))
    if row.status != "pending":
        raise _conflict("Can only resend offer letters with pending status")

    now_dt = utc_now()
    now = to_iso_utc(now_dt)
    was_expired = is_expired(row.tokenExpiry, now_dt)
    raw = assign_token(row, cfg.TOKEN_PEPPER, ttl_days=cfg.LIFECYCLE_TOKEN_TTL_DAYS, now=now_dt)
    row.offerSentAt = now
    row.updatedAt = now
    row.updatedBy = actor_id(auth)

    append_audit(
        db,
        entityType="ONBOARDING",
        entityId=row.onboardingId,
        action="ONBOARDING_RESEND",
        fromState="pending",
        toState="pending",
        stageTag="TOKEN_ROTATE",
        actor=auth,
        at=now,
        organizationId=row.organizationId,
        meta={"previousTokenExpired": was_expired},
    )
    emit(db, _offer_event(ONBOARDING_RESENT, row, raw))
    return {"onboarding": serialize_onboarding(row), "token": raw, "extended": was_expired}
