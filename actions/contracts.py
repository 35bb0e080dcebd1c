from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select

from actions.accounts import find_user
from actions.helpers import actor_id, append_audit, compare_and_set_status, paginate
from auth import assert_same_org
from events import CONTRACT_SENT, CONTRACT_SIGNED, LifecycleEvent, emit
from models import EmploymentContract, EmploymentForm
from tokens import assign_token, is_expired, resolve_token, token_fingerprint
from utils import (
    ApiError,
    AuthContext,
    new_prefixed_id,
    normalize_email,
    pagination_block,
    parse_json_list,
    parse_json_object,
    parse_page_args,
    to_iso_utc,
    utc_now,
)


STATUSES = {"draft", "sent", "signed", "completed", "terminated"}
SIGNABLE_STATUSES = {"draft", "sent"}
TERMINABLE_STATUSES = {"draft", "sent", "signed"}
EMPLOYMENT_TYPES = {"full-time", "part-time", "contract"}
PAYMENT_FREQUENCIES = {"monthly", "bi-weekly", "weekly"}

_log = logging.getLogger("lifecycle")


def _number(value: Any, *, field_name: str, default: float = 0) -> float:
    if value in (None, ""):
        return default
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise ApiError("VALIDATION_FAILED", f"{field_name} must be a number")
    if n < 0:
        raise ApiError("VALIDATION_FAILED", f"{field_name} cannot be negative")
    return n


def normalize_contract_details(raw: Any) -> dict[str, Any]:
    d = raw if isinstance(raw, dict) else {}
    position = str(d.get("position") or "").strip()
    if not position:
        raise ApiError("VALIDATION_FAILED", "contractDetails.position is required")

    employment_type = str(d.get("employmentType") or "full-time").strip().lower()
    if employment_type not in EMPLOYMENT_TYPES:
        raise ApiError("VALIDATION_FAILED", f"employmentType must be one of: {', '.join(sorted(EMPLOYMENT_TYPES))}")

    comp = d.get("compensation") if isinstance(d.get("compensation"), dict) else {}
    frequency = str(comp.get("paymentFrequency") or "monthly").strip().lower()
    if frequency not in PAYMENT_FREQUENCIES:
        raise ApiError("VALIDATION_FAILED", "Unknown paymentFrequency")

    return {
        "position": position,
        "department": str(d.get("department") or "").strip(),
        "employmentType": employment_type,
        "startDate": str(d.get("startDate") or ""),
        "probationPeriod": int(_number(d.get("probationPeriod"), field_name="probationPeriod", default=3)),
        "compensation": {
            "baseSalary": _number(comp.get("baseSalary"), field_name="compensation.baseSalary"),
            "allowances": comp.get("allowances") if isinstance(comp.get("allowances"), list) else [],
            "bonuses": comp.get("bonuses") if isinstance(comp.get("bonuses"), list) else [],
            "paymentFrequency": frequency,
        },
        "workingHours": d.get("workingHours") if isinstance(d.get("workingHours"), dict) else {},
        "benefits": [str(b) for b in (d.get("benefits") or []) if str(b).strip()],
        "leavePolicies": d.get("leavePolicies") if isinstance(d.get("leavePolicies"), dict) else {},
        "noticePeriod": int(_number(d.get("noticePeriod"), field_name="noticePeriod", default=30)),
        "termsAndConditions": str(d.get("termsAndConditions") or ""),
    }


def serialize_contract(row: EmploymentContract) -> dict[str, Any]:
    return {
        "id": row.contractId,
        "organizationId": row.organizationId,
        "employmentFormId": row.employmentFormId or "",
        "employeeId": row.employeeId or "",
        "employeeEmail": row.employeeEmail or "",
        "employeeName": row.employeeName or "",
        "contractDetails": parse_json_object(row.contractDetailsJson),
        "signatures": parse_json_list(row.signaturesJson),
        "status": row.status,
        "expiresAt": row.tokenExpiry or "",
        "sentAt": row.sentAt or "",
        "signedAt": row.signedAt or "",
        "completedAt": row.completedAt or "",
        "terminatedAt": row.terminatedAt or "",
        "terminationReason": row.terminationReason or "",
        "createdBy": row.createdBy or "",
        "createdAt": row.createdAt or "",
        "updatedAt": row.updatedAt or "",
    }


def create_contract_record(
    db,
    form: EmploymentForm,
    *,
    details: dict[str, Any],
    auth: AuthContext | None,
    cfg,
    now_dt=None,
) -> tuple[EmploymentContract, str]:
    if form.status != "approved":
        raise ApiError("CONFLICT", "Employment form must be approved before creating a contract")

    now_dt = now_dt or utc_now()
    now = to_iso_utc(now_dt)
    actor = actor_id(auth)
    personal = parse_json_object(form.personalInfoJson)

    row = EmploymentContract(
        contractId=new_prefixed_id("CTR"),
        organizationId=form.organizationId,
        employmentFormId=form.formId,
        employeeId="",
        employeeEmail=form.employeeEmail,
        employeeName=str(personal.get("legalName") or ""),
        contractDetailsJson=json.dumps(details),
        signaturesJson="[]",
        status="draft",
        createdAt=now,
        createdBy=actor,
        updatedAt=now,
        updatedBy=actor,
    )
    raw = assign_token(row, cfg.TOKEN_PEPPER, ttl_days=cfg.LIFECYCLE_TOKEN_TTL_DAYS, now=now_dt)
    db.add(row)

    append_audit(
        db,
        entityType="CONTRACT",
        entityId=row.contractId,
        action="CONTRACT_CREATE",
        toState="draft",
        stageTag="CONTRACT_CREATE",
        actor=auth,
        at=now,
        organizationId=row.organizationId,
        meta={"employmentFormId": form.formId},
    )
    _log.info("contract created id=%s form=%s token=%s", row.contractId, form.formId, token_fingerprint(raw))
    return row, raw


def create_contract(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    data = data or {}
    form_id = str(data.get("employmentFormId") or "").strip()
    if not form_id:
        raise ApiError("VALIDATION_FAILED", "employmentFormId is required")
    form = db.execute(select(EmploymentForm).where(EmploymentForm.formId == form_id)).scalar_one_or_none()
    if not form:
        raise ApiError("NOT_FOUND", "Employment form not found")
    assert_same_org(auth, org["id"], form.organizationId)

    details = normalize_contract_details(data.get("contractDetails"))
    row, raw = create_contract_record(db, form, details=details, auth=auth, cfg=cfg)
    return {"contract": serialize_contract(row), "token": raw}


def _get_scoped(db, auth: AuthContext, org: dict[str, Any], contract_id: str) -> EmploymentContract:
    row = db.execute(
        select(EmploymentContract).where(EmploymentContract.contractId == str(contract_id or ""))
    ).scalar_one_or_none()
    if not row:
        raise ApiError("NOT_FOUND", "Contract not found")
    assert_same_org(auth, org["id"], row.organizationId)
    return row


def get_contract(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    return serialize_contract(_get_scoped(db, auth, org, (data or {}).get("contractId")))


def list_contracts(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    data = data or {}
    page, limit = parse_page_args(data)
    status = str(data.get("status") or "").strip().lower()
    email = normalize_email(data.get("employeeEmail"))
    if status and status not in STATUSES:
        raise ApiError("VALIDATION_FAILED", f"Unknown status: {status}")

    q = select(EmploymentContract).where(EmploymentContract.organizationId == org["id"])
    if status:
        q = q.where(EmploymentContract.status == status)
    if email:
        q = q.where(EmploymentContract.employeeEmail == email)

    rows, total = paginate(db, q.order_by(EmploymentContract.createdAt.desc()), q, page=page, limit=limit)
    return {"contracts": [serialize_contract(r) for r in rows], "pagination": pagination_block(page=page, limit=limit, total=total)}


def send_contract(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    row = _get_scoped(db, auth, org, (data or {}).get("contractId"))
    if row.status != "draft":
        raise ApiError("CONFLICT", "Contract already sent")

    now_dt = utc_now()
    now = to_iso_utc(now_dt)
    if not compare_and_set_status(
        db,
        row,
        expected={"draft"},
        values={"status": "sent", "sentAt": now, "updatedAt": now, "updatedBy": actor_id(auth)},
    ):
        raise ApiError("CONFLICT", "Contract already sent")

    # Only the hash is stored, so the email carries a freshly issued link.
    raw = assign_token(row, cfg.TOKEN_PEPPER, ttl_days=cfg.LIFECYCLE_TOKEN_TTL_DAYS, now=now_dt)
    append_audit(
        db,
        entityType="CONTRACT",
        entityId=row.contractId,
        action="CONTRACT_SEND",
        fromState="draft",
        toState="sent",
        stageTag="CONTRACT_SEND",
        actor=auth,
        at=now,
        organizationId=row.organizationId,
    )
    emit(
        db,
        LifecycleEvent(
            name=CONTRACT_SENT,
            organizationId=row.organizationId,
            entityType="CONTRACT",
            entityId=row.contractId,
            payload={
                "token": raw,
                "email": row.employeeEmail,
                "fullName": row.employeeName,
                "position": parse_json_object(row.contractDetailsJson).get("position") or "",
                "expiresAt": row.tokenExpiry,
            },
        ),
    )
    return serialize_contract(row)


def _resolve_signable(db, cfg, token) -> EmploymentContract:
    row = resolve_token(db, EmploymentContract, token, cfg.TOKEN_PEPPER)
    if row and row.status == "signed":
        raise ApiError("CONFLICT", "Contract already signed")
    if not row or row.status not in SIGNABLE_STATUSES:
        raise ApiError("NOT_FOUND", "Contract not found")
    if is_expired(row.tokenExpiry):
        raise ApiError("EXPIRED", "Contract signing link has expired")
    return row


def view_by_token(data, auth, db, cfg):
    return serialize_contract(_resolve_signable(db, cfg, (data or {}).get("token")))


def sign_contract(data, auth, db, cfg):
    data = data or {}
    row = _resolve_signable(db, cfg, data.get("token"))

    signer_name = str(data.get("employeeName") or "").strip() or row.employeeName
    signer_email = normalize_email(data.get("employeeEmail")) or row.employeeEmail
    signature_image = str(data.get("employeeSignature") or "").strip()
    if not signature_image:
        raise ApiError("VALIDATION_FAILED", "employeeSignature is required")

    now = to_iso_utc(utc_now())
    signatures = parse_json_list(row.signaturesJson)
    signatures.append(
        {
            "signedBy": "employee",
            "signerName": signer_name,
            "signerEmail": signer_email,
            "signatureImage": signature_image,
            "signedAt": now,
            "ipAddress": str(data.get("ipAddress") or ""),
        }
    )

    from_state = row.status
    user = find_user(db, org_id=row.organizationId, email=row.employeeEmail)
    values: dict[str, Any] = {
        "status": "signed",
        "signedAt": now,
        "signaturesJson": json.dumps(signatures),
        "updatedAt": now,
        "updatedBy": signer_email,
    }
    if user:
        values["employeeId"] = user.userId
    if not compare_and_set_status(db, row, expected=SIGNABLE_STATUSES, values=values):
        raise ApiError("CONFLICT", "Contract already signed")

    append_audit(
        db,
        entityType="CONTRACT",
        entityId=row.contractId,
        action="CONTRACT_SIGN",
        fromState=from_state,
        toState="signed",
        stageTag="CONTRACT_SIGN",
        at=now,
        organizationId=row.organizationId,
        meta={"signerEmail": signer_email, "ipAddress": str(data.get("ipAddress") or "")},
    )
    emit(
        db,
        LifecycleEvent(
            name=CONTRACT_SIGNED,
            organizationId=row.organizationId,
            entityType="CONTRACT",
            entityId=row.contractId,
            payload={
                "email": signer_email,
                "fullName": signer_name,
                "position": str(parse_json_object(row.contractDetailsJson).get("position") or ""),
                "signedAt": now,
            },
        ),
    )
    return serialize_contract(row)


def complete_contract(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    row = _get_scoped(db, auth, org, (data or {}).get("contractId"))
    if row.status != "signed":
        raise ApiError("CONFLICT", f"Cannot complete contract with status: {row.status}")

    now = to_iso_utc(utc_now())
    if not compare_and_set_status(
        db,
        row,
        expected={"signed"},
        values={"status": "completed", "completedAt": now, "updatedAt": now, "updatedBy": actor_id(auth)},
    ):
        raise ApiError("CONFLICT", "Contract changed status, reload and try again")

    append_audit(
        db,
        entityType="CONTRACT",
        entityId=row.contractId,
        action="CONTRACT_COMPLETE",
        fromState="signed",
        toState="completed",
        stageTag="CONTRACT_COMPLETE",
        actor=auth,
        at=now,
        organizationId=row.organizationId,
    )
    return serialize_contract(row)


def terminate_contract(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    row = _get_scoped(db, auth, org, (data or {}).get("contractId"))
    if row.status not in TERMINABLE_STATUSES:
        raise ApiError("CONFLICT", f"Cannot terminate contract with status: {row.status}")

    reason = str((data or {}).get("reason") or "").strip()
    if not reason:
        raise ApiError("VALIDATION_FAILED", "A termination reason is required")

    now = to_iso_utc(utc_now())
    from_state = row.status
    if not compare_and_set_status(
        db,
        row,
        expected=TERMINABLE_STATUSES,
        values={
            "status": "terminated",
            "terminatedAt": now,
            "terminationReason": reason,
            "updatedAt": now,
            "updatedBy": actor_id(auth),
        },
    ):
        raise ApiError("CONFLICT", "Contract changed status, reload and try again")

    append_audit(
        db,
        entityType="CONTRACT",
        entityId=row.contractId,
        action="CONTRACT_TERMINATE",
        fromState=from_state,
        toState="terminated",
        stageTag="CONTRACT_TERMINATE",
        remark=reason,
        actor=auth,
        at=now,
        organizationId=row.organizationId,
    )
    return serialize_contract(row)
