from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select

from actions.helpers import actor_id, append_audit, compare_and_set_status, paginate
from actions.organizations import get_branding, public_branding
from auth import assert_same_org
from events import (
    EMPLOYMENT_FORM_APPROVED,
    EMPLOYMENT_FORM_CREATED,
    EMPLOYMENT_FORM_REVISION_REQUESTED,
    LifecycleEvent,
    emit,
)
from models import AppointmentLetter, EmploymentForm
from passwords import validate_password_policy
from tokens import assign_token, is_expired, resolve_token, token_fingerprint
from utils import (
    ApiError,
    AuthContext,
    is_valid_email,
    new_prefixed_id,
    normalize_email,
    pagination_block,
    parse_json_list,
    parse_json_object,
    parse_page_args,
    to_iso_utc,
    utc_now,
)


STATUSES = {"draft", "pending_review", "approved", "rejected", "needs_revision"}
EDITABLE_STATUSES = {"draft", "needs_revision"}
REVIEW_DECISIONS = {"approved", "rejected"}

BLOCKS = ("personalInfo", "cnicInfo", "contactInfo", "addresses")

# (block, field, label)
REQUIRED_ON_SUBMIT = (
    ("personalInfo", "legalName", "legal name"),
    ("cnicInfo", "cnicNumber", "CNIC number"),
    ("contactInfo", "phone", "phone"),
)

_log = logging.getLogger("lifecycle")


def _merge_block(base: dict[str, Any], incoming: Any) -> dict[str, Any]:
    out = dict(base or {})
    if isinstance(incoming, dict):
        for k, v in incoming.items():
            if isinstance(v, dict) and isinstance(out.get(k), dict):
                out[k] = _merge_block(out[k], v)
            else:
                out[k] = v
    return out


@dataclass
class DraftForm:
    """Everything optional; what a candidate may save at any time."""

    personalInfo: dict[str, Any] = field(default_factory=dict)
    cnicInfo: dict[str, Any] = field(default_factory=dict)
    contactInfo: dict[str, Any] = field(default_factory=dict)
    addresses: dict[str, Any] = field(default_factory=dict)
    acceptedPolicies: list[Any] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict[str, Any] | None) -> "DraftForm":
        data = data or {}
        return cls(
            personalInfo=dict(data.get("personalInfo") or {}) if isinstance(data.get("personalInfo"), dict) else {},
            cnicInfo=dict(data.get("cnicInfo") or {}) if isinstance(data.get("cnicInfo"), dict) else {},
            contactInfo=dict(data.get("contactInfo") or {}) if isinstance(data.get("contactInfo"), dict) else {},
            addresses=dict(data.get("addresses") or {}) if isinstance(data.get("addresses"), dict) else {},
            acceptedPolicies=list(data.get("acceptedPolicies") or []) if isinstance(data.get("acceptedPolicies"), list) else [],
        )

    @classmethod
    def from_row(cls, row: EmploymentForm) -> "DraftForm":
        return cls(
            personalInfo=parse_json_object(row.personalInfoJson),
            cnicInfo=parse_json_object(row.cnicInfoJson),
            contactInfo=parse_json_object(row.contactInfoJson),
            addresses=parse_json_object(row.addressesJson),
            acceptedPolicies=parse_json_list(row.acceptedPoliciesJson),
        )

    def merged_with(self, data: dict[str, Any] | None) -> "DraftForm":
        data = data or {}
        policies = data.get("acceptedPolicies")
        return DraftForm(
            personalInfo=_merge_block(self.personalInfo, data.get("personalInfo")),
            cnicInfo=_merge_block(self.cnicInfo, data.get("cnicInfo")),
            contactInfo=_merge_block(self.contactInfo, data.get("contactInfo")),
            addresses=_merge_block(self.addresses, data.get("addresses")),
            acceptedPolicies=list(policies) if isinstance(policies, list) else list(self.acceptedPolicies),
        )

    def apply_to(self, row: EmploymentForm) -> None:
        row.personalInfoJson = json.dumps(self.personalInfo)
        row.cnicInfoJson = json.dumps(self.cnicInfo)
        row.contactInfoJson = json.dumps(self.contactInfo)
        row.addressesJson = json.dumps(self.addresses)
        row.acceptedPoliciesJson = json.dumps(self.acceptedPolicies)


@dataclass(frozen=True)
class SubmittedForm:
    legalName: str
    cnicNumber: str
    phone: str
    draft: DraftForm

    @classmethod
    def from_draft(cls, draft: DraftForm) -> "SubmittedForm":
        values: dict[str, str] = {}
        missing: list[str] = []
        for block, key, label in REQUIRED_ON_SUBMIT:
            val = str((getattr(draft, block) or {}).get(key) or "").strip()
            if not val:
                missing.append(label)
            values[key] = val
        if missing:
            raise ApiError("VALIDATION_FAILED", "Missing required fields: " + ", ".join(missing))
        return cls(legalName=values["legalName"], cnicNumber=values["cnicNumber"], phone=values["phone"], draft=draft)


def serialize_form(row: EmploymentForm) -> dict[str, Any]:
    draft = DraftForm.from_row(row)
    return {
        "id": row.formId,
        "organizationId": row.organizationId,
        "appointmentLetterId": row.appointmentLetterId or "",
        "onboardingId": row.onboardingId or "",
        "employeeEmail": row.employeeEmail or "",
        "personalInfo": draft.personalInfo,
        "cnicInfo": draft.cnicInfo,
        "contactInfo": draft.contactInfo,
        "addresses": draft.addresses,
        "acceptedPolicies": draft.acceptedPolicies,
        "status": row.status,
        "expiresAt": row.tokenExpiry or "",
        "submittedAt": row.submittedAt or "",
        "reviewedAt": row.reviewedAt or "",
        "reviewedBy": row.reviewedBy or "",
        "reviewNotes": row.reviewNotes or "",
        "revisionFields": parse_json_list(row.revisionFieldsJson),
        "revisionRequestedAt": row.revisionRequestedAt or "",
        "createdAt": row.createdAt or "",
        "updatedAt": row.updatedAt or "",
    }


def _candidate_name(row: EmploymentForm) -> str:
    return str(parse_json_object(row.personalInfoJson).get("legalName") or "").strip()


def _candidate_email(row: EmploymentForm) -> str:
    return normalize_email(parse_json_object(row.contactInfoJson).get("email")) or row.employeeEmail


def _form_event(name: str, row: EmploymentForm, raw: str = "", **extra: Any) -> LifecycleEvent:
    payload: dict[str, Any] = {"email": _candidate_email(row), "fullName": _candidate_name(row), **extra}
    if raw:
        payload["token"] = raw
        payload["expiresAt"] = row.tokenExpiry
    return LifecycleEvent(
        name=name,
        organizationId=row.organizationId,
        entityType="EMPLOYMENT_FORM",
        entityId=row.formId,
        payload=payload,
    )


def create_form_record(
    db,
    *,
    org_id: str,
    employee_email: str,
    draft: DraftForm,
    auth: AuthContext | None,
    cfg,
    onboarding_id: str = "",
    appointment_letter_id: str = "",
    now_dt=None,
) -> tuple[EmploymentForm, str]:
    """Draft form + token; queues the form-request email. Returns ``(form, raw_token)``."""
    now_dt = now_dt or utc_now()
    now = to_iso_utc(now_dt)
    actor = actor_id(auth)

    row = EmploymentForm(
        formId=new_prefixed_id("EMF"),
        organizationId=org_id,
        onboardingId=onboarding_id or "",
        appointmentLetterId=appointment_letter_id or "",
        employeeEmail=employee_email,
        status="draft",
        revisionFieldsJson="[]",
        createdAt=now,
        createdBy=actor,
        updatedAt=now,
        updatedBy=actor,
    )
    draft.apply_to(row)
    raw = assign_token(row, cfg.TOKEN_PEPPER, ttl_days=cfg.LIFECYCLE_TOKEN_TTL_DAYS, now=now_dt)
    db.add(row)

    append_audit(
        db,
        entityType="EMPLOYMENT_FORM",
        entityId=row.formId,
        action="EMPLOYMENT_FORM_CREATE",
        toState="draft",
        stageTag="EMPLOYMENT_FORM_CREATE",
        actor=auth,
        at=now,
        organizationId=org_id,
        meta={"onboardingId": onboarding_id, "appointmentLetterId": appointment_letter_id},
    )
    emit(db, _form_event(EMPLOYMENT_FORM_CREATED, row, raw))
    _log.info("employment form created id=%s org=%s token=%s", row.formId, org_id, token_fingerprint(raw))
    return row, raw


def create_employment_form(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    data = data or {}
    email = normalize_email(data.get("employeeEmail"))
    if not email or not is_valid_email(email):
        raise ApiError("VALIDATION_FAILED", "A valid employeeEmail is required")

    letter_id = str(data.get("appointmentLetterId") or "").strip()
    if letter_id:
        letter = db.execute(select(AppointmentLetter).where(AppointmentLetter.letterId == letter_id)).scalar_one_or_none()
        if not letter:
            raise ApiError("NOT_FOUND", "Appointment letter not found")
        assert_same_org(auth, org["id"], letter.organizationId)

        now_dt = utc_now()
        drafts = (
            db.execute(
                select(EmploymentForm)
                .where(EmploymentForm.organizationId == org["id"])
                .where(EmploymentForm.appointmentLetterId == letter_id)
                .where(EmploymentForm.status == "draft")
            )
            .scalars()
            .all()
        )
        if any(not is_expired(f.tokenExpiry, now_dt) for f in drafts):
            raise ApiError("CONFLICT", "An open employment form already exists for this appointment letter")

    draft = DraftForm.from_payload(data)
    draft.contactInfo.setdefault("email", email)
    row, raw = create_form_record(
        db,
        org_id=org["id"],
        employee_email=email,
        draft=draft,
        auth=auth,
        cfg=cfg,
        appointment_letter_id=letter_id,
    )
    return {"form": serialize_form(row), "token": raw}


def _resolve(db, cfg, token) -> EmploymentForm:
    if not str(token or "").strip():
        raise ApiError("BAD_REQUEST", "Token is required to submit employment form.")
    row = resolve_token(db, EmploymentForm, token, cfg.TOKEN_PEPPER)
    if not row:
        raise ApiError("NOT_FOUND", "Employment form not found")
    return row


def get_by_token(data, auth, db, cfg, *, branding=None):
    row = _resolve(db, cfg, (data or {}).get("token"))
    if row.status not in EDITABLE_STATUSES:
        raise ApiError("CONFLICT", "This employment form has already been submitted and is being reviewed by HR.")
    if is_expired(row.tokenExpiry):
        raise ApiError("EXPIRED", "This employment form link has expired")

    out = serialize_form(row)
    try:
        org = public_branding(get_branding(db, row.organizationId, cache=branding))
    except Exception:
        _log.warning("branding lookup failed org=%s", row.organizationId, exc_info=True)
        org = None
    if org:
        out["org"] = org
    return out


def submit(data, auth, db, cfg):
    data = dict(data or {})
    row = _resolve(db, cfg, data.pop("token", None))
    if row.status not in EDITABLE_STATUSES:
        raise ApiError("CONFLICT", "This employment form has already been submitted.")

    now_dt = utc_now()
    now = to_iso_utc(now_dt)
    if is_expired(row.tokenExpiry, now_dt):
        raise ApiError("EXPIRED", "This employment form link has expired.")

    account = data.pop("account", None)
    account = account if isinstance(account, dict) else {}
    if account.get("password"):
        validate_password_policy(account["password"])
    submitted = SubmittedForm.from_draft(DraftForm.from_row(row).merged_with(data))

    from_state = row.status
    values: dict[str, Any] = {
        "status": "pending_review",
        "submittedAt": now,
        "updatedAt": now,
        "updatedBy": _candidate_email(row),
        "personalInfoJson": json.dumps(submitted.draft.personalInfo),
        "cnicInfoJson": json.dumps(submitted.draft.cnicInfo),
        "contactInfoJson": json.dumps(submitted.draft.contactInfo),
        "addressesJson": json.dumps(submitted.draft.addresses),
        "acceptedPoliciesJson": json.dumps(submitted.draft.acceptedPolicies),
    }
    # First writer wins: a concurrent submit of the same token loses here.
    if not compare_and_set_status(db, row, expected=EDITABLE_STATUSES, values=values):
        raise ApiError("CONFLICT", "This employment form has already been submitted.")

    append_audit(
        db,
        entityType="EMPLOYMENT_FORM",
        entityId=row.formId,
        action="EMPLOYMENT_FORM_SUBMIT",
        fromState=from_state,
        toState="pending_review",
        stageTag="EMPLOYMENT_FORM_SUBMIT",
        at=now,
        organizationId=row.organizationId,
    )

    from actions import orchestrator

    steps = orchestrator.reconcile_submission(
        db,
        row,
        account=account,
        cfg=cfg,
        now=now,
    )
    out = serialize_form(row)
    out["reconciliation"] = steps
    return out


def _get_scoped(db, auth: AuthContext, org: dict[str, Any], form_id: str) -> EmploymentForm:
    row = db.execute(select(EmploymentForm).where(EmploymentForm.formId == str(form_id or ""))).scalar_one_or_none()
    if not row:
        raise ApiError("NOT_FOUND", "Employment form not found")
    assert_same_org(auth, org["id"], row.organizationId)
    return row


def get_form(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    return serialize_form(_get_scoped(db, auth, org, (data or {}).get("formId")))


def list_forms(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    data = data or {}
    page, limit = parse_page_args(data)
    status = str(data.get("status") or "").strip().lower()
    email = normalize_email(data.get("employeeEmail"))
    if status and status not in STATUSES:
        raise ApiError("VALIDATION_FAILED", f"Unknown status: {status}")

    q = select(EmploymentForm).where(EmploymentForm.organizationId == org["id"])
    if status:
        q = q.where(EmploymentForm.status == status)
    if email:
        q = q.where(EmploymentForm.employeeEmail == email)

    ordered = q.order_by(EmploymentForm.submittedAt.desc(), EmploymentForm.createdAt.desc())
    rows, total = paginate(db, ordered, q, page=page, limit=limit)
    return {"forms": [serialize_form(r) for r in rows], "pagination": pagination_block(page=page, limit=limit, total=total)}


def review(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    data = data or {}
    decision = str(data.get("status") or "").strip().lower()
    if decision not in REVIEW_DECISIONS:
        raise ApiError("VALIDATION_FAILED", "Invalid status. Must be either 'approved' or 'rejected'.")

    row = _get_scoped(db, auth, org, data.get("formId"))
    if row.status != "pending_review":
        raise ApiError("CONFLICT", f"Cannot review employment form with status: {row.status}")

    now_dt = utc_now()
    now = to_iso_utc(now_dt)
    notes = str(data.get("reviewNotes") or "").strip()
    moved = compare_and_set_status(
        db,
        row,
        expected={"pending_review"},
        values={
            "status": decision,
            "reviewedBy": actor_id(auth),
            "reviewedAt": now,
            "reviewNotes": notes,
            "updatedAt": now,
            "updatedBy": actor_id(auth),
        },
    )
    if not moved:
        raise ApiError("CONFLICT", "Employment form was already reviewed")

    append_audit(
        db,
        entityType="EMPLOYMENT_FORM",
        entityId=row.formId,
        action="EMPLOYMENT_FORM_REVIEW",
        fromState="pending_review",
        toState=decision,
        stageTag="EMPLOYMENT_FORM_REVIEW",
        remark=notes,
        actor=auth,
        at=now,
        organizationId=row.organizationId,
    )

    out = serialize_form(row)
    if decision == "approved":
        emit(db, _form_event(EMPLOYMENT_FORM_APPROVED, row))
        if cfg.FORM_APPROVAL_CHAIN == "contract":
            from actions import orchestrator

            contract = orchestrator.provision_contract(db, row, auth=auth, cfg=cfg, details=data.get("contractDetails"), now_dt=now_dt)
            out["contractId"] = contract.contractId
    return out


def request_revision(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    data = data or {}
    row = _get_scoped(db, auth, org, data.get("formId"))
    if row.status != "pending_review":
        raise ApiError("CONFLICT", f"Cannot request revision for employment form with status: {row.status}")

    fields = [str(f).strip() for f in (data.get("fields") or []) if str(f).strip()]
    notes = str(data.get("notes") or "").strip()
    if not fields and not notes:
        raise ApiError("VALIDATION_FAILED", "Provide the fields to revise or a note")

    now_dt = utc_now()
    now = to_iso_utc(now_dt)
    moved = compare_and_set_status(
        db,
        row,
        expected={"pending_review"},
        values={
            "status": "needs_revision",
            "revisionFieldsJson": json.dumps(fields),
            "reviewNotes": notes,
            "reviewedBy": actor_id(auth),
            "reviewedAt": now,
            "revisionRequestedAt": now,
            "updatedAt": now,
            "updatedBy": actor_id(auth),
        },
    )
    if not moved:
        raise ApiError("CONFLICT", "Employment form was already reviewed")

    # The revision email needs a working link.
    raw = assign_token(row, cfg.TOKEN_PEPPER, ttl_days=cfg.LIFECYCLE_TOKEN_TTL_DAYS, now=now_dt)
    append_audit(
        db,
        entityType="EMPLOYMENT_FORM",
        entityId=row.formId,
        action="EMPLOYMENT_FORM_REQUEST_REVISION",
        fromState="pending_review",
        toState="needs_revision",
        stageTag="EMPLOYMENT_FORM_REQUEST_REVISION",
        remark=notes,
        actor=auth,
        at=now,
        organizationId=row.organizationId,
        meta={"fields": fields},
    )
    emit(db, _form_event(EMPLOYMENT_FORM_REVISION_REQUESTED, row, raw, fields=fields, notes=notes))
    return serialize_form(row)
