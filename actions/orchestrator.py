"""
Cross-entity chains.

Each function runs inside the caller's session and transaction: when a chain step
raises, the triggering transition is rolled back together with it. Reconciliation
after a form submission is the exception; its steps are best effort and each runs
in its own savepoint.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select

from actions.accounts import activate_account, find_user, get_user
from actions.contracts import create_contract_record, normalize_contract_details
from actions.employment_forms import EDITABLE_STATUSES, DraftForm, create_form_record
from actions.helpers import append_audit, compare_and_set_status
from models import Application, EmploymentContract, EmploymentForm, Onboarding
from tokens import assign_token, is_expired
from utils import parse_json_list, parse_json_object, to_iso_utc, utc_now


_log = logging.getLogger("orchestrator")

CLOSED_APPLICATION_STAGES = {"hired", "rejected"}


def _draft_for_onboarding(onboarding: Onboarding) -> DraftForm:
    return DraftForm(
        personalInfo={"legalName": onboarding.fullName or ""},
        contactInfo={"email": onboarding.email or "", "phone": onboarding.phone or ""},
    )


def provision_employment_form(db, onboarding: Onboarding, cfg, *, now_dt=None) -> tuple[EmploymentForm, str]:
    """Onboarding(accepted) -> EmploymentForm(draft). Returns ``(form, raw_token)``."""
    form, raw = create_form_record(
        db,
        org_id=onboarding.organizationId,
        employee_email=onboarding.email,
        draft=_draft_for_onboarding(onboarding),
        auth=None,
        cfg=cfg,
        onboarding_id=onboarding.onboardingId,
        now_dt=now_dt,
    )
    _log.info("chain onboarding=%s -> form=%s", onboarding.onboardingId, form.formId)
    return form, raw


def _open_form_for(db, onboarding: Onboarding) -> EmploymentForm | None:
    return (
        db.execute(
            select(EmploymentForm)
            .where(EmploymentForm.organizationId == onboarding.organizationId)
            .where(EmploymentForm.onboardingId == onboarding.onboardingId)
            .where(EmploymentForm.status.in_(sorted(EDITABLE_STATUSES)))
            .order_by(EmploymentForm.createdAt.desc())
        )
        .scalars()
        .first()
    )


def ensure_employment_form(db, onboarding: Onboarding, cfg, *, now_dt=None) -> tuple[EmploymentForm, str, bool]:
    """
    Find-or-create the employment form for an accepted onboarding.

    Safe to call repeatedly: an open form gets a fresh token (the old one stops
    working), otherwise a new draft is provisioned. Returns ``(form, raw, created)``.
    """
    now_dt = now_dt or utc_now()
    form = _open_form_for(db, onboarding)
    if form is None:
        form, raw = provision_employment_form(db, onboarding, cfg, now_dt=now_dt)
        return form, raw, True

    was_expired = is_expired(form.tokenExpiry, now_dt)
    raw = assign_token(form, cfg.TOKEN_PEPPER, ttl_days=cfg.LIFECYCLE_TOKEN_TTL_DAYS, now=now_dt)
    now = to_iso_utc(now_dt)
    form.updatedAt = now
    form.updatedBy = "SYSTEM"
    append_audit(
        db,
        entityType="EMPLOYMENT_FORM",
        entityId=form.formId,
        action="EMPLOYMENT_FORM_ENSURE",
        fromState=form.status,
        toState=form.status,
        stageTag="TOKEN_ROTATE",
        at=now,
        organizationId=form.organizationId,
        meta={"onboardingId": onboarding.onboardingId, "previousTokenExpired": was_expired},
    )
    return form, raw, False


def _onboarding_for_form(db, form: EmploymentForm) -> Onboarding | None:
    if form.onboardingId:
        return db.execute(select(Onboarding).where(Onboarding.onboardingId == form.onboardingId)).scalar_one_or_none()
    return (
        db.execute(
            select(Onboarding)
            .where(Onboarding.organizationId == form.organizationId)
            .where(Onboarding.email == form.employeeEmail)
            .order_by(Onboarding.createdAt.desc())
        )
        .scalars()
        .first()
    )


def _activate_user(db, form: EmploymentForm, onboarding: Onboarding | None, account: dict[str, Any], now: str) -> str:
    user = get_user(db, onboarding.employeeId) if onboarding else None
    if user is None:
        user = find_user(db, org_id=form.organizationId, email=form.employeeEmail)
    if user is None:
        return "skipped"

    profile: dict[str, Any] = {}
    personal = parse_json_object(form.personalInfoJson)
    if personal.get("photo"):
        profile["avatar"] = str(personal["photo"])
    if personal.get("dateOfBirth"):
        profile["dateOfBirth"] = str(personal["dateOfBirth"])

    activate_account(
        user,
        password=str(account.get("password") or ""),
        social={"github": account.get("github") or "", "linkedin": account.get("linkedin") or ""},
        profile=profile,
        actor="SYSTEM",
        now=now,
    )
    return "activated"


def _complete_onboarding(db, onboarding: Onboarding | None, now: str) -> str:
    if onboarding is None:
        return "skipped"
    if onboarding.status != "accepted":
        return "unchanged"
    moved = compare_and_set_status(
        db,
        onboarding,
        expected={"accepted"},
        values={"status": "completed", "completedAt": now, "updatedAt": now, "updatedBy": "SYSTEM"},
    )
    if not moved:
        return "unchanged"
    append_audit(
        db,
        entityType="ONBOARDING",
        entityId=onboarding.onboardingId,
        action="ONBOARDING_COMPLETE",
        fromState="accepted",
        toState="completed",
        stageTag="FORM_SUBMITTED",
        at=now,
        organizationId=onboarding.organizationId,
    )
    return "completed"


def _application_for(db, form: EmploymentForm, onboarding: Onboarding | None) -> Application | None:
    """The application linked to the onboarding, else the latest open one for the candidate's email."""
    base = select(Application).where(Application.organizationId == form.organizationId)
    if onboarding is not None:
        linked = (
            db.execute(base.where(Application.onboardingId == onboarding.onboardingId).order_by(Application.createdAt.desc()))
            .scalars()
            .first()
        )
        if linked is not None:
            return linked
    return (
        db.execute(
            base.where(Application.candidateEmail == form.employeeEmail)
            .where(Application.stage.not_in(sorted(CLOSED_APPLICATION_STAGES)))
            .order_by(Application.createdAt.desc())
        )
        .scalars()
        .first()
    )


def _hire_application(db, form: EmploymentForm, onboarding: Onboarding | None, now: str) -> str:
    app_row = _application_for(db, form, onboarding)
    if app_row is None:
        return "skipped"
    if app_row.stage in CLOSED_APPLICATION_STAGES:
        return "unchanged"

    from_stage = app_row.stage
    timeline = parse_json_list(app_row.timelineJson)
    timeline.append({"stage": "hired", "movedAt": now, "movedBy": "SYSTEM", "notes": "", "automated": True})
    app_row.stage = "hired"
    app_row.timelineJson = json.dumps(timeline)
    app_row.updatedAt = now
    app_row.updatedBy = "SYSTEM"
    append_audit(
        db,
        entityType="APPLICATION",
        entityId=app_row.applicationId,
        action="APPLICATION_MOVE",
        fromState=from_stage,
        toState="hired",
        stageTag="AUTO_HIRE",
        at=now,
        organizationId=app_row.organizationId,
    )
    return "hired"


def reconcile_submission(db, form: EmploymentForm, *, account: dict[str, Any], cfg, now: str) -> dict[str, str]:
    """
    Best-effort follow-ups once a form reaches ``pending_review``.

    Returns ``{"user": ..., "onboarding": ..., "application": ...}`` with the outcome
    of each step; a failed step reports ``"failed"`` and does not undo the others.
    """
    onboarding = _onboarding_for_form(db, form)
    steps = (
        ("user", lambda: _activate_user(db, form, onboarding, account or {}, now)),
        ("onboarding", lambda: _complete_onboarding(db, onboarding, now)),
        ("application", lambda: _hire_application(db, form, onboarding, now)),
    )

    results: dict[str, str] = {}
    for name, step in steps:
        try:
            with db.begin_nested():
                results[name] = step()
        except Exception:
            _log.exception("reconciliation step failed step=%s form=%s", name, form.formId)
            results[name] = "failed"
    return results


def provision_onboarding_from_application(db, application: Application, *, offer: dict[str, Any], auth, cfg, now_dt=None):
    """Application(offer) -> Onboarding(pending). Returns ``(onboarding, raw_token)``."""
    from actions.onboarding import create_onboarding_record, validate_offer_profile

    now_dt = now_dt or utc_now()
    profile = validate_offer_profile(
        {
            "fullName": offer.get("fullName"),
            "email": application.candidateEmail,
            "designation": offer.get("designation") or application.positionTitle,
            "department": offer.get("department") or application.department,
            "salary": offer.get("salary"),
            "joiningDate": offer.get("joiningDate"),
            "phone": offer.get("phone"),
        },
        now_dt=now_dt,
    )
    onboarding, _user, raw = create_onboarding_record(
        db, org_id=application.organizationId, profile=profile, auth=auth, cfg=cfg, now_dt=now_dt
    )
    _log.info("chain application=%s -> onboarding=%s", application.applicationId, onboarding.onboardingId)
    return onboarding, raw


def provision_contract(db, form: EmploymentForm, *, auth, cfg, details: Any = None, now_dt=None) -> EmploymentContract:
    """EmploymentForm(approved) -> EmploymentContract(draft); position defaults to the offered designation."""
    raw_details = dict(details) if isinstance(details, dict) else {}
    if not str(raw_details.get("position") or "").strip():
        onboarding = _onboarding_for_form(db, form)
        if onboarding is not None:
            raw_details["position"] = onboarding.designation
            raw_details.setdefault("department", onboarding.department)
            comp = dict(raw_details.get("compensation") or {})
            comp.setdefault("baseSalary", onboarding.salary)
            raw_details["compensation"] = comp
            raw_details.setdefault("startDate", onboarding.joiningDate)

    contract, _raw = create_contract_record(
        db,
        form,
        details=normalize_contract_details(raw_details),
        auth=auth,
        cfg=cfg,
        now_dt=now_dt,
    )
    _log.info("chain form=%s -> contract=%s", form.formId, contract.contractId)
    return contract
