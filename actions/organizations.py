from __future__ import annotations

import json
import logging
import re
from typing import Any

from sqlalchemy import func, select

from actions.helpers import actor_id, append_audit
from models import Organization, User
from passwords import hash_password
from utils import ApiError, AuthContext, is_valid_email, iso_utc_now, new_prefixed_id, normalize_email, parse_json_list, parse_json_object


DEFAULT_THEME = {"primaryColor": "#fff", "secondaryColor": "#000", "accentColor": "#f1f2f2", "darkMode": False}
DEFAULT_EMAIL_SETTINGS = {"fromName": "", "headerColor": "#000000", "footerText": ""}

_THEME_KEYS = set(DEFAULT_THEME)
_EMAIL_SETTING_KEYS = set(DEFAULT_EMAIL_SETTINGS)

_log = logging.getLogger("lifecycle")


def slugify(name: str) -> str:
    s = str(name or "").lower()
    s = re.sub(r"[^a-z0-9\s-]", "", s)
    s = re.sub(r"\s+", "-", s.strip())
    s = re.sub(r"-+", "-", s)
    return s[:50]


def _theme(row: Organization) -> dict[str, Any]:
    out = dict(DEFAULT_THEME)
    out.update({k: v for k, v in parse_json_object(row.themeJson).items() if k in _THEME_KEYS})
    return out


def _email_settings(row: Organization) -> dict[str, Any]:
    out = dict(DEFAULT_EMAIL_SETTINGS)
    out.update({k: v for k, v in parse_json_object(row.emailSettingsJson).items() if k in _EMAIL_SETTING_KEYS})
    if not out.get("fromName"):
        out["fromName"] = row.companyName or ""
    return out


def _snapshot(row: Organization) -> dict[str, Any]:
    return {
        "id": row.organizationId,
        "companyName": row.companyName or "",
        "slug": row.slug or "",
        "logo": row.logo or "",
        "theme": _theme(row),
        "emailSettings": _email_settings(row),
        "subscriptionStatus": str(row.subscriptionStatus or "").lower(),
    }


def _serialize_org(row: Organization) -> dict[str, Any]:
    out = _snapshot(row)
    out.update(
        {
            "departments": parse_json_list(row.departmentsJson),
            "policies": parse_json_list(row.policiesJson),
            "subscription": {
                "plan": row.subscriptionPlan or "",
                "status": row.subscriptionStatus or "",
                "userLimit": int(row.userLimit or 0),
            },
            "createdAt": row.createdAt or "",
            "updatedAt": row.updatedAt or "",
        }
    )
    return out


def load_org_snapshot(db, org_id: str) -> dict[str, Any] | None:
    row = db.execute(select(Organization).where(Organization.organizationId == str(org_id or ""))).scalar_one_or_none()
    return _snapshot(row) if row else None


def get_branding(db, org_id: str, *, cache=None) -> dict[str, Any] | None:
    """Organization branding + subscription status, through ``cache`` when one is given."""
    if not org_id:
        return None
    if cache is None:
        return load_org_snapshot(db, org_id)
    return cache.get_or_set(org_id, lambda: load_org_snapshot(db, org_id))


def public_branding(org: dict[str, Any] | None) -> dict[str, Any] | None:
    if not org:
        return None
    return {"companyName": org.get("companyName") or "", "logo": org.get("logo") or "", "theme": org.get("theme") or {}}


def _get_org_row(db, org_id: str) -> Organization:
    row = db.execute(select(Organization).where(Organization.organizationId == str(org_id or ""))).scalar_one_or_none()
    if not row:
        raise ApiError("NOT_FOUND", "Organization not found")
    return row


def register_organization(data, auth: AuthContext | None, db, cfg):
    company_name = str((data or {}).get("companyName") or "").strip()
    owner_name = str((data or {}).get("ownerName") or "").strip()
    owner_email = normalize_email((data or {}).get("ownerEmail"))
    owner_password = str((data or {}).get("ownerPassword") or "")

    if not company_name or not owner_name or not owner_email:
        raise ApiError("VALIDATION_FAILED", "companyName, ownerName and ownerEmail are required")
    if not is_valid_email(owner_email):
        raise ApiError("VALIDATION_FAILED", "Please provide a valid email")
    slug = slugify(company_name)
    if not slug:
        raise ApiError("VALIDATION_FAILED", "companyName must contain letters or numbers")

    existing_org = (
        db.execute(
            select(Organization).where(
                (func.lower(Organization.companyName) == company_name.lower()) | (Organization.slug == slug)
            )
        )
        .scalars()
        .first()
    )
    if existing_org:
        raise ApiError("CONFLICT", "Organization with this name already exists")
    if db.execute(select(User).where(User.email == owner_email)).scalars().first():
        raise ApiError("CONFLICT", "User with this email already exists")

    password_hash = hash_password(owner_password)
    now = iso_utc_now()
    org_id = new_prefixed_id("ORG")
    user_id = new_prefixed_id("USR")

    org = Organization(
        organizationId=org_id,
        companyName=company_name,
        slug=slug,
        logo=str((data or {}).get("logo") or ""),
        themeJson=json.dumps(DEFAULT_THEME),
        emailSettingsJson=json.dumps({"fromName": company_name}),
        departmentsJson="[]",
        policiesJson="[]",
        subscriptionPlan=str((data or {}).get("plan") or "free"),
        subscriptionStatus="active",
        userLimit=5,
        createdAt=now,
        createdBy=user_id,
        updatedAt=now,
        updatedBy=user_id,
    )
    owner = User(
        userId=user_id,
        organizationId=org_id,
        email=owner_email,
        fullName=owner_name,
        role="admin",
        passwordHash=password_hash,
        isActive=True,
        isEmailVerified=True,
        profileJson="{}",
        createdAt=now,
        createdBy="SELF",
        updatedAt=now,
        updatedBy="SELF",
    )
    db.add(org)
    db.add(owner)

    append_audit(
        db,
        entityType="ORGANIZATION",
        entityId=org_id,
        action="ORGANIZATION_REGISTER",
        toState="active",
        stageTag="ORGANIZATION_REGISTER",
        at=now,
        organizationId=org_id,
        meta={"companyName": company_name, "ownerUserId": user_id},
    )
    _log.info("organization registered org=%s", org_id)

    return {
        "organization": _serialize_org(org),
        "owner": {"id": user_id, "email": owner_email, "fullName": owner_name, "role": "admin"},
    }


def get_organization(data, auth: AuthContext, db, cfg, *, org: dict[str, Any]):
    return _serialize_org(_get_org_row(db, org["id"]))


def update_profile(data, auth: AuthContext, db, cfg, *, org: dict[str, Any], branding):
    row = _get_org_row(db, org["id"])
    data = data or {}
    changed: list[str] = []

    if "companyName" in data:
        name = str(data.get("companyName") or "").strip()
        if not name:
            raise ApiError("VALIDATION_FAILED", "companyName cannot be empty")
        clash = (
            db.execute(
                select(Organization)
                .where(func.lower(Organization.companyName) == name.lower())
                .where(Organization.organizationId != row.organizationId)
            )
            .scalars()
            .first()
        )
        if clash:
            raise ApiError("CONFLICT", "Organization with this name already exists")
        row.companyName = name
        changed.append("companyName")

    if "logo" in data:
        row.logo = str(data.get("logo") or "")
        changed.append("logo")

    if isinstance(data.get("theme"), dict):
        theme = _theme(row)
        theme.update({k: v for k, v in data["theme"].items() if k in _THEME_KEYS})
        row.themeJson = json.dumps(theme)
        changed.append("theme")

    if isinstance(data.get("emailSettings"), dict):
        settings = parse_json_object(row.emailSettingsJson)
        settings.update({k: v for k, v in data["emailSettings"].items() if k in _EMAIL_SETTING_KEYS})
        row.emailSettingsJson = json.dumps(settings)
        changed.append("emailSettings")

    if not changed:
        raise ApiError("BAD_REQUEST", "Nothing to update")

    now = iso_utc_now()
    row.updatedAt = now
    row.updatedBy = actor_id(auth)
    append_audit(
        db,
        entityType="ORGANIZATION",
        entityId=row.organizationId,
        action="ORGANIZATION_UPDATE",
        stageTag="ORGANIZATION_UPDATE",
        actor=auth,
        at=now,
        organizationId=row.organizationId,
        meta={"fields": changed},
    )
    branding.invalidate(row.organizationId)
    return _serialize_org(row)


def _save_list(db, row: Organization, attr: str, items: list[dict[str, Any]], auth: AuthContext, branding, action: str, meta: dict) -> None:
    now = iso_utc_now()
    setattr(row, attr, json.dumps(items))
    row.updatedAt = now
    row.updatedBy = actor_id(auth)
    append_audit(
        db,
        entityType="ORGANIZATION",
        entityId=row.organizationId,
        action=action,
        stageTag=action,
        actor=auth,
        at=now,
        organizationId=row.organizationId,
        meta=meta,
    )
    branding.invalidate(row.organizationId)


def add_department(data, auth: AuthContext, db, cfg, *, org: dict[str, Any], branding):
    row = _get_org_row(db, org["id"])
    name = str((data or {}).get("name") or "").strip()
    if not name:
        raise ApiError("VALIDATION_FAILED", "Department name is required")

    departments = parse_json_list(row.departmentsJson)
    if any(str(d.get("name") or "").lower() == name.lower() for d in departments):
        raise ApiError("CONFLICT", "Department with this name already exists")

    dept = {
        "id": new_prefixed_id("DEP"),
        "name": name,
        "description": str((data or {}).get("description") or ""),
        "headOfDepartment": str((data or {}).get("headOfDepartment") or ""),
        "createdAt": iso_utc_now(),
    }
    departments.append(dept)
    _save_list(db, row, "departmentsJson", departments, auth, branding, "DEPARTMENT_ADD", {"departmentId": dept["id"], "name": name})
    return dept


def update_department(data, auth: AuthContext, db, cfg, *, org: dict[str, Any], branding):
    row = _get_org_row(db, org["id"])
    dept_id = str((data or {}).get("departmentId") or "").strip()
    departments = parse_json_list(row.departmentsJson)
    dept = next((d for d in departments if d.get("id") == dept_id), None)
    if not dept:
        raise ApiError("NOT_FOUND", "Department not found")

    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ApiError("VALIDATION_FAILED", "Department name cannot be empty")
        if any(d is not dept and str(d.get("name") or "").lower() == name.lower() for d in departments):
            raise ApiError("CONFLICT", "Department with this name already exists")
        dept["name"] = name
    for key in ("description", "headOfDepartment"):
        if key in data:
            dept[key] = str(data.get(key) or "")

    _save_list(db, row, "departmentsJson", departments, auth, branding, "DEPARTMENT_UPDATE", {"departmentId": dept_id})
    return dept


def delete_department(data, auth: AuthContext, db, cfg, *, org: dict[str, Any], branding):
    row = _get_org_row(db, org["id"])
    dept_id = str((data or {}).get("departmentId") or "").strip()
    departments = parse_json_list(row.departmentsJson)
    dept = next((d for d in departments if d.get("id") == dept_id), None)
    if not dept:
        raise ApiError("NOT_FOUND", "Department not found")

    in_use = int(
        db.execute(
            select(func.count())
            .select_from(User)
            .where(User.organizationId == row.organizationId)
            .where(User.department == str(dept.get("name") or ""))
        ).scalar()
        or 0
    )
    if in_use > 0:
        raise ApiError("CONFLICT", f"Cannot delete Department. {in_use} employee(s) are assigned to it")

    remaining = [d for d in departments if d.get("id") != dept_id]
    _save_list(db, row, "departmentsJson", remaining, auth, branding, "DEPARTMENT_DELETE", {"departmentId": dept_id})
    return {"deleted": True, "departmentId": dept_id}


def add_policy(data, auth: AuthContext, db, cfg, *, org: dict[str, Any], branding):
    row = _get_org_row(db, org["id"])
    title = str((data or {}).get("title") or "").strip()
    if not title:
        raise ApiError("VALIDATION_FAILED", "Policy title is required")

    policies = parse_json_list(row.policiesJson)
    policy = {
        "id": new_prefixed_id("POL"),
        "title": title,
        "content": str((data or {}).get("content") or ""),
        "isRequired": bool((data or {}).get("isRequired", True)),
        "order": len(policies),
        "createdAt": iso_utc_now(),
    }
    policies.append(policy)
    _save_list(db, row, "policiesJson", policies, auth, branding, "POLICY_ADD", {"policyId": policy["id"], "title": title})
    return policy


def delete_policy(data, auth: AuthContext, db, cfg, *, org: dict[str, Any], branding):
    row = _get_org_row(db, org["id"])
    policy_id = str((data or {}).get("policyId") or "").strip()
    policies = parse_json_list(row.policiesJson)
    if not any(p.get("id") == policy_id for p in policies):
        raise ApiError("NOT_FOUND", "Policy not found")

    remaining = [p for p in policies if p.get("id") != policy_id]
    for i, p in enumerate(remaining):
        p["order"] = i
    _save_list(db, row, "policiesJson", remaining, auth, branding, "POLICY_DELETE", {"policyId": policy_id})
    return {"deleted": True, "policyId": policy_id}
