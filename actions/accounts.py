from __future__ import annotations

import json
from typing import Any

from sqlalchemy import select

from auth import revoke_user_sessions
from models import User
from passwords import hash_password, unusable_password_hash
from utils import ApiError, new_prefixed_id, parse_json_object


SOCIAL_KEYS = ("github", "linkedin")


def find_user(db, *, org_id: str, email: str) -> User | None:
    return (
        db.execute(select(User).where(User.organizationId == org_id).where(User.email == email))
        .scalars()
        .first()
    )


def get_user(db, user_id: str) -> User | None:
    if not user_id:
        return None
    return db.execute(select(User).where(User.userId == user_id)).scalar_one_or_none()


def provision_placeholder(db, *, org_id: str, profile: dict[str, Any], actor: str, now: str) -> User:
    """
    Inactive employee account holding the offer snapshot until onboarding completes.

    An existing inactive account with the same email is reused; an active one is a conflict.
    """
    email = profile["email"]
    user = find_user(db, org_id=org_id, email=email)
    if user and bool(user.isActive):
        raise ApiError("CONFLICT", "User already exists with this email", http_status=400)

    if not user:
        user = User(
            userId=new_prefixed_id("USR"),
            organizationId=org_id,
            email=email,
            role="employee",
            isEmailVerified=False,
            profileJson="{}",
            createdAt=now,
            createdBy=actor,
        )
        db.add(user)

    user.fullName = profile["fullName"]
    user.passwordHash = unusable_password_hash()
    user.isActive = False
    user.phone = profile.get("phone") or ""
    user.designation = profile.get("designation") or ""
    user.department = profile.get("department") or ""
    user.salary = float(profile.get("salary") or 0)
    user.joiningDate = profile.get("joiningDate") or ""
    user.updatedAt = now
    user.updatedBy = actor
    return user


def _merge_profile(user: User, changes: dict[str, Any]) -> None:
    profile = parse_json_object(user.profileJson)
    for key, val in changes.items():
        if isinstance(val, dict):
            merged = dict(profile.get(key) or {})
            merged.update(val)
            profile[key] = merged
        else:
            profile[key] = val
    user.profileJson = json.dumps(profile)


def activate_account(
    user: User,
    *,
    password: str = "",
    social: dict[str, str] | None = None,
    profile: dict[str, Any] | None = None,
    actor: str,
    now: str,
) -> None:
    if password:
        user.passwordHash = hash_password(password)

    changes: dict[str, Any] = dict(profile or {})
    links = {k: str(v) for k, v in (social or {}).items() if k in SOCIAL_KEYS and v}
    if links:
        changes["socialLinks"] = links
    if changes:
        _merge_profile(user, changes)

    user.isActive = True
    user.isEmailVerified = True
    user.updatedAt = now
    user.updatedBy = actor


def deactivate_account(db, user_id: str, *, actor: str, now: str) -> bool:
    user = get_user(db, user_id)
    if not user:
        return False
    user.isActive = False
    user.updatedAt = now
    user.updatedBy = actor
    revoke_user_sessions(db, user_id=user.userId, revoked_by=actor)
    return True


def serialize_user(user: User) -> dict[str, Any]:
    return {
        "id": user.userId,
        "organizationId": user.organizationId or "",
        "fullName": user.fullName or "",
        "email": user.email or "",
        "role": user.role or "",
        "designation": user.designation or "",
        "department": user.department or "",
        "salary": user.salary,
        "joiningDate": user.joiningDate or "",
        "isActive": bool(user.isActive),
        "isEmailVerified": bool(user.isEmailVerified),
        "profile": parse_json_object(user.profileJson),
    }
