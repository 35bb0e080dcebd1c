from __future__ import annotations

import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import select

from models import Session as DbSession, User
from tokens import hash_token
from utils import ApiError, AuthContext, iso_utc_now, new_uuid, parse_datetime_maybe, to_iso_utc


ADMIN_ROLES = {"admin", "superadmin"}
ROLES = {"admin", "superadmin", "employee"}

BLOCKED_SUBSCRIPTION_STATUS = {
    "expired": ("PAYMENT_REQUIRED", "Subscription expired. Please renew to continue."),
    "cancelled": ("FORBIDDEN", "Subscription cancelled. Please contact support."),
}


def _invalid() -> AuthContext:
    return AuthContext(valid=False, userId="", email="", role="", expiresAt="")


def normalize_role(role: Any) -> str:
    r = str(role or "").strip().lower()
    return r if r in ROLES else ""


def issue_session_token(
    db,
    *,
    user: User,
    pepper: str,
    session_ttl_minutes: int,
) -> dict[str, str]:
    token = "ST-" + secrets.token_hex(32)
    now = datetime.now(timezone.utc)
    issued_at = iso_utc_now()
    expires_at = to_iso_utc(now + timedelta(minutes=session_ttl_minutes))

    db.add(
        DbSession(
            sessionId="SES-" + new_uuid(),
            tokenHash=hash_token(token, pepper),
            userId=str(user.userId or ""),
            organizationId=str(user.organizationId or ""),
            email=str(user.email or ""),
            role=normalize_role(user.role),
            issuedAt=issued_at,
            expiresAt=expires_at,
            lastSeenAt=issued_at,
            revokedAt="",
            revokedBy="",
        )
    )
    return {"sessionToken": token, "expiresAt": expires_at}


def revoke_session(db, token: Any, *, pepper: str, revoked_by: str = "") -> bool:
    if not token or not isinstance(token, str):
        return False
    ses = db.execute(select(DbSession).where(DbSession.tokenHash == hash_token(token, pepper))).scalar_one_or_none()
    if not ses or ses.revokedAt:
        return False
    ses.revokedAt = iso_utc_now()
    ses.revokedBy = str(revoked_by or ses.userId or "")
    return True


def revoke_user_sessions(db, *, user_id: str, revoked_by: str) -> int:
    """Revoke all active sessions for a user (deactivation, revoked offers)."""
    uid = str(user_id or "").strip()
    if not uid:
        return 0

    now = iso_utc_now()
    rows = (
        db.execute(select(DbSession).where(DbSession.userId == uid).where(DbSession.revokedAt == ""))
        .scalars()
        .all()
    )
    for s in rows:
        s.revokedAt = now
        s.revokedBy = str(revoked_by or "")
    return len(rows)


def validate_session_token(db, token: Any, *, pepper: str) -> AuthContext:
    if not token or not isinstance(token, str):
        return _invalid()

    ses = db.execute(select(DbSession).where(DbSession.tokenHash == hash_token(token, pepper))).scalar_one_or_none()
    if not ses:
        return _invalid()

    expires_at = getattr(ses, "expiresAt", "") or ""
    exp_dt = parse_datetime_maybe(expires_at)
    if not exp_dt or exp_dt < datetime.now(timezone.utc):
        return _invalid()

    if getattr(ses, "revokedAt", ""):
        return _invalid()

    usr = db.execute(select(User).where(User.userId == ses.userId)).scalar_one_or_none()
    if not usr:
        return _invalid()
    if not bool(usr.isActive):
        raise ApiError("FORBIDDEN", "Account is deactivated")

    # Avoid writing on every request: update lastSeenAt at most once per interval.
    try:
        interval_s = int(str(os.getenv("SESSION_LAST_SEEN_UPDATE_SECONDS", "300") or "300"))
    except Exception:
        interval_s = 300

    last_dt = parse_datetime_maybe(getattr(ses, "lastSeenAt", "") or "")
    if interval_s <= 0 or not last_dt or (datetime.now(timezone.utc) - last_dt).total_seconds() >= interval_s:
        ses.lastSeenAt = iso_utc_now()

    return AuthContext(
        valid=True,
        userId=str(usr.userId or ""),
        email=str(usr.email or ""),
        role=normalize_role(usr.role),
        expiresAt=expires_at,
        organizationId=str(usr.organizationId or ""),
        sessionId=str(ses.sessionId or ""),
    )


def require_admin(auth: Optional[AuthContext]) -> AuthContext:
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Not authorized, no token")
    if auth.role not in ADMIN_ROLES:
        raise ApiError("FORBIDDEN", f"Not allowed for role: {auth.role or 'unknown'}")
    return auth


def check_subscription(org: dict[str, Any]) -> None:
    status = str(org.get("subscriptionStatus") or "").lower()
    blocked = BLOCKED_SUBSCRIPTION_STATUS.get(status)
    if blocked:
        raise ApiError(blocked[0], blocked[1])


def resolve_org_context(
    db,
    auth: AuthContext,
    *,
    branding,
    requested_org_id: str = "",
    check_billing: bool = True,
) -> dict[str, Any]:
    """
    Returns the organization snapshot the admin acts within.

    Superadmins may name any organization; everyone else is pinned to their own.
    """
    from actions.organizations import get_branding

    require_admin(auth)
    org_id = str(auth.organizationId or "").strip()
    if auth.role == "superadmin":
        org_id = str(requested_org_id or "").strip() or org_id
        if not org_id:
            raise ApiError("BAD_REQUEST", "organizationId is required for superadmin requests")

    if not org_id:
        raise ApiError("FORBIDDEN", "User is not linked to an organization")

    org = get_branding(db, org_id, cache=branding)
    if not org:
        raise ApiError("NOT_FOUND", "Organization not found")
    if check_billing and auth.role != "superadmin":
        check_subscription(org)
    return org


def assert_same_org(auth: AuthContext, org_id: str, record_org_id: str) -> None:
    if auth.role == "superadmin":
        return
    if str(record_org_id or "") != str(org_id or ""):
        raise ApiError("FORBIDDEN", "Access to this record is not allowed")
