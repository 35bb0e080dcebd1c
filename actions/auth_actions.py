from __future__ import annotations

from sqlalchemy import select

from actions.accounts import get_user, serialize_user
from actions.helpers import append_audit
from auth import issue_session_token, normalize_role, revoke_session
from models import User
from passwords import verify_password
from utils import ApiError, AuthContext, iso_utc_now, normalize_email


def _candidates_for_login(db, email: str, org_id: str) -> list[User]:
    q = select(User).where(User.email == email)
    if org_id:
        q = q.where(User.organizationId == org_id)
    return list(db.execute(q.order_by(User.createdAt.asc())).scalars().all())


def login(data, auth: AuthContext | None, db, cfg):
    data = data or {}
    email = normalize_email(data.get("email"))
    password = str(data.get("password") or "")
    org_id = str(data.get("organizationId") or "").strip()
    if not email or not password:
        raise ApiError("BAD_REQUEST", "Email and password are required")
    if len(password) > 256:
        raise ApiError("BAD_REQUEST", "Password is too long")

    # The same email may exist in several organizations; the password picks the account.
    user = next((u for u in _candidates_for_login(db, email, org_id) if verify_password(password, u.passwordHash)), None)
    if not user:
        raise ApiError("AUTH_INVALID", "Invalid email or password")
    if not bool(user.isActive):
        raise ApiError("FORBIDDEN", "Account is not active. Complete onboarding first.")

    ses = issue_session_token(db, user=user, pepper=cfg.TOKEN_PEPPER, session_ttl_minutes=cfg.SESSION_TTL_MINUTES)
    now = iso_utc_now()
    user.lastLoginAt = now

    append_audit(
        db,
        entityType="AUTH",
        entityId=str(user.userId),
        action="LOGIN",
        stageTag="AUTH_LOGIN",
        actor=AuthContext(
            valid=True,
            userId=user.userId,
            email=user.email,
            role=normalize_role(user.role),
            expiresAt=ses["expiresAt"],
            organizationId=user.organizationId,
        ),
        at=now,
        organizationId=user.organizationId,
    )

    return {
        "sessionToken": ses["sessionToken"],
        "expiresAt": ses["expiresAt"],
        "me": serialize_user(user),
    }


def logout(data, auth: AuthContext | None, db, cfg, *, token: str = ""):
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Not authorized, no token")
    revoked = revoke_session(db, token, pepper=cfg.TOKEN_PEPPER, revoked_by=auth.userId)
    if revoked:
        append_audit(
            db,
            entityType="AUTH",
            entityId=auth.userId,
            action="LOGOUT",
            stageTag="AUTH_LOGOUT",
            actor=auth,
            at=iso_utc_now(),
        )
    return {"loggedOut": True}


def me(data, auth: AuthContext | None, db, cfg):
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Not authorized, no token")
    user = get_user(db, auth.userId)
    if not user:
        raise ApiError("AUTH_INVALID", "User not found")
    out = serialize_user(user)
    out["expiresAt"] = auth.expiresAt
    return out
