from __future__ import annotations

import logging

from sqlalchemy import delete, select

from models import Application, Candidate, EmploymentForm, Onboarding, Session as DbSession, User
from utils import ApiError, normalize_email


_log = logging.getLogger("api")


def delete_user_by_email(data, auth, db, cfg):
    """Hard delete of a test user and everything hanging off the email. Never mounted in production."""
    if cfg.IS_PRODUCTION:
        raise ApiError("FORBIDDEN", "Not available in production")
    email = normalize_email((data or {}).get("email"))
    if not email:
        raise ApiError("BAD_REQUEST", "email is required")

    org_id = str((data or {}).get("organizationId") or "").strip()
    q = select(User).where(User.email == email)
    if org_id:
        q = q.where(User.organizationId == org_id)
    users = list(db.execute(q).scalars().all())
    if not users:
        raise ApiError("NOT_FOUND", "User not found")

    counts = {"users": 0, "sessions": 0, "onboardings": 0, "employmentForms": 0, "candidates": 0, "applications": 0}
    for user in users:
        scope = user.organizationId
        counts["sessions"] += db.execute(delete(DbSession).where(DbSession.userId == user.userId)).rowcount or 0
        counts["onboardings"] += (
            db.execute(delete(Onboarding).where(Onboarding.organizationId == scope).where(Onboarding.email == email)).rowcount or 0
        )
        counts["employmentForms"] += (
            db.execute(
                delete(EmploymentForm).where(EmploymentForm.organizationId == scope).where(EmploymentForm.employeeEmail == email)
            ).rowcount
            or 0
        )
        counts["applications"] += (
            db.execute(
                delete(Application).where(Application.organizationId == scope).where(Application.candidateEmail == email)
            ).rowcount
            or 0
        )
        counts["candidates"] += (
            db.execute(delete(Candidate).where(Candidate.organizationId == scope).where(Candidate.email == email)).rowcount or 0
        )
        db.delete(user)
        counts["users"] += 1

    _log.warning("dev delete email=%s counts=%s", email, counts)
    return {"email": email, "deleted": counts}
