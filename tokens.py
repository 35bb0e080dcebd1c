"""
Opaque bearer tokens for public, link-based access to one lifecycle record.

Only ``HMAC-SHA256(pepper, raw)`` is stored. The raw value leaves the process
once, in the response or email of the call that issued it.
"""
from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import select

from utils import parse_datetime_maybe, to_iso_utc, utc_now


DEFAULT_TTL_DAYS = 7


@dataclass(frozen=True)
class IssuedToken:
    raw: str
    hash: str
    expires_at: str


def hash_token(raw: str, pepper: str) -> str:
    return hmac.new(str(pepper or "").encode("utf-8"), str(raw or "").encode("utf-8"), hashlib.sha256).hexdigest()


def issue_token(pepper: str, *, ttl_days: int = DEFAULT_TTL_DAYS, now: datetime | None = None) -> IssuedToken:
    raw = secrets.token_hex(32)
    expires = (now or utc_now()) + timedelta(days=int(ttl_days))
    return IssuedToken(raw=raw, hash=hash_token(raw, pepper), expires_at=to_iso_utc(expires))


def assign_token(row: Any, pepper: str, *, ttl_days: int = DEFAULT_TTL_DAYS, now: datetime | None = None) -> str:
    """Stores a fresh token hash and expiry on ``row`` and returns the raw value."""
    issued = issue_token(pepper, ttl_days=ttl_days, now=now)
    row.tokenHash = issued.hash
    row.tokenExpiry = issued.expires_at
    return issued.raw


def resolve_token(db, model, raw: Any, pepper: str, *, statuses: set[str] | None = None):
    """
    Returns the row whose stored hash matches ``raw``, or None.

    A wrong token and a missing record look the same to the caller.
    """
    if not raw or not isinstance(raw, str) or not raw.strip():
        return None
    q = select(model).where(model.tokenHash == hash_token(raw.strip(), pepper))
    if statuses:
        q = q.where(model.status.in_(sorted(statuses)))
    return db.execute(q).scalars().first()


def is_expired(expiry: Any, now: Optional[datetime] = None) -> bool:
    """Strict comparison: an expiry equal to ``now`` is still valid."""
    exp_dt = expiry if isinstance(expiry, datetime) else parse_datetime_maybe(expiry)
    if exp_dt is None:
        return True
    return exp_dt < (now or utc_now())


def token_fingerprint(raw: str) -> str:
    """Short correlation handle for logs."""
    return hashlib.sha256(str(raw or "").encode("utf-8")).hexdigest()[:10]
