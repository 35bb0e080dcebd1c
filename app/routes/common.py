"""
Request plumbing shared by every blueprint.

One session per request, one lifecycle action per session, one commit. Queued
lifecycle events are published only after that commit succeeds.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from flask import current_app, g, request

from auth import require_admin, resolve_org_context, validate_session_token
from db import SessionLocal
from utils import ApiError, err, ok


_log = logging.getLogger("api")

NO_AUTH = "none"
SESSION = "session"
ADMIN = "admin"


def bearer_token() -> str:
    authz = str(request.headers.get("Authorization") or "").strip()
    if authz.lower().startswith("bearer "):
        return authz.split(" ", 1)[1].strip()
    return str(request.headers.get("X-Session-Token") or "").strip()


def body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return dict(data) if isinstance(data, dict) else {}


def query_args() -> dict[str, Any]:
    return {k: v for k, v in request.args.items()}


def _requested_org_id(data: dict[str, Any]) -> str:
    return str(
        request.headers.get("X-Organization-ID")
        or request.args.get("organizationId")
        or (data or {}).get("organizationId")
        or ""
    ).strip()


def handle(
    fn: Callable[..., Any],
    data: dict[str, Any] | None = None,
    *,
    access: str = NO_AUTH,
    with_org: bool = True,
    check_billing: bool = True,
    with_branding: bool = False,
    extra: dict[str, Any] | None = None,
    present: Callable[[Any], Any] | None = None,
    message: str = "",
    status: int = 200,
):
    cfg = current_app.config["CFG"]
    branding = current_app.extensions["branding_cache"]
    bus = current_app.extensions["event_bus"]
    data = dict(data or {})

    db = None
    try:
        db = SessionLocal()

        auth = None
        kwargs: dict[str, Any] = dict(extra or {})
        if access in {SESSION, ADMIN}:
            auth = validate_session_token(db, bearer_token(), pepper=cfg.TOKEN_PEPPER)
            if not auth.valid:
                raise ApiError("AUTH_INVALID", "Not authorized, token failed")
        if access == ADMIN:
            require_admin(auth)
            if with_org:
                kwargs["org"] = resolve_org_context(
                    db,
                    auth,
                    branding=branding,
                    requested_org_id=_requested_org_id(data),
                    check_billing=check_billing,
                )
        if with_branding:
            kwargs["branding"] = branding

        out = fn(data, auth, db, cfg, **kwargs)
        db.commit()
        bus.flush(db)

        pagination = None
        if isinstance(out, dict) and isinstance(out.get("pagination"), dict):
            out = dict(out)
            pagination = out.pop("pagination")
        if present is not None:
            out = present(out)
        return ok(out, message, status=status, pagination=pagination)
    except ApiError as e:
        if db is not None:
            db.rollback()
            bus.discard(db)
        if e.http_status >= 500:
            _log.warning("action=%s code=%s message=%s", getattr(fn, "__name__", "?"), e.code, e.message)
        return err(e.code, e.message, http_status=e.http_status)
    except Exception:
        if db is not None:
            db.rollback()
            bus.discard(db)
        request_id = str(getattr(g, "request_id", "") or "")
        _log.exception("request_id=%s action=%s", request_id, getattr(fn, "__name__", "?"))
        return err("INTERNAL", f"Unexpected error (requestId: {request_id})", http_status=500)
    finally:
        if db is not None:
            db.close()
