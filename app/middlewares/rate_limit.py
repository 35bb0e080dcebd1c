from __future__ import annotations

from flask import Flask, current_app, request

from utils import SimpleRateLimiter


def public_token_route(fn):
    """Marks a view as reachable with a lifecycle token only (rate limited per client IP)."""
    fn._public_token_route = True
    return fn


def client_ip() -> str:
    fwd = str(request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return fwd or str(request.remote_addr or "unknown")


def init_rate_limiting(app: Flask) -> None:
    limiter = SimpleRateLimiter()
    app.extensions["rate_limiter"] = limiter

    @app.before_request
    def _limit_public_routes():
        view = current_app.view_functions.get(request.endpoint or "")
        if view is None or not getattr(view, "_public_token_route", False):
            return None
        # ApiError(RATE_LIMITED) is rendered by the error handler.
        limiter.check(f"public:{client_ip()}", current_app.config["CFG"].RATE_LIMIT_PUBLIC)
        return None
