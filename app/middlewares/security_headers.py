from __future__ import annotations

from flask import Flask


def init_security_headers(app: Flask) -> None:
    cfg = app.config["CFG"]

    @app.after_request
    def _security_headers(resp):
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        # Token links must not end up in shared caches.
        resp.headers.setdefault("Cache-Control", "no-store")
        if cfg.IS_PRODUCTION:
            resp.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return resp
