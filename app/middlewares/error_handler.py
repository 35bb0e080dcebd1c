from __future__ import annotations

import logging

from flask import Flask, g
from werkzeug.exceptions import HTTPException

from utils import ApiError, err


_log = logging.getLogger("api")

_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "AUTH_INVALID",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "BAD_REQUEST",
    409: "CONFLICT",
    413: "BAD_REQUEST",
    429: "RATE_LIMITED",
}


def init_error_handlers(app: Flask) -> None:
    cfg = app.config["CFG"]

    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):
        return err(e.code, e.message, http_status=e.http_status)

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        status = int(e.code or 500)
        return err(_HTTP_CODES.get(status, "INTERNAL"), e.description or e.name, http_status=status)

    @app.errorhandler(Exception)
    def _unexpected(e: Exception):
        request_id = str(getattr(g, "request_id", "") or "")
        _log.exception("unhandled error request_id=%s", request_id)
        if cfg.IS_PRODUCTION:
            msg = f"Unexpected error (requestId: {request_id})"
        else:
            msg = f"Unexpected error: {type(e).__name__} (requestId: {request_id})"
        return err("INTERNAL", msg, http_status=500)
