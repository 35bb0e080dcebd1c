from __future__ import annotations

import json
import math
import re
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from flask import jsonify


_DEFAULT_HTTP_STATUS = {
    "BAD_REQUEST": 400,
    "VALIDATION_FAILED": 400,
    "AUTH_INVALID": 401,
    "PAYMENT_REQUIRED": 402,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "EXPIRED": 410,
    "RATE_LIMITED": 429,
    "INTERNAL": 500,
    "NOT_IMPLEMENTED": 501,
    "DEPENDENCY_FAILURE": 502,
}


class ApiError(Exception):
    def __init__(self, code: str, message: str, http_status: int | None = None):
        super().__init__(message)
        self.code = str(code or "INTERNAL").upper()
        self.message = str(message or "")
        self.http_status = int(http_status or _DEFAULT_HTTP_STATUS.get(self.code, 400))


@dataclass
class AuthContext:
    valid: bool
    userId: str
    email: str
    role: str
    expiresAt: str
    organizationId: str = ""
    sessionId: str = ""


def ok(data: Any = None, message: str = "", *, status: int = 200, pagination: dict | None = None):
    body: dict[str, Any] = {"success": True, "message": message or "OK", "data": data}
    if pagination is not None:
        body["pagination"] = pagination
    return jsonify(body), status


def err(code: str, message: str, *, http_status: int = 400):
    return jsonify({"success": False, "error": str(message or ""), "code": str(code or "")}), http_status


def pagination_block(*, page: int, limit: int, total: int) -> dict[str, Any]:
    pages = int(math.ceil(total / limit)) if limit > 0 else 0
    return {
        "currentPage": page,
        "totalPages": pages,
        "totalItems": total,
        "itemsPerPage": limit,
        "hasNext": page * limit < total,
        "hasPrev": page > 1,
    }


def parse_page_args(args: Any, *, default_limit: int = 10, max_limit: int = 100) -> tuple[int, int]:
    try:
        page = int(str(args.get("page") or "1"))
    except Exception:
        page = 1
    try:
        limit = int(str(args.get("limit") or default_limit))
    except Exception:
        limit = default_limit
    return max(1, page), max(1, min(max_limit, limit))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso_utc(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def iso_utc_now() -> str:
    return to_iso_utc(utc_now())


def parse_datetime_maybe(value: Any) -> Optional[datetime]:
    s = str(value or "").strip()
    if not s:
        return None
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def new_uuid() -> str:
    return str(uuid.uuid4())


def new_prefixed_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16].upper()}"


def now_monotonic() -> float:
    return time.monotonic()


_EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")


def normalize_email(value: Any) -> str:
    return str(value or "").strip().lower()


def is_valid_email(value: Any) -> bool:
    return bool(_EMAIL_RE.fullmatch(str(value or "").strip()))


def parse_json_object(raw: Any, fallback: dict | None = None) -> dict:
    if isinstance(raw, dict):
        return raw
    try:
        val = json.loads(str(raw or ""))
    except (TypeError, ValueError):
        return dict(fallback or {})
    return val if isinstance(val, dict) else dict(fallback or {})


def parse_json_list(raw: Any) -> list:
    if isinstance(raw, list):
        return raw
    try:
        val = json.loads(str(raw or ""))
    except (TypeError, ValueError):
        return []
    return val if isinstance(val, list) else []


_REDACT_KEYS = {"password", "token", "signature", "employeesignature", "passwordhash", "cnicnumber", "cnicfrontimage", "cnicbackimage"}


def redact_for_audit(value: Any) -> Any:
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if str(k).lower() in _REDACT_KEYS:
                out[k] = "***"
            else:
                out[k] = redact_for_audit(v)
        return out
    if isinstance(value, list):
        return [redact_for_audit(v) for v in value[:50]]
    if isinstance(value, str) and len(value) > 500:
        return value[:500] + "..."
    return value


class SimpleRateLimiter:
    """Sliding one-minute window per key, in-process only."""

    def __init__(self, window_seconds: float = 60.0):
        self._window = float(window_seconds)
        self._hits: dict[str, deque] = {}
        self._lock = threading.Lock()

    def check(self, key: str, limit_per_window: int) -> None:
        now = now_monotonic()
        with self._lock:
            q = self._hits.setdefault(key, deque())
            while q and now - q[0] > self._window:
                q.popleft()
            if len(q) >= int(limit_per_window):
                raise ApiError("RATE_LIMITED", "Too many requests. Please try again shortly.")
            q.append(now)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
