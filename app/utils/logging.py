from __future__ import annotations

import logging
import sys

from flask import g, has_request_context


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s"


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        rid = ""
        if has_request_context():
            rid = str(getattr(g, "request_id", "") or "")
        record.request_id = rid or "-"
        return True


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level or "INFO").upper(), logging.INFO))

    # Idempotent: create_app() runs once per test.
    for h in root.handlers:
        if getattr(h, "_hr_lifecycle", False):
            return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    handler._hr_lifecycle = True
    root.addHandler(handler)
