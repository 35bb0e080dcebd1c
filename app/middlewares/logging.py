from __future__ import annotations

import logging

from flask import Flask, g, request

from utils import now_monotonic


_log = logging.getLogger("api")


def init_request_logging(app: Flask) -> None:
    @app.after_request
    def _log_request(resp):
        started = getattr(g, "start_ts", None)
        latency_ms = int((now_monotonic() - started) * 1000) if started is not None else -1
        # url_rule keeps bearer tokens in the path out of the log line.
        path = request.url_rule.rule if request.url_rule is not None else request.path
        _log.info("%s %s status=%s latency_ms=%s", request.method, path, resp.status_code, latency_ms)
        return resp
