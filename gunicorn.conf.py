import os


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except Exception:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "") or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


bind = f"0.0.0.0:{_env_int('PORT', 5000)}"
wsgi_app = "wsgi:app"

# gthread: requests mostly wait on the database and on SMTP hand-off.
worker_class = os.getenv("GUNICORN_WORKER_CLASS", "gthread").strip() or "gthread"

# The branding cache and the public-route rate limiter live in each worker process.
workers = max(1, _env_int("WEB_CONCURRENCY", 2))
threads = max(1, _env_int("PYTHON_THREADS", 4))

# Off by default: a database that is down at boot would fail the whole deploy.
preload_app = _env_bool("GUNICORN_PRELOAD_APP", False)

timeout = max(10, _env_int("GUNICORN_TIMEOUT", 120))
# Leaves room for in-flight notification threads (NOTIFY_MODE=thread) to finish.
graceful_timeout = max(5, _env_int("GUNICORN_GRACEFUL_TIMEOUT", 30))
keepalive = max(1, _env_int("GUNICORN_KEEPALIVE", 30))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info").strip().lower()

max_requests = max(0, _env_int("GUNICORN_MAX_REQUESTS", 1000))
max_requests_jitter = max(0, _env_int("GUNICORN_MAX_REQUESTS_JITTER", 50))

reload = _env_bool("GUNICORN_RELOAD", False)


def worker_exit(server, worker):
    try:
        from wsgi import app
    except Exception:
        server.log.warning("worker_exit: app not importable, skipping notifier drain")
        return
    notifier = app.extensions.get("notifier")
    if notifier is not None:
        notifier.wait(timeout=float(graceful_timeout) / 2)
