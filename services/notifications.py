from __future__ import annotations

import logging
import threading
from typing import Callable


_log = logging.getLogger("notifications")


class Notifier:
    """
    Runs notification work outside the request.

    ``thread`` mode starts a daemon thread per job, so the HTTP response never waits
    on SMTP. ``sync`` runs inline, which keeps tests deterministic. Jobs are expected
    to handle their own errors; anything that still escapes is logged here.
    """

    def __init__(self, mode: str = "thread"):
        self.mode = "sync" if str(mode or "").lower() == "sync" else "thread"
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    def __call__(self, job: Callable[[], None]) -> None:
        self.run(job)

    def run(self, job: Callable[[], None]) -> None:
        if self.mode == "sync":
            self._safe(job)
            return
        t = threading.Thread(target=self._safe, args=(job,), name="notify", daemon=True)
        with self._lock:
            self._threads = [x for x in self._threads if x.is_alive()]
            self._threads.append(t)
        t.start()

    def wait(self, timeout: float = 5.0) -> None:
        with self._lock:
            threads = list(self._threads)
        for t in threads:
            t.join(timeout)

    @staticmethod
    def _safe(job: Callable[[], None]) -> None:
        try:
            job()
        except Exception:
            _log.exception("notification job failed")
