"""
Typed lifecycle events, published after the emitting transaction commits.

Actions call ``emit(db, event)``; the request handler calls ``bus.flush(db)``
after ``db.commit()`` and ``bus.discard(db)`` after a rollback, so nothing is
delivered for a transition that did not persist.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from utils import iso_utc_now, new_uuid


ONBOARDING_CREATED = "onboarding.created"
ONBOARDING_RESENT = "onboarding.resent"
EMPLOYMENT_FORM_CREATED = "employment_form.created"
EMPLOYMENT_FORM_REVISION_REQUESTED = "employment_form.revision_requested"
EMPLOYMENT_FORM_APPROVED = "employment_form.approved"
CONTRACT_SENT = "contract.sent"
CONTRACT_SIGNED = "contract.signed"
APPOINTMENT_SENT = "appointment.sent"
APPOINTMENT_ACCEPTED = "appointment.accepted"
APPLICATION_OFFER = "application.offer"

EVENT_NAMES = {
    ONBOARDING_CREATED,
    ONBOARDING_RESENT,
    EMPLOYMENT_FORM_CREATED,
    EMPLOYMENT_FORM_REVISION_REQUESTED,
    EMPLOYMENT_FORM_APPROVED,
    CONTRACT_SENT,
    CONTRACT_SIGNED,
    APPOINTMENT_SENT,
    APPOINTMENT_ACCEPTED,
    APPLICATION_OFFER,
}

_PENDING_KEY = "pending_events"

_log = logging.getLogger("events")


@dataclass(frozen=True)
class LifecycleEvent:
    name: str
    organizationId: str
    entityType: str
    entityId: str
    # May carry a freshly issued raw token for the notification link.
    payload: dict[str, Any] = field(default_factory=dict, repr=False)
    eventId: str = field(default_factory=new_uuid)
    occurredAt: str = field(default_factory=iso_utc_now)


Handler = Callable[[LifecycleEvent], None]


def emit(db, event: LifecycleEvent) -> None:
    if event.name not in EVENT_NAMES:
        raise ValueError(f"Unknown event: {event.name}")
    db.info.setdefault(_PENDING_KEY, []).append(event)


def pending(db) -> list[LifecycleEvent]:
    return list(db.info.get(_PENDING_KEY) or [])


class EventBus:
    def __init__(self, runner: Callable[[Callable[[], None]], None] | None = None):
        # runner(fn) decides where handlers execute (inline, thread, ...)
        self._runner = runner or (lambda fn: fn())
        self._handlers: dict[str, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, name: str, handler: Handler) -> None:
        if name not in EVENT_NAMES:
            raise ValueError(f"Unknown event: {name}")
        with self._lock:
            self._handlers.setdefault(name, []).append(handler)

    def handlers(self, name: str) -> list[Handler]:
        with self._lock:
            return list(self._handlers.get(name) or [])

    def publish(self, event: LifecycleEvent) -> int:
        hs = self.handlers(event.name)
        for h in hs:
            self._runner(self._guarded(h, event))
        _log.info("published event=%s entity=%s:%s handlers=%s", event.name, event.entityType, event.entityId, len(hs))
        return len(hs)

    def flush(self, db) -> int:
        events = db.info.pop(_PENDING_KEY, None) or []
        delivered = 0
        for ev in events:
            delivered += self.publish(ev)
        return delivered

    def discard(self, db) -> int:
        events = db.info.pop(_PENDING_KEY, None) or []
        if events:
            _log.info("discarded %s event(s) after rollback", len(events))
        return len(events)

    @staticmethod
    def _guarded(handler: Handler, event: LifecycleEvent) -> Callable[[], None]:
        def _run() -> None:
            try:
                handler(event)
            except Exception:
                _log.exception(
                    "handler failed event=%s eventId=%s handler=%s",
                    event.name,
                    event.eventId,
                    getattr(handler, "__name__", repr(handler)),
                )

        return _run
