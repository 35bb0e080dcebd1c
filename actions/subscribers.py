"""Default event handlers: every one of them sends a single email."""

from __future__ import annotations

import logging
from typing import Any, Callable

from actions.organizations import get_branding
from db import SessionLocal
from events import (
    APPLICATION_OFFER,
    APPOINTMENT_ACCEPTED,
    APPOINTMENT_SENT,
    CONTRACT_SENT,
    CONTRACT_SIGNED,
    EMPLOYMENT_FORM_APPROVED,
    EMPLOYMENT_FORM_CREATED,
    EMPLOYMENT_FORM_REVISION_REQUESTED,
    ONBOARDING_CREATED,
    ONBOARDING_RESENT,
    LifecycleEvent,
)
from services import email_templates
from services.mailer import OutboundEmail


_log = logging.getLogger("notifications")


def _load_org(org_id: str, branding) -> dict[str, Any] | None:
    with SessionLocal() as db:
        return get_branding(db, org_id, cache=branding)


def register_subscribers(bus, *, mailer, cfg, branding) -> None:
    def deliver(event: LifecycleEvent, rendered, org: dict[str, Any] | None) -> None:
        to = str(event.payload.get("email") or "").strip()
        if not to:
            _log.warning("no recipient event=%s entity=%s", event.name, event.entityId)
            return
        from_name = ((org or {}).get("emailSettings") or {}).get("fromName") or (org or {}).get("companyName") or ""
        mailer.send(
            OutboundEmail(
                to=to,
                subject=rendered.subject,
                html=rendered.html,
                text=rendered.text,
                from_name=from_name,
                tags={"event": event.name, "entityType": event.entityType, "entityId": event.entityId},
            )
        )

    def branded(render: Callable[[dict[str, Any] | None, LifecycleEvent], Any]):
        def handler(event: LifecycleEvent) -> None:
            org = _load_org(event.organizationId, branding)
            deliver(event, render(org, event), org)

        handler.__name__ = getattr(render, "__name__", "handler")
        return handler

    def offer_letter(org, event):
        p = event.payload
        return email_templates.offer_letter(org, frontend_url=cfg.FRONTEND_URL, token=p["token"], offer=p)

    def form_request(org, event):
        p = event.payload
        return email_templates.employment_form_request(
            org,
            frontend_url=cfg.FRONTEND_URL,
            token=p["token"],
            full_name=p.get("fullName") or "",
            expires_at=p.get("expiresAt") or "",
        )

    def form_revision(org, event):
        p = event.payload
        return email_templates.employment_form_revision(
            org,
            frontend_url=cfg.FRONTEND_URL,
            token=p["token"],
            full_name=p.get("fullName") or "",
            fields=p.get("fields") or [],
            notes=p.get("notes") or "",
        )

    def form_approved(org, event):
        return email_templates.employment_form_approved(
            org, frontend_url=cfg.FRONTEND_URL, full_name=event.payload.get("fullName") or ""
        )

    def contract_ready(org, event):
        p = event.payload
        return email_templates.contract_ready(
            org,
            frontend_url=cfg.FRONTEND_URL,
            token=p["token"],
            full_name=p.get("fullName") or "",
            position=p.get("position") or "",
            expires_at=p.get("expiresAt") or "",
        )

    def contract_signed(org, event):
        p = event.payload
        return email_templates.contract_signed(
            org,
            full_name=p.get("fullName") or "",
            position=p.get("position") or "",
            signed_at=p.get("signedAt") or "",
        )

    def appointment_confirmation(org, event):
        return email_templates.appointment_accepted(org, full_name=event.payload.get("fullName") or "")

    def appointment_letter(event: LifecycleEvent) -> None:
        # Plain template: no organization branding.
        p = event.payload
        rendered = email_templates.appointment_letter(
            frontend_url=cfg.FRONTEND_URL,
            token=p["token"],
            employee_name=p.get("fullName") or "",
            content=p.get("letterContent") or {},
        )
        deliver(event, rendered, None)

    bus.subscribe(ONBOARDING_CREATED, branded(offer_letter))
    bus.subscribe(ONBOARDING_RESENT, branded(offer_letter))
    bus.subscribe(APPLICATION_OFFER, branded(offer_letter))
    bus.subscribe(EMPLOYMENT_FORM_CREATED, branded(form_request))
    bus.subscribe(EMPLOYMENT_FORM_REVISION_REQUESTED, branded(form_revision))
    bus.subscribe(EMPLOYMENT_FORM_APPROVED, branded(form_approved))
    bus.subscribe(CONTRACT_SENT, branded(contract_ready))
    bus.subscribe(CONTRACT_SIGNED, branded(contract_signed))
    bus.subscribe(APPOINTMENT_SENT, appointment_letter)
    bus.subscribe(APPOINTMENT_ACCEPTED, branded(appointment_confirmation))
