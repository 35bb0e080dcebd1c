"""
Outbound email delivery for MAIL_BACKEND=celery.

The web process renders the message and enqueues it; the worker only talks SMTP.
"""
from __future__ import annotations

import logging
import smtplib

from app.tasks import celery_app
from config import Config
from services.mailer import OutboundEmail, build_mime, smtp_send


_log = logging.getLogger("mailer")


@celery_app.task(
    bind=True,
    autoretry_for=(smtplib.SMTPException, OSError),
    retry_backoff=True,
    retry_backoff_max=600,
    max_retries=5,
)
def send_email_task(self, to: str, subject: str, html: str, text: str = "", from_name: str = ""):
    cfg = Config()
    msg = OutboundEmail(to=to, subject=subject, html=html, text=text, from_name=from_name)
    mime = build_mime(msg, from_email=cfg.FROM_EMAIL, default_from_name=cfg.FROM_NAME)
    smtp_send(
        host=cfg.SMTP_HOST,
        port=cfg.SMTP_PORT,
        username=cfg.SMTP_USER,
        password=cfg.SMTP_PASS,
        use_tls=cfg.SMTP_USE_TLS,
        timeout=cfg.SMTP_TIMEOUT_SECONDS,
        from_email=cfg.FROM_EMAIL,
        to=to,
        message=mime.as_string(),
    )
    _log.info("email delivered task=%s to=%s attempt=%s", self.request.id, to, self.request.retries + 1)
    return {"task_id": self.request.id, "to": to, "status": "sent"}
