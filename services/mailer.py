from __future__ import annotations

import logging
import smtplib
import threading
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any

from utils import iso_utc_now


_log = logging.getLogger("mailer")


@dataclass(frozen=True)
class OutboundEmail:
    to: str
    subject: str
    html: str
    text: str = ""
    from_name: str = ""
    # Free-form labels for logs and tests (event name, entity id).
    tags: dict[str, Any] = field(default_factory=dict)


def build_mime(msg: OutboundEmail, *, from_email: str, default_from_name: str) -> MIMEMultipart:
    mime = MIMEMultipart("alternative")
    mime["From"] = formataddr((msg.from_name or default_from_name, from_email))
    mime["To"] = msg.to
    mime["Subject"] = msg.subject
    if msg.text:
        mime.attach(MIMEText(msg.text, "plain", "utf-8"))
    mime.attach(MIMEText(msg.html, "html", "utf-8"))
    return mime


def smtp_send(
    *,
    host: str,
    port: int,
    username: str,
    password: str,
    use_tls: bool,
    timeout: int,
    from_email: str,
    to: str,
    message: str,
) -> None:
    if port == 465:
        server = smtplib.SMTP_SSL(host, port, timeout=timeout)
    else:
        server = smtplib.SMTP(host, port, timeout=timeout)
        if use_tls:
            server.starttls()
    try:
        if username:
            server.login(username, password)
        server.sendmail(from_email, [to], message)
    finally:
        server.quit()


class SmtpMailer:
    name = "smtp"

    def __init__(self, cfg):
        self.cfg = cfg

    def send(self, msg: OutboundEmail) -> None:
        mime = build_mime(msg, from_email=self.cfg.FROM_EMAIL, default_from_name=self.cfg.FROM_NAME)
        smtp_send(
            host=self.cfg.SMTP_HOST,
            port=self.cfg.SMTP_PORT,
            username=self.cfg.SMTP_USER,
            password=self.cfg.SMTP_PASS,
            use_tls=self.cfg.SMTP_USE_TLS,
            timeout=self.cfg.SMTP_TIMEOUT_SECONDS,
            from_email=self.cfg.FROM_EMAIL,
            to=msg.to,
            message=mime.as_string(),
        )
        _log.info("email sent via smtp to=%s subject=%r", msg.to, msg.subject)


class ConsoleMailer:
    name = "console"

    def send(self, msg: OutboundEmail) -> None:
        _log.info("email (console) to=%s subject=%r tags=%s", msg.to, msg.subject, msg.tags)


class MemoryMailer:
    """Keeps every message in ``outbox``; used by tests."""

    name = "memory"

    def __init__(self):
        self.outbox: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def send(self, msg: OutboundEmail) -> None:
        with self._lock:
            self.outbox.append(
                {
                    "to": msg.to,
                    "subject": msg.subject,
                    "html": msg.html,
                    "text": msg.text,
                    "fromName": msg.from_name,
                    "tags": dict(msg.tags),
                    "sentAt": iso_utc_now(),
                }
            )

    def messages_to(self, email: str) -> list[dict[str, Any]]:
        with self._lock:
            return [m for m in self.outbox if m["to"] == email]

    def clear(self) -> None:
        with self._lock:
            self.outbox.clear()


class CeleryMailer:
    """Hands the message to a worker; SMTP delivery and retries happen there."""

    name = "celery"

    def send(self, msg: OutboundEmail) -> None:
        from app.tasks.email_tasks import send_email_task

        result = send_email_task.delay(
            to=msg.to,
            subject=msg.subject,
            html=msg.html,
            text=msg.text,
            from_name=msg.from_name,
        )
        _log.info("email queued to=%s subject=%r task=%s", msg.to, msg.subject, result.id)


def build_mailer(cfg):
    backend = str(cfg.MAIL_BACKEND or "console").lower()
    if backend == "smtp":
        return SmtpMailer(cfg)
    if backend == "memory":
        return MemoryMailer()
    if backend == "celery":
        return CeleryMailer()
    return ConsoleMailer()
