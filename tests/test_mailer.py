from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import patch

from services import email_templates
from services.mailer import CeleryMailer, MemoryMailer, OutboundEmail, SmtpMailer, build_mailer, build_mime


ORG = {
    "companyName": "Acme Corp",
    "logo": "",
    "theme": {"primaryColor": "#111111", "accentColor": "#222222"},
    "emailSettings": {"fromName": "Acme HR", "footerText": ""},
}


def _cfg(**overrides):
    base = dict(
        MAIL_BACKEND="smtp",
        SMTP_HOST="smtp.test",
        SMTP_PORT=587,
        SMTP_USER="mailer@acme.test",
        SMTP_PASS="pw",
        SMTP_USE_TLS=True,
        SMTP_TIMEOUT_SECONDS=5,
        FROM_EMAIL="no-reply@acme.test",
        FROM_NAME="HR Team",
    )
    base.update(overrides)
    return SimpleNamespace(**base)


def test_build_mailer_picks_backend():
    assert build_mailer(_cfg()).name == "smtp"
    assert build_mailer(_cfg(MAIL_BACKEND="memory")).name == "memory"
    assert build_mailer(_cfg(MAIL_BACKEND="celery")).name == "celery"
    assert build_mailer(_cfg(MAIL_BACKEND="console")).name == "console"


def test_mime_uses_org_sender_name():
    msg = OutboundEmail(to="ada@x.com", subject="Hi", html="<p>Hi</p>", text="Hi", from_name="Acme HR")
    mime = build_mime(msg, from_email="no-reply@acme.test", default_from_name="HR Team")
    assert mime["From"] == "Acme HR <no-reply@acme.test>"
    assert mime["To"] == "ada@x.com"
    assert len(mime.get_payload()) == 2


def test_smtp_mailer_starttls_and_login():
    with patch("services.mailer.smtplib.SMTP") as smtp:
        SmtpMailer(_cfg()).send(OutboundEmail(to="ada@x.com", subject="Hi", html="<p>Hi</p>"))

    server = smtp.return_value
    smtp.assert_called_once_with("smtp.test", 587, timeout=5)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer@acme.test", "pw")
    assert server.sendmail.call_args[0][:2] == ("no-reply@acme.test", ["ada@x.com"])
    server.quit.assert_called_once()


def test_smtp_port_465_uses_ssl():
    with patch("services.mailer.smtplib.SMTP_SSL") as smtp_ssl:
        SmtpMailer(_cfg(SMTP_PORT=465)).send(OutboundEmail(to="ada@x.com", subject="Hi", html="<p>Hi</p>"))
    smtp_ssl.return_value.starttls.assert_not_called()
    smtp_ssl.return_value.sendmail.assert_called_once()


def test_celery_mailer_enqueues():
    with patch("app.tasks.email_tasks.send_email_task") as task:
        CeleryMailer().send(OutboundEmail(to="ada@x.com", subject="Hi", html="<p>Hi</p>", from_name="Acme HR"))
    kwargs = task.delay.call_args.kwargs
    assert kwargs["to"] == "ada@x.com"
    assert kwargs["from_name"] == "Acme HR"


def test_email_task_delivers_over_smtp(monkeypatch):
    monkeypatch.setenv("FROM_EMAIL", "no-reply@acme.test")
    from app.tasks.email_tasks import send_email_task

    with patch("app.tasks.email_tasks.smtp_send") as smtp_send:
        result = send_email_task.apply(kwargs={"to": "ada@x.com", "subject": "Hi", "html": "<p>Hi</p>"})

    assert result.get()["status"] == "sent"
    assert smtp_send.call_args.kwargs["to"] == "ada@x.com"
    assert smtp_send.call_args.kwargs["from_email"] == "no-reply@acme.test"


def test_memory_mailer_outbox():
    mailer = MemoryMailer()
    mailer.send(OutboundEmail(to="ada@x.com", subject="One", html="1", tags={"event": "x"}))
    mailer.send(OutboundEmail(to="bob@x.com", subject="Two", html="2"))
    assert [m["subject"] for m in mailer.messages_to("ada@x.com")] == ["One"]
    mailer.clear()
    assert mailer.outbox == []


def test_offer_letter_rendering_escapes_names():
    rendered = email_templates.offer_letter(
        ORG,
        frontend_url="http://frontend.test",
        token="a" * 64,
        offer={"fullName": "<script>x</script>", "designation": "Engineer", "salary": 123456, "joiningDate": "2026-01-05T00:00:00.000Z"},
    )
    assert rendered.subject == "Offer Letter - Welcome to Acme Corp"
    assert "<script>x</script>" not in rendered.html
    assert "&lt;script&gt;" in rendered.html
    assert "PKR 123,456" in rendered.html
    assert "January 5, 2026" in rendered.html
    assert "http://frontend.test/onboarding/" + "a" * 64 in rendered.html


def test_revision_email_lists_fields():
    rendered = email_templates.employment_form_revision(
        ORG,
        frontend_url="http://frontend.test",
        token="b" * 64,
        full_name="Ada",
        fields=["cnicInfo.cnicNumber", "addresses.current"],
        notes="",
    )
    assert "<li>cnicInfo.cnicNumber</li>" in rendered.html
    assert "Notes from HR" not in rendered.html


def test_unbranded_fallbacks():
    rendered = email_templates.appointment_accepted(None, full_name="Dan")
    assert "Your Company" in rendered.html
    assert email_templates.format_salary("n/a") == "n/a"
    assert email_templates.format_date("") == ""
