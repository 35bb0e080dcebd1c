"""
Outbound email rendering.

Every lifecycle email is wrapped in the organization-branded layout, except the
appointment letter which keeps its own plain template.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape

from utils import parse_datetime_maybe


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


_LAYOUT = """<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><title>{{ subject }}</title></head>
  <body style="background-color:#f6f8fb;font-family:-apple-system,'Segoe UI',Roboto,Arial,sans-serif;">
    <div style="margin:40px auto;width:600px;background:#ffffff;border-radius:12px;overflow:hidden;">
      <div style="padding:28px 24px;text-align:center;color:#fff;background:linear-gradient(135deg, {{ primary }} 0%, {{ accent }} 100%);">
        {% if logo %}<img src="{{ logo }}" alt="{{ company }}" width="56" height="56" style="border-radius:12px;display:block;margin:0 auto 10px auto;">{% endif %}
        <p style="margin:0;font-size:22px;font-weight:700;">{{ company }}</p>
        <p style="margin:6px 0 0 0;opacity:0.85;font-size:12px;">Hiring &amp; Onboarding</p>
      </div>
      <div style="padding:24px 32px;color:#111827;">
        {% block content %}{% endblock %}
      </div>
      <div style="padding:20px;text-align:center;">
        <hr style="border-color:#e5e7eb;margin:0 0 12px 0;">
        <p style="color:#6b7280;font-size:12px;margin:0;">&copy; {{ year }} {{ company }}. All rights reserved.</p>
        {% if footer_text %}<p style="color:#9ca3af;font-size:11px;margin-top:6px;">{{ footer_text }}</p>{% endif %}
        <p style="color:#9ca3af;font-size:11px;margin-top:6px;">This is an automated email. Please do not reply.</p>
      </div>
    </div>
  </body>
</html>
"""

_BUTTON = (
    '<p style="text-align:center;margin:28px 0;">'
    '<a href="{{ url }}" style="background:{{ primary }};color:#fff;padding:12px 24px;border-radius:8px;text-decoration:none;">'
    "{{ label }}</a></p>"
)

_TEMPLATES = {
    "layout.html": _LAYOUT,
    "offer_letter.html": """{% extends "layout.html" %}{% block content %}
<h2 style="margin-top:0;">Congratulations, {{ full_name }}!</h2>
<p>Dear <strong>{{ full_name }}</strong>,</p>
<p>We are pleased to extend this offer of employment to you. After careful consideration, we believe you will be an excellent addition to our team.</p>
<table style="width:100%;border-collapse:collapse;margin:16px 0;">
  <tr><td style="color:#6b7280;padding:6px 0;">Position</td><td style="font-weight:600;">{{ designation }}</td></tr>
  <tr><td style="color:#6b7280;padding:6px 0;">Department</td><td style="font-weight:600;">{{ department or "To be assigned" }}</td></tr>
  <tr><td style="color:#6b7280;padding:6px 0;">Compensation</td><td style="font-weight:600;">{{ salary }} per month</td></tr>
  <tr><td style="color:#6b7280;padding:6px 0;">Joining Date</td><td style="font-weight:600;">{{ joining_date }}</td></tr>
</table>
""" + _BUTTON.replace("{{ label }}", "Review Your Offer Letter") + """
<p style="color:#6b7280;font-size:13px;">This link expires on {{ expires_at }}. Please accept or decline before then.</p>
{% endblock %}""",
    "employment_form.html": """{% extends "layout.html" %}{% block content %}
<h2 style="margin-top:0;">Complete your employment form</h2>
<p>Hi {{ full_name or "there" }},</p>
<p>To continue your onboarding with {{ company }}, please fill in your personal, identity and contact details.</p>
""" + _BUTTON.replace("{{ label }}", "Complete Employment Form") + """
<p style="color:#6b7280;font-size:13px;">This link expires on {{ expires_at }}.</p>
{% endblock %}""",
    "employment_form_revision.html": """{% extends "layout.html" %}{% block content %}
<h2 style="margin-top:0;">Please update your employment form</h2>
<p>Hi {{ full_name or "there" }},</p>
<p>Our HR team reviewed your employment form and needs a few changes before it can be approved.</p>
{% if fields %}<p><strong>Fields to update:</strong></p>
<ul>{% for f in fields %}<li>{{ f }}</li>{% endfor %}</ul>{% endif %}
{% if notes %}<p><strong>Notes from HR:</strong> {{ notes }}</p>{% endif %}
""" + _BUTTON.replace("{{ label }}", "Update Employment Form") + """
{% endblock %}""",
    "employment_form_approved.html": """{% extends "layout.html" %}{% block content %}
<h2 style="margin-top:0;">Your employment form is approved</h2>
<p>Hi {{ full_name or "there" }},</p>
<p>Thank you for completing your employment form. HR will send your appointment details and contract for review shortly.</p>
""" + _BUTTON.replace("{{ label }}", "Go to Employee Portal") + """
{% endblock %}""",
    "contract.html": """{% extends "layout.html" %}{% block content %}
<h2 style="margin-top:0;">Your employment contract is ready</h2>
<p>Dear {{ full_name or "there" }},</p>
<p>Your employment contract{% if position %} for the <strong>{{ position }}</strong> position{% endif %} is ready. Please review the terms and sign it online.</p>
""" + _BUTTON.replace("{{ label }}", "Review and Sign Contract") + """
<p style="color:#6b7280;font-size:13px;">This link expires on {{ expires_at }}.</p>
{% endblock %}""",
    "contract_signed.html": """{% extends "layout.html" %}{% block content %}
<h2 style="margin-top:0;">Contract signed</h2>
<p>Dear {{ full_name or "there" }},</p>
<p>Thank you for signing your employment contract{% if position %} for the <strong>{{ position }}</strong> position{% endif %} with {{ company }}. We have recorded your signature on {{ signed_at }}.</p>
<p>Our HR team will be in touch with the next steps of your onboarding.</p>
{% endblock %}""",
    "appointment_accepted.html": """{% extends "layout.html" %}{% block content %}
<h2 style="margin-top:0;">Offer Accepted!</h2>
<p>Dear {{ full_name }},</p>
<p>We have successfully received your acceptance of the appointment letter. Our HR team will reach out with the next steps of your onboarding.</p>
{% endblock %}""",
    "appointment_letter.html": """<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><title>{{ subject }}</title></head>
  <body style="font-family:Arial,sans-serif;line-height:1.6;color:#333;max-width:600px;margin:0 auto;padding:20px;">
    <div style="background-color:#f8f9fa;padding:20px;text-align:center;border-radius:5px;margin-bottom:20px;">
      <h1>{{ subject }}</h1>
    </div>
    <div style="padding:20px;background-color:#ffffff;border:1px solid #e9ecef;border-radius:5px;">
      <p>{{ greeting }} {{ employee_name }},</p>
      <p>{{ body }}</p>
      <p style="text-align:center;">
        <a href="{{ url }}" style="display:inline-block;padding:12px 24px;background-color:#007bff;color:white;text-decoration:none;border-radius:5px;margin:20px 0;">View Appointment Letter</a>
      </p>
      <p>{{ closing }}<br>{{ signature }}</p>
    </div>
    <div style="margin-top:30px;padding-top:20px;border-top:1px solid #e9ecef;text-align:center;font-size:12px;color:#6c757d;">
      <p>This is an automated message. Please do not reply to this email.</p>
    </div>
  </body>
</html>
""",
}

_env = Environment(
    loader=DictLoader(_TEMPLATES),
    autoescape=select_autoescape(default=True, default_for_string=True),
    undefined=StrictUndefined,
)


def _brand_context(org: dict[str, Any] | None) -> dict[str, Any]:
    org = org or {}
    theme = org.get("theme") or {}
    settings = org.get("emailSettings") or {}
    return {
        "company": org.get("companyName") or "Your Company",
        "logo": org.get("logo") or "",
        "primary": theme.get("primaryColor") or "#111827",
        "accent": theme.get("accentColor") or "#3B82F6",
        "footer_text": settings.get("footerText") or "",
        "year": datetime.now(timezone.utc).year,
    }


def format_date(value: Any) -> str:
    dt = parse_datetime_maybe(value)
    if not dt:
        return str(value or "")
    return dt.strftime("%B %d, %Y").replace(" 0", " ")


def format_salary(value: Any) -> str:
    try:
        return f"PKR {float(value):,.0f}"
    except (TypeError, ValueError):
        return str(value or "")


def _render(name: str, subject: str, text: str, **ctx: Any) -> RenderedEmail:
    html = _env.get_template(name).render(subject=subject, **ctx)
    return RenderedEmail(subject=subject, html=html, text=text)


def offer_letter(org: dict[str, Any] | None, *, frontend_url: str, token: str, offer: dict[str, Any]) -> RenderedEmail:
    brand = _brand_context(org)
    url = f"{frontend_url}/onboarding/{token}"
    subject = f"Offer Letter - Welcome to {brand['company']}"
    text = f"Dear {offer.get('fullName')}, you have an offer from {brand['company']}. Review it at {url}"
    return _render(
        "offer_letter.html",
        subject,
        text,
        url=url,
        full_name=offer.get("fullName") or "",
        designation=offer.get("designation") or "",
        department=offer.get("department") or "",
        salary=format_salary(offer.get("salary")),
        joining_date=format_date(offer.get("joiningDate")),
        expires_at=format_date(offer.get("expiresAt")),
        **brand,
    )


def employment_form_request(org: dict[str, Any] | None, *, frontend_url: str, token: str, full_name: str, expires_at: str) -> RenderedEmail:
    brand = _brand_context(org)
    url = f"{frontend_url}/employment/form/{token}"
    subject = f"Action Required: Complete Your Employment Form - {brand['company']}"
    text = f"Please complete your employment form: {url}"
    return _render(
        "employment_form.html",
        subject,
        text,
        url=url,
        full_name=full_name,
        expires_at=format_date(expires_at),
        **brand,
    )


def employment_form_revision(
    org: dict[str, Any] | None,
    *,
    frontend_url: str,
    token: str,
    full_name: str,
    fields: list[str],
    notes: str,
) -> RenderedEmail:
    brand = _brand_context(org)
    url = f"{frontend_url}/employment/form/{token}"
    subject = f"Action required: Update your employment form - {brand['company']}"
    text = f"HR requested changes to your employment form ({', '.join(fields) or 'see notes'}). Update it at {url}"
    return _render(
        "employment_form_revision.html",
        subject,
        text,
        url=url,
        full_name=full_name,
        fields=list(fields or []),
        notes=notes or "",
        **brand,
    )


def employment_form_approved(org: dict[str, Any] | None, *, frontend_url: str, full_name: str) -> RenderedEmail:
    brand = _brand_context(org)
    url = f"{frontend_url}/login"
    subject = f"Next steps from {brand['company']} HR"
    text = f"Your employment form has been approved. Sign in at {url}"
    return _render("employment_form_approved.html", subject, text, url=url, full_name=full_name, **brand)


def contract_ready(
    org: dict[str, Any] | None,
    *,
    frontend_url: str,
    token: str,
    full_name: str,
    position: str,
    expires_at: str,
) -> RenderedEmail:
    brand = _brand_context(org)
    url = f"{frontend_url}/employment/contract/{token}"
    subject = "Your Employment Contract is Ready for Signing"
    text = f"Your employment contract is ready. Review and sign it at {url}"
    return _render(
        "contract.html",
        subject,
        text,
        url=url,
        full_name=full_name,
        position=position,
        expires_at=format_date(expires_at),
        **brand,
    )


def contract_signed(org: dict[str, Any] | None, *, full_name: str, position: str, signed_at: str) -> RenderedEmail:
    brand = _brand_context(org)
    subject = f"Contract Signed - {brand['company']}"
    text = f"Dear {full_name}, thank you for signing your employment contract with {brand['company']}."
    return _render(
        "contract_signed.html",
        subject,
        text,
        full_name=full_name,
        position=position,
        signed_at=format_date(signed_at),
        **brand,
    )


def appointment_accepted(org: dict[str, Any] | None, *, full_name: str) -> RenderedEmail:
    brand = _brand_context(org)
    subject = "Confirmation: Appointment Letter Accepted"
    text = f"Dear {full_name}, we have successfully received your acceptance of the appointment letter."
    return _render("appointment_accepted.html", subject, text, full_name=full_name, **brand)


def appointment_letter(*, frontend_url: str, token: str, employee_name: str, content: dict[str, Any]) -> RenderedEmail:
    url = f"{frontend_url}/onboarding/appointment/{token}"
    subject = str(content.get("subject") or "New Appointment Letter")
    text = f"{content.get('greeting') or 'Dear'} {employee_name}, view your appointment letter at {url}"
    return _render(
        "appointment_letter.html",
        subject,
        text,
        url=url,
        employee_name=employee_name,
        greeting=content.get("greeting") or "Dear",
        body=content.get("body") or "",
        closing=content.get("closing") or "Best regards,",
        signature=content.get("signature") or "The HR Team",
    )
