from __future__ import annotations

import re

import pytest


_BASE_ENV = {
    "APP_ENV": "test",
    "TOKEN_PEPPER": "test-pepper-0123456789abcdef0123456789",
    "NOTIFY_MODE": "sync",
    "MAIL_BACKEND": "memory",
    "FRONTEND_URL": "http://frontend.test",
    "RATE_LIMIT_PUBLIC": "1000",
    "HIRING_MODULE_ENABLED": "true",
    "FORM_APPROVAL_CHAIN": "manual",
}


@pytest.fixture()
def app_factory(tmp_path, monkeypatch):
    """Builds an app on a fresh SQLite file; keyword args override env vars."""

    def _make(**env):
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
        monkeypatch.delenv("REDIS_URL", raising=False)
        for key, val in {**_BASE_ENV, **env}.items():
            monkeypatch.setenv(key, str(val))

        from app import create_app

        app = create_app()
        app.config.update(TESTING=True)
        return app, app.test_client()

    return _make


@pytest.fixture()
def app_client(app_factory):
    return app_factory()


@pytest.fixture()
def cfg(app_client):
    app, _client = app_client
    return app.config["CFG"]


@pytest.fixture()
def outbox(app_client):
    app, _client = app_client
    return app.extensions["mailer"].outbox


def register_admin(client, *, company="Acme Corp", email="owner@acme.test", password="secret123"):
    res = client.post(
        "/api/v1/organizations/register",
        json={"companyName": company, "ownerName": "Olive Owner", "ownerEmail": email, "ownerPassword": password},
    )
    assert res.status_code == 201, res.get_json()
    org_id = res.get_json()["data"]["organization"]["id"]

    res = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert res.status_code == 200, res.get_json()
    token = res.get_json()["data"]["sessionToken"]
    return {"orgId": org_id, "headers": {"Authorization": f"Bearer {token}"}}


@pytest.fixture()
def admin(app_client):
    _app, client = app_client
    return register_admin(client)


def token_in(message: dict, path: str) -> str:
    m = re.search(re.escape(path) + r"/([0-9a-f]{64})", message["html"])
    assert m, f"no {path} link in {message['subject']!r}"
    return m.group(1)


def last_mail(outbox: list, to: str) -> dict:
    mine = [m for m in outbox if m["to"] == to]
    assert mine, f"no email sent to {to}"
    return mine[-1]


def mails_to(outbox: list, to: str, subject_prefix: str = "") -> list:
    return [m for m in outbox if m["to"] == to and m["subject"].startswith(subject_prefix)]


def hire_ada(client, admin, outbox, **overrides):
    """Creates Ada's onboarding; returns ``(onboarding_id, offer_token)``."""
    res = client.post("/api/v1/onboarding/create-employee", json={**ADA, **overrides}, headers=admin["headers"])
    assert res.status_code == 201, res.get_json()
    onboarding_id = res.get_json()["data"]["onboarding"]["id"]
    email = overrides.get("email") or ADA["email"]
    return onboarding_id, token_in(last_mail(outbox, email), "/onboarding")


def accepted_form(client, admin, outbox):
    """Ada accepts her offer; returns ``(onboarding_id, form_id, form_token)``."""
    onboarding_id, offer_token = hire_ada(client, admin, outbox)
    res = client.post(f"/api/v1/onboarding/{offer_token}/accept")
    assert res.status_code == 200, res.get_json()
    form_token = res.get_json()["data"]["employmentFormToken"]
    form_id = client.get(f"/api/v1/employment-forms/view/{form_token}").get_json()["data"]["id"]
    return onboarding_id, form_id, form_token


ADA = {
    "fullName": "Ada Lovelace",
    "email": "ada@x.com",
    "designation": "Engineer",
    "department": "Engineering",
    "salary": 5000,
    "phone": "+10000000",
}

SUBMISSION = {
    "personalInfo": {"legalName": "Ada Lovelace", "dateOfBirth": "1990-12-10"},
    "cnicInfo": {"cnicNumber": "12345-1234567-1"},
    "contactInfo": {"phone": "+10000000"},
}
