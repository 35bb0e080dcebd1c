from __future__ import annotations

from unittest.mock import patch

from sqlalchemy import func, select

from conftest import ADA, SUBMISSION, hire_ada, last_mail, mails_to, token_in
from db import SessionLocal
from models import AuditLog, Onboarding, User


def _user(email):
    with SessionLocal() as db:
        return db.execute(select(User).where(User.email == email)).scalar_one()


def test_create_employee_sends_offer_and_hides_token(app_client, admin, outbox):
    _app, client = app_client

    res = client.post("/api/v1/onboarding/create-employee", json=ADA, headers=admin["headers"])
    assert res.status_code == 201
    data = res.get_json()["data"]
    assert "token" not in data
    assert data["employee"]["isActive"] is False
    assert data["onboarding"]["status"] == "pending"

    mail = last_mail(outbox, "ada@x.com")
    assert mail["subject"] == "Offer Letter - Welcome to Acme Corp"
    assert mail["fromName"] == "Acme Corp"
    assert mail["tags"]["event"] == "onboarding.created"
    assert "PKR 5,000" in mail["html"]
    assert len(token_in(mail, "/onboarding")) == 64


def test_create_employee_requires_admin_session(app_client):
    _app, client = app_client
    res = client.post("/api/v1/onboarding/create-employee", json=ADA)
    assert res.status_code == 401
    assert res.get_json()["code"] == "AUTH_INVALID"


def test_create_employee_validates_profile(app_client, admin):
    _app, client = app_client
    res = client.post(
        "/api/v1/onboarding/create-employee",
        json={**ADA, "salary": ""},
        headers=admin["headers"],
    )
    assert res.status_code == 400
    assert res.get_json()["code"] == "VALIDATION_FAILED"

    res = client.post(
        "/api/v1/onboarding/create-employee",
        json={**ADA, "email": "not-an-email"},
        headers=admin["headers"],
    )
    assert res.status_code == 400


def test_second_active_onboarding_for_same_email_is_refused(app_client, admin, outbox):
    _app, client = app_client
    hire_ada(client, admin, outbox)

    res = client.post("/api/v1/onboarding/create-employee", json=ADA, headers=admin["headers"])
    assert res.status_code == 400
    assert res.get_json()["code"] == "CONFLICT"


def test_offer_to_active_employee_round_trip(app_client, admin, outbox):
    _app, client = app_client
    onboarding_id, offer_token = hire_ada(client, admin, outbox)

    res = client.get(f"/api/v1/onboarding/{offer_token}")
    assert res.status_code == 200
    details = res.get_json()["data"]
    assert details["status"] == "pending"
    assert details["offerDetails"]["designation"] == "Engineer"
    assert details["org"]["companyName"] == "Acme Corp"

    res = client.post(f"/api/v1/onboarding/{offer_token}/accept")
    assert res.status_code == 200
    accepted = res.get_json()["data"]
    assert accepted["status"] == "accepted"
    form_token = accepted["employmentFormToken"]

    form_mail = mails_to(outbox, "ada@x.com", "Action Required")
    assert len(form_mail) == 1
    assert token_in(form_mail[0], "/employment/form") == form_token

    res = client.get(f"/api/v1/employment-forms/view/{form_token}")
    assert res.status_code == 200
    form = res.get_json()["data"]
    assert form["status"] == "draft"
    assert form["employeeEmail"] == "ada@x.com"
    assert form["onboardingId"] == onboarding_id
    assert form["personalInfo"]["legalName"] == "Ada Lovelace"

    res = client.post(
        f"/api/v1/employment-forms/submit/{form_token}",
        json={**SUBMISSION, "account": {"password": "ada-secret", "github": "https://github.com/ada"}},
    )
    assert res.status_code == 200
    submitted = res.get_json()["data"]
    assert submitted["status"] == "pending_review"
    assert submitted["reconciliation"] == {"user": "activated", "onboarding": "completed", "application": "skipped"}

    res = client.get(f"/api/v1/onboarding/admin/{onboarding_id}", headers=admin["headers"])
    assert res.get_json()["data"]["status"] == "completed"

    user = _user("ada@x.com")
    assert user.isActive is True
    res = client.post("/api/v1/auth/login", json={"email": "ada@x.com", "password": "ada-secret"})
    assert res.status_code == 200
    assert res.get_json()["data"]["me"]["profile"]["socialLinks"] == {"github": "https://github.com/ada"}


def test_failed_form_provisioning_rolls_back_the_accept(app_client, admin, outbox):
    _app, client = app_client
    onboarding_id, offer_token = hire_ada(client, admin, outbox)

    with patch("actions.orchestrator.create_form_record", side_effect=RuntimeError("db hiccup")):
        res = client.post(f"/api/v1/onboarding/{offer_token}/accept")
    assert res.status_code == 502
    assert res.get_json()["code"] == "DEPENDENCY_FAILURE"

    res = client.get(f"/api/v1/onboarding/admin/{onboarding_id}", headers=admin["headers"])
    assert res.get_json()["data"]["status"] == "pending"
    assert mails_to(outbox, "ada@x.com", "Action Required") == []

    res = client.post(f"/api/v1/onboarding/{offer_token}/accept")
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "accepted"
    assert len(mails_to(outbox, "ada@x.com", "Action Required")) == 1


def test_expired_offer_is_marked_once(app_client, admin, outbox):
    _app, client = app_client
    onboarding_id, offer_token = hire_ada(client, admin, outbox)

    with SessionLocal() as db:
        row = db.get(Onboarding, onboarding_id)
        row.tokenExpiry = "2000-01-01T00:00:00.000Z"
        db.commit()

    for _ in range(2):
        res = client.get(f"/api/v1/onboarding/{offer_token}")
        assert res.status_code == 410
        assert res.get_json()["code"] == "EXPIRED"

    with SessionLocal() as db:
        assert db.get(Onboarding, onboarding_id).status == "expired"
        audits = db.execute(
            select(func.count())
            .select_from(AuditLog)
            .where(AuditLog.entityId == onboarding_id)
            .where(AuditLog.action == "ONBOARDING_EXPIRE")
        ).scalar()
    assert audits == 1

    res = client.post(f"/api/v1/onboarding/{offer_token}/accept")
    assert res.status_code == 400


def test_unknown_token_is_not_found(app_client):
    _app, client = app_client
    res = client.get("/api/v1/onboarding/" + "0" * 64)
    assert res.status_code == 404
    assert res.get_json()["code"] == "NOT_FOUND"


def test_reject_keeps_account_inactive(app_client, admin, outbox):
    _app, client = app_client
    onboarding_id, offer_token = hire_ada(client, admin, outbox)

    res = client.post(f"/api/v1/onboarding/{offer_token}/reject", json={"reason": "Relocating"})
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "rejected"

    detail = client.get(f"/api/v1/onboarding/admin/{onboarding_id}", headers=admin["headers"]).get_json()["data"]
    assert detail["rejectionReason"] == "Relocating"
    assert _user("ada@x.com").isActive is False

    res = client.post(f"/api/v1/onboarding/{offer_token}/accept")
    assert res.status_code == 400


def test_revoked_offer_is_forbidden(app_client, admin, outbox):
    _app, client = app_client
    onboarding_id, offer_token = hire_ada(client, admin, outbox)

    res = client.post(
        f"/api/v1/onboarding/{onboarding_id}/revoke",
        json={"reason": "Position closed"},
        headers=admin["headers"],
    )
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "revoked"
    assert res.get_json()["data"]["revocationReason"] == "Position closed"

    res = client.get(f"/api/v1/onboarding/{offer_token}")
    assert res.status_code == 403

    res = client.post(f"/api/v1/onboarding/{onboarding_id}/revoke", headers=admin["headers"])
    assert res.status_code == 400


def test_resend_rotates_the_offer_token(app_client, admin, outbox):
    _app, client = app_client
    onboarding_id, old_token = hire_ada(client, admin, outbox)

    res = client.post(f"/api/v1/onboarding/{onboarding_id}/resend", headers=admin["headers"])
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert "token" not in data
    assert data["extended"] is False

    offers = mails_to(outbox, "ada@x.com", "Offer Letter")
    assert len(offers) == 2
    new_token = token_in(offers[-1], "/onboarding")
    assert new_token != old_token

    assert client.get(f"/api/v1/onboarding/{old_token}").status_code == 404
    assert client.get(f"/api/v1/onboarding/{new_token}").status_code == 200


def test_complete_onboarding_with_password_and_social_link(app_client, admin, outbox):
    _app, client = app_client
    _onboarding_id, offer_token = hire_ada(client, admin, outbox)

    res = client.post(f"/api/v1/onboarding/{offer_token}/complete", json={"password": "ada-secret", "github": "x"})
    assert res.status_code == 400

    client.post(f"/api/v1/onboarding/{offer_token}/accept")

    res = client.post(f"/api/v1/onboarding/{offer_token}/complete", json={"password": "ada-secret"})
    assert res.status_code == 400
    assert "social link" in res.get_json()["error"]

    res = client.post(
        f"/api/v1/onboarding/{offer_token}/complete",
        json={"password": "ada-secret", "linkedin": "https://linkedin.com/in/ada", "dateOfBirth": "1990-12-10"},
    )
    assert res.status_code == 200
    assert res.get_json()["data"]["email"] == "ada@x.com"

    res = client.post("/api/v1/auth/login", json={"email": "ada@x.com", "password": "ada-secret"})
    assert res.status_code == 200

    res = client.get(f"/api/v1/onboarding/{offer_token}")
    assert res.status_code == 400


def test_ensure_employment_form_rotates_the_open_form_token(app_client, admin, outbox):
    _app, client = app_client
    _onboarding_id, offer_token = hire_ada(client, admin, outbox)

    res = client.post(f"/api/v1/onboarding/{offer_token}/employment-form")
    assert res.status_code == 400

    first = client.post(f"/api/v1/onboarding/{offer_token}/accept").get_json()["data"]["employmentFormToken"]

    res = client.post(f"/api/v1/onboarding/{offer_token}/employment-form")
    assert res.status_code == 200
    ensured = res.get_json()["data"]
    assert ensured["created"] is False
    assert ensured["token"] != first

    assert client.get(f"/api/v1/employment-forms/view/{first}").status_code == 404
    assert client.get(f"/api/v1/employment-forms/view/{ensured['token']}").status_code == 200


def test_list_onboardings_with_counts(app_client, admin, outbox):
    _app, client = app_client
    hire_ada(client, admin, outbox)
    _id, token = hire_ada(client, admin, outbox, email="grace@x.com", fullName="Grace Hopper")
    client.post(f"/api/v1/onboarding/{token}/reject")

    res = client.get("/api/v1/onboarding/admin/status?limit=1", headers=admin["headers"])
    assert res.status_code == 200
    body = res.get_json()
    assert len(body["data"]["onboardings"]) == 1
    assert body["data"]["statusCounts"] == {"pending": 1, "rejected": 1}
    assert body["pagination"]["totalItems"] == 2
    assert body["pagination"]["hasNext"] is True

    res = client.get("/api/v1/onboarding/admin/status?status=rejected", headers=admin["headers"])
    rows = res.get_json()["data"]["onboardings"]
    assert [r["offerDetails"]["email"] for r in rows] == ["grace@x.com"]
