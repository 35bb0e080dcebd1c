from __future__ import annotations

from unittest.mock import patch

from conftest import SUBMISSION, accepted_form, mails_to, register_admin, token_in
from db import SessionLocal
from models import EmploymentForm


def test_second_submit_of_same_token_conflicts(app_client, admin, outbox):
    _app, client = app_client
    _onb, _form_id, token = accepted_form(client, admin, outbox)

    assert client.post(f"/api/v1/employment-forms/submit/{token}", json=SUBMISSION).status_code == 200

    res = client.post(f"/api/v1/employment-forms/submit/{token}", json=SUBMISSION)
    assert res.status_code == 409
    assert res.get_json()["code"] == "CONFLICT"

    res = client.get(f"/api/v1/employment-forms/view/{token}")
    assert res.status_code == 409


def test_submit_requires_identity_fields(app_client, admin, outbox):
    _app, client = app_client
    _onb, _form_id, token = accepted_form(client, admin, outbox)

    res = client.post(f"/api/v1/employment-forms/submit/{token}", json={"contactInfo": {"phone": "+1"}})
    assert res.status_code == 400
    assert res.get_json()["error"] == "Missing required fields: CNIC number"

    # still editable after the failed attempt
    assert client.get(f"/api/v1/employment-forms/view/{token}").get_json()["data"]["status"] == "draft"


def _expire_form(form_id):
    with SessionLocal() as db:
        db.get(EmploymentForm, form_id).tokenExpiry = "2000-01-01T00:00:00.000Z"
        db.commit()


def test_expired_link_reports_submitted_form_before_expiry(app_client, admin, outbox):
    _app, client = app_client
    _onb, form_id, token = accepted_form(client, admin, outbox)
    assert client.post(f"/api/v1/employment-forms/submit/{token}", json=SUBMISSION).status_code == 200
    _expire_form(form_id)

    res = client.get(f"/api/v1/employment-forms/view/{token}")
    assert res.status_code == 409
    assert "already been submitted" in res.get_json()["error"]


def test_expired_draft_link_is_gone(app_client, admin, outbox):
    _app, client = app_client
    _onb, form_id, token = accepted_form(client, admin, outbox)
    _expire_form(form_id)

    assert client.get(f"/api/v1/employment-forms/view/{token}").status_code == 410
    res = client.post(f"/api/v1/employment-forms/submit/{token}", json=SUBMISSION)
    assert res.status_code == 410
    assert res.get_json()["code"] == "EXPIRED"


def test_short_account_password_is_refused_before_submitting(app_client, admin, outbox):
    _app, client = app_client
    _onb, _form_id, token = accepted_form(client, admin, outbox)

    res = client.post(
        f"/api/v1/employment-forms/submit/{token}",
        json={**SUBMISSION, "account": {"password": "abc"}},
    )
    assert res.status_code == 400
    assert res.get_json()["code"] == "VALIDATION_FAILED"
    assert client.get(f"/api/v1/employment-forms/view/{token}").get_json()["data"]["status"] == "draft"

    res = client.post(
        f"/api/v1/employment-forms/submit/{token}",
        json={**SUBMISSION, "account": {"password": "abcdef"}},
    )
    assert res.status_code == 200
    assert res.get_json()["data"]["reconciliation"]["user"] == "activated"

    res = client.post("/api/v1/auth/login", json={"email": "ada@x.com", "password": "abcdef"})
    assert res.status_code == 200


def test_submit_without_token(app_client):
    _app, client = app_client
    res = client.post("/api/v1/employment-forms/submit", json=SUBMISSION)
    assert res.status_code == 400
    assert res.get_json()["code"] == "BAD_REQUEST"


def test_revision_request_reissues_the_link(app_client, admin, outbox):
    _app, client = app_client
    _onb, form_id, token = accepted_form(client, admin, outbox)
    client.post(f"/api/v1/employment-forms/submit/{token}", json=SUBMISSION)

    res = client.put(f"/api/v1/employment-forms/{form_id}/request-revision", json={}, headers=admin["headers"])
    assert res.status_code == 400

    res = client.put(
        f"/api/v1/employment-forms/{form_id}/request-revision",
        json={"fields": ["cnicInfo.cnicNumber"], "notes": "The CNIC scan is blurry"},
        headers=admin["headers"],
    )
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["status"] == "needs_revision"
    assert data["revisionFields"] == ["cnicInfo.cnicNumber"]

    revision_mail = mails_to(outbox, "ada@x.com", "Action required: Update")
    assert len(revision_mail) == 1
    assert "The CNIC scan is blurry" in revision_mail[0]["html"]
    new_token = token_in(revision_mail[0], "/employment/form")
    assert new_token != token

    assert client.get(f"/api/v1/employment-forms/view/{token}").status_code == 404
    assert client.get(f"/api/v1/employment-forms/view/{new_token}").get_json()["data"]["status"] == "needs_revision"

    res = client.post(
        f"/api/v1/employment-forms/submit/{new_token}",
        json={"cnicInfo": {"cnicNumber": "54321-7654321-9"}},
    )
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["status"] == "pending_review"
    assert data["cnicInfo"]["cnicNumber"] == "54321-7654321-9"
    # earlier answers survive the partial resubmission
    assert data["personalInfo"]["dateOfBirth"] == "1990-12-10"
    assert data["reconciliation"]["onboarding"] == "unchanged"


def test_review_approve_sends_next_steps(app_client, admin, outbox):
    _app, client = app_client
    _onb, form_id, token = accepted_form(client, admin, outbox)
    client.post(f"/api/v1/employment-forms/submit/{token}", json=SUBMISSION)

    res = client.put(f"/api/v1/employment-forms/{form_id}/review", json={"status": "maybe"}, headers=admin["headers"])
    assert res.status_code == 400

    res = client.put(
        f"/api/v1/employment-forms/{form_id}/review",
        json={"status": "approved", "reviewNotes": "All good"},
        headers=admin["headers"],
    )
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["status"] == "approved"
    assert data["reviewNotes"] == "All good"
    assert "contractId" not in data

    assert len(mails_to(outbox, "ada@x.com", "Next steps from Acme Corp HR")) == 1

    res = client.put(f"/api/v1/employment-forms/{form_id}/review", json={"status": "rejected"}, headers=admin["headers"])
    assert res.status_code == 409


def test_review_reject(app_client, admin, outbox):
    _app, client = app_client
    _onb, form_id, token = accepted_form(client, admin, outbox)
    client.post(f"/api/v1/employment-forms/submit/{token}", json=SUBMISSION)

    res = client.put(f"/api/v1/employment-forms/{form_id}/review", json={"status": "rejected"}, headers=admin["headers"])
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "rejected"
    assert mails_to(outbox, "ada@x.com", "Next steps") == []


def test_approval_creates_contract_when_chained(app_factory):
    app, client = app_factory(FORM_APPROVAL_CHAIN="contract")
    outbox = app.extensions["mailer"].outbox
    admin = register_admin(client)
    _onb, form_id, token = accepted_form(client, admin, outbox)
    client.post(f"/api/v1/employment-forms/submit/{token}", json=SUBMISSION)

    res = client.put(f"/api/v1/employment-forms/{form_id}/review", json={"status": "approved"}, headers=admin["headers"])
    assert res.status_code == 200
    contract_id = res.get_json()["data"]["contractId"]

    contract = client.get(f"/api/v1/contracts/{contract_id}", headers=admin["headers"]).get_json()["data"]
    assert contract["status"] == "draft"
    assert contract["employmentFormId"] == form_id
    assert contract["contractDetails"]["position"] == "Engineer"
    assert contract["contractDetails"]["department"] == "Engineering"
    assert contract["contractDetails"]["compensation"]["baseSalary"] == 5000


def test_failed_reconciliation_step_does_not_undo_the_others(app_client, admin, outbox):
    _app, client = app_client
    onboarding_id, _form_id, token = accepted_form(client, admin, outbox)

    with patch("actions.orchestrator._hire_application", side_effect=RuntimeError("boom")):
        res = client.post(f"/api/v1/employment-forms/submit/{token}", json=SUBMISSION)

    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["status"] == "pending_review"
    assert data["reconciliation"] == {"user": "activated", "onboarding": "completed", "application": "failed"}

    res = client.get(f"/api/v1/onboarding/admin/{onboarding_id}", headers=admin["headers"])
    assert res.get_json()["data"]["status"] == "completed"


def test_standalone_form_for_appointment_letter(app_client, admin, outbox):
    _app, client = app_client
    letter = client.post(
        "/api/v1/appointments",
        json={"employeeEmail": "bob@x.com", "employeeName": "Bob"},
        headers=admin["headers"],
    ).get_json()["data"]

    res = client.post(
        "/api/v1/employment-forms",
        json={"employeeEmail": "bob@x.com", "appointmentLetterId": letter["id"], "personalInfo": {"legalName": "Bob B"}},
        headers=admin["headers"],
    )
    assert res.status_code == 201
    created = res.get_json()["data"]
    assert created["form"]["status"] == "draft"
    assert created["form"]["contactInfo"]["email"] == "bob@x.com"
    assert len(mails_to(outbox, "bob@x.com", "Action Required")) == 1

    res = client.post(
        "/api/v1/employment-forms",
        json={"employeeEmail": "bob@x.com", "appointmentLetterId": letter["id"]},
        headers=admin["headers"],
    )
    assert res.status_code == 409

    res = client.post(
        f"/api/v1/employment-forms/submit/{created['token']}",
        json={"cnicInfo": {"cnicNumber": "11111-1111111-1"}, "contactInfo": {"phone": "+1"}},
    )
    assert res.status_code == 200
    assert res.get_json()["data"]["reconciliation"] == {"user": "skipped", "onboarding": "skipped", "application": "skipped"}


def test_list_forms_filters_by_status(app_client, admin, outbox):
    _app, client = app_client
    _onb, _form_id, token = accepted_form(client, admin, outbox)
    client.post("/api/v1/employment-forms", json={"employeeEmail": "bob@x.com"}, headers=admin["headers"])
    client.post(f"/api/v1/employment-forms/submit/{token}", json=SUBMISSION)

    res = client.get("/api/v1/employment-forms?status=pending_review", headers=admin["headers"])
    body = res.get_json()
    assert [f["employeeEmail"] for f in body["data"]["forms"]] == ["ada@x.com"]
    assert body["pagination"]["totalItems"] == 1

    res = client.get("/api/v1/employment-forms?status=bogus", headers=admin["headers"])
    assert res.status_code == 400
