from __future__ import annotations

from conftest import mails_to, token_in
from db import SessionLocal
from models import EmploymentContract


CARA_FORM = {
    "personalInfo": {"legalName": "Cara Diaz"},
    "cnicInfo": {"cnicNumber": "22222-2222222-2"},
    "contactInfo": {"phone": "+20000000"},
}


def _approved_form(client, admin):
    res = client.post("/api/v1/employment-forms", json={"employeeEmail": "cara@x.com"}, headers=admin["headers"])
    created = res.get_json()["data"]
    client.post(f"/api/v1/employment-forms/submit/{created['token']}", json=CARA_FORM)
    res = client.put(
        f"/api/v1/employment-forms/{created['form']['id']}/review",
        json={"status": "approved"},
        headers=admin["headers"],
    )
    assert res.status_code == 200, res.get_json()
    return created["form"]["id"]


def _create(client, admin, form_id, **details):
    return client.post(
        "/api/v1/contracts",
        json={"employmentFormId": form_id, "contractDetails": {"position": "Engineer", **details}},
        headers=admin["headers"],
    )


def test_contract_needs_an_approved_form(app_client, admin):
    _app, client = app_client
    res = client.post("/api/v1/employment-forms", json={"employeeEmail": "dee@x.com"}, headers=admin["headers"])
    draft_id = res.get_json()["data"]["form"]["id"]

    res = _create(client, admin, draft_id)
    assert res.status_code == 409

    res = client.post("/api/v1/contracts", json={"contractDetails": {"position": "Engineer"}}, headers=admin["headers"])
    assert res.status_code == 400


def test_contract_details_are_validated(app_client, admin):
    _app, client = app_client
    form_id = _approved_form(client, admin)

    res = client.post(
        "/api/v1/contracts",
        json={"employmentFormId": form_id, "contractDetails": {}},
        headers=admin["headers"],
    )
    assert res.status_code == 400
    assert "position" in res.get_json()["error"]

    res = _create(client, admin, form_id, employmentType="freelance")
    assert res.status_code == 400

    res = _create(client, admin, form_id, compensation={"baseSalary": -1})
    assert res.status_code == 400


def test_send_sign_complete(app_client, admin, outbox):
    _app, client = app_client
    form_id = _approved_form(client, admin)

    res = _create(client, admin, form_id, compensation={"baseSalary": 7000})
    assert res.status_code == 201
    created = res.get_json()["data"]
    contract_id = created["contract"]["id"]
    assert created["contract"]["status"] == "draft"
    assert created["contract"]["employeeName"] == "Cara Diaz"
    assert created["contract"]["contractDetails"]["probationPeriod"] == 3

    res = client.post(f"/api/v1/contracts/{contract_id}/send", headers=admin["headers"])
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "sent"

    mail = mails_to(outbox, "cara@x.com", "Your Employment Contract")
    assert len(mail) == 1
    assert "Engineer" in mail[0]["html"]
    token = token_in(mail[0], "/employment/contract")
    assert token != created["token"]
    assert client.get(f"/api/v1/contracts/view/{created['token']}").status_code == 404

    assert client.post(f"/api/v1/contracts/{contract_id}/send", headers=admin["headers"]).status_code == 409

    res = client.get(f"/api/v1/contracts/view/{token}")
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "sent"

    res = client.post(f"/api/v1/contracts/sign/{token}", json={})
    assert res.status_code == 400

    res = client.post(f"/api/v1/contracts/sign/{token}", json={"employeeSignature": "data:image/png;base64,AAAA"})
    assert res.status_code == 200
    signed = res.get_json()["data"]
    assert signed["status"] == "signed"
    assert len(signed["signatures"]) == 1
    assert signed["signatures"][0]["signerEmail"] == "cara@x.com"
    assert signed["signatures"][0]["signedBy"] == "employee"

    confirmation = mails_to(outbox, "cara@x.com", "Contract Signed - Acme Corp")
    assert len(confirmation) == 1
    assert confirmation[0]["tags"]["event"] == "contract.signed"
    assert "Engineer" in confirmation[0]["html"]

    res = client.post(f"/api/v1/contracts/sign/{token}", json={"employeeSignature": "again"})
    assert res.status_code == 409
    assert client.get(f"/api/v1/contracts/view/{token}").status_code == 409

    res = client.post(f"/api/v1/contracts/{contract_id}/complete", headers=admin["headers"])
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "completed"

    res = client.post(f"/api/v1/contracts/{contract_id}/terminate", json={"reason": "x"}, headers=admin["headers"])
    assert res.status_code == 409


def test_draft_contract_can_be_signed_with_its_creation_token(app_client, admin):
    _app, client = app_client
    form_id = _approved_form(client, admin)
    created = _create(client, admin, form_id).get_json()["data"]

    res = client.post(f"/api/v1/contracts/sign/{created['token']}", json={"employeeSignature": "sig"})
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "signed"


def test_expired_signing_link_is_gone(app_client, admin):
    _app, client = app_client
    form_id = _approved_form(client, admin)
    created = _create(client, admin, form_id).get_json()["data"]

    with SessionLocal() as db:
        db.get(EmploymentContract, created["contract"]["id"]).tokenExpiry = "2000-01-01T00:00:00.000Z"
        db.commit()

    res = client.post(f"/api/v1/contracts/sign/{created['token']}", json={"employeeSignature": "sig"})
    assert res.status_code == 410
    assert res.get_json()["code"] == "EXPIRED"

    res = client.get(f"/api/v1/contracts/{created['contract']['id']}", headers=admin["headers"])
    assert res.get_json()["data"]["status"] == "draft"


def test_terminate_requires_reason(app_client, admin):
    _app, client = app_client
    form_id = _approved_form(client, admin)
    contract_id = _create(client, admin, form_id).get_json()["data"]["contract"]["id"]

    res = client.post(f"/api/v1/contracts/{contract_id}/complete", headers=admin["headers"])
    assert res.status_code == 409

    res = client.post(f"/api/v1/contracts/{contract_id}/terminate", json={}, headers=admin["headers"])
    assert res.status_code == 400

    res = client.post(
        f"/api/v1/contracts/{contract_id}/terminate",
        json={"reason": "Candidate withdrew"},
        headers=admin["headers"],
    )
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["status"] == "terminated"
    assert data["terminationReason"] == "Candidate withdrew"


def test_list_contracts(app_client, admin):
    _app, client = app_client
    form_id = _approved_form(client, admin)
    _create(client, admin, form_id)
    _create(client, admin, form_id, position="Lead Engineer")

    res = client.get("/api/v1/contracts?employeeEmail=cara@x.com", headers=admin["headers"])
    body = res.get_json()
    assert len(body["data"]["contracts"]) == 2
    assert body["pagination"]["totalItems"] == 2
