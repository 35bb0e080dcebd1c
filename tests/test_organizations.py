from __future__ import annotations

from conftest import ADA, last_mail


def test_register_validates_and_rejects_duplicates(app_client, admin):
    _app, client = app_client

    res = client.post(
        "/api/v1/organizations/register",
        json={"companyName": "ACME corp", "ownerName": "X", "ownerEmail": "x@acme.test", "ownerPassword": "secret123"},
    )
    assert res.status_code == 409

    res = client.post(
        "/api/v1/organizations/register",
        json={"companyName": "Initech", "ownerName": "X", "ownerEmail": "owner@acme.test", "ownerPassword": "secret123"},
    )
    assert res.status_code == 409

    res = client.post(
        "/api/v1/organizations/register",
        json={"companyName": "Initech", "ownerName": "X", "ownerEmail": "x@initech.test", "ownerPassword": "123"},
    )
    assert res.status_code == 400


def test_profile_update_reaches_outgoing_email(app_client, admin, outbox):
    _app, client = app_client
    assert client.get("/api/v1/organizations", headers=admin["headers"]).get_json()["data"]["companyName"] == "Acme Corp"

    res = client.put(
        "/api/v1/organizations/profile",
        json={"companyName": "Acme Labs", "theme": {"primaryColor": "#123456"}, "emailSettings": {"footerText": "Acme Labs, Lahore"}},
        headers=admin["headers"],
    )
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["theme"]["primaryColor"] == "#123456"
    assert data["theme"]["secondaryColor"] == "#000"

    client.post("/api/v1/onboarding/create-employee", json=ADA, headers=admin["headers"])
    mail = last_mail(outbox, "ada@x.com")
    assert mail["subject"] == "Offer Letter - Welcome to Acme Labs"
    assert "#123456" in mail["html"]
    assert "Acme Labs, Lahore" in mail["html"]


def test_empty_profile_update_is_rejected(app_client, admin):
    _app, client = app_client
    res = client.put("/api/v1/organizations/profile", json={}, headers=admin["headers"])
    assert res.status_code == 400


def test_departments(app_client, admin, outbox):
    _app, client = app_client
    res = client.post("/api/v1/organizations/departments", json={"name": "Engineering"}, headers=admin["headers"])
    assert res.status_code == 201
    dept_id = res.get_json()["data"]["id"]

    res = client.post("/api/v1/organizations/departments", json={"name": "engineering"}, headers=admin["headers"])
    assert res.status_code == 409

    res = client.put(
        f"/api/v1/organizations/departments/{dept_id}",
        json={"description": "Builds things"},
        headers=admin["headers"],
    )
    assert res.get_json()["data"]["description"] == "Builds things"

    client.post("/api/v1/onboarding/create-employee", json=ADA, headers=admin["headers"])
    res = client.delete(f"/api/v1/organizations/departments/{dept_id}", headers=admin["headers"])
    assert res.status_code == 409

    res = client.post("/api/v1/organizations/departments", json={"name": "Finance"}, headers=admin["headers"])
    finance = res.get_json()["data"]["id"]
    assert client.delete(f"/api/v1/organizations/departments/{finance}", headers=admin["headers"]).status_code == 200

    names = [d["name"] for d in client.get("/api/v1/organizations", headers=admin["headers"]).get_json()["data"]["departments"]]
    assert names == ["Engineering"]


def test_policies_keep_their_order(app_client, admin):
    _app, client = app_client
    ids = []
    for title in ("Code of Conduct", "Leave Policy", "Remote Work"):
        res = client.post("/api/v1/organizations/policies", json={"title": title, "content": "..."}, headers=admin["headers"])
        assert res.status_code == 201
        ids.append(res.get_json()["data"]["id"])

    assert client.delete(f"/api/v1/organizations/policies/{ids[0]}", headers=admin["headers"]).status_code == 200
    assert client.delete(f"/api/v1/organizations/policies/{ids[0]}", headers=admin["headers"]).status_code == 404

    policies = client.get("/api/v1/organizations", headers=admin["headers"]).get_json()["data"]["policies"]
    assert [(p["title"], p["order"]) for p in policies] == [("Leave Policy", 0), ("Remote Work", 1)]
