from __future__ import annotations

from sqlalchemy import update

from conftest import hire_ada, register_admin
from db import SessionLocal
from models import Organization, User


def test_login_me_logout(app_client, admin):
    _app, client = app_client

    res = client.get("/api/v1/auth/me", headers=admin["headers"])
    assert res.status_code == 200
    me = res.get_json()["data"]
    assert me["email"] == "owner@acme.test"
    assert me["role"] == "admin"
    assert me["organizationId"] == admin["orgId"]
    assert me["expiresAt"]

    assert client.post("/api/v1/auth/logout", headers=admin["headers"]).status_code == 200
    res = client.get("/api/v1/auth/me", headers=admin["headers"])
    assert res.status_code == 401


def test_bad_credentials(app_client, admin):
    _app, client = app_client
    res = client.post("/api/v1/auth/login", json={"email": "owner@acme.test", "password": "wrong-password"})
    assert res.status_code == 401
    assert res.get_json()["code"] == "AUTH_INVALID"

    res = client.post("/api/v1/auth/login", json={"email": "owner@acme.test"})
    assert res.status_code == 400


def test_placeholder_account_cannot_log_in(app_client, admin, outbox):
    _app, client = app_client
    hire_ada(client, admin, outbox)
    res = client.post("/api/v1/auth/login", json={"email": "ada@x.com", "password": "anything"})
    assert res.status_code == 401


def test_deactivated_account_is_locked_out(app_client, admin):
    _app, client = app_client
    with SessionLocal() as db:
        db.execute(update(User).where(User.email == "owner@acme.test").values(isActive=False))
        db.commit()

    res = client.get("/api/v1/auth/me", headers=admin["headers"])
    assert res.status_code == 403
    assert res.get_json()["error"] == "Account is deactivated"


def test_employee_cannot_call_admin_routes(app_client, admin, outbox):
    _app, client = app_client
    _onb, token = hire_ada(client, admin, outbox)
    client.post(f"/api/v1/onboarding/{token}/accept")
    client.post(f"/api/v1/onboarding/{token}/complete", json={"password": "ada-secret", "github": "ada"})

    login = client.post("/api/v1/auth/login", json={"email": "ada@x.com", "password": "ada-secret"}).get_json()
    headers = {"Authorization": f"Bearer {login['data']['sessionToken']}"}

    assert client.get("/api/v1/auth/me", headers=headers).status_code == 200
    res = client.get("/api/v1/onboarding/admin/status", headers=headers)
    assert res.status_code == 403


def _set_subscription(app, org_id, status):
    with SessionLocal() as db:
        db.execute(update(Organization).where(Organization.organizationId == org_id).values(subscriptionStatus=status))
        db.commit()
    app.extensions["branding_cache"].invalidate(org_id)


def test_blocked_subscriptions(app_client, admin):
    app, client = app_client

    _set_subscription(app, admin["orgId"], "expired")
    res = client.get("/api/v1/onboarding/admin/status", headers=admin["headers"])
    assert res.status_code == 402
    assert res.get_json()["code"] == "PAYMENT_REQUIRED"
    # the organization itself stays readable
    assert client.get("/api/v1/organizations", headers=admin["headers"]).status_code == 200

    _set_subscription(app, admin["orgId"], "cancelled")
    res = client.get("/api/v1/onboarding/admin/status", headers=admin["headers"])
    assert res.status_code == 403


def test_records_of_another_organization_are_forbidden(app_client, admin, outbox):
    _app, client = app_client
    onboarding_id, _token = hire_ada(client, admin, outbox)
    other = register_admin(client, company="Globex", email="owner@globex.test")

    res = client.get(f"/api/v1/onboarding/admin/{onboarding_id}", headers=other["headers"])
    assert res.status_code == 403

    res = client.post(f"/api/v1/onboarding/{onboarding_id}/revoke", headers=other["headers"])
    assert res.status_code == 403

    listing = client.get("/api/v1/onboarding/admin/status", headers=other["headers"]).get_json()
    assert listing["data"]["onboardings"] == []


def test_superadmin_picks_organization_by_header(app_client, admin, outbox):
    _app, client = app_client
    onboarding_id, _token = hire_ada(client, admin, outbox)
    root = register_admin(client, company="Platform Ops", email="root@ops.test")
    with SessionLocal() as db:
        db.execute(update(User).where(User.email == "root@ops.test").values(role="superadmin"))
        db.commit()

    res = client.get(
        f"/api/v1/onboarding/admin/{onboarding_id}",
        headers={**root["headers"], "X-Organization-ID": admin["orgId"]},
    )
    assert res.status_code == 200
    assert res.get_json()["data"]["organizationId"] == admin["orgId"]
