from __future__ import annotations

from conftest import hire_ada


def test_delete_user_by_email(app_client, admin, outbox):
    _app, client = app_client
    hire_ada(client, admin, outbox)

    res = client.delete("/api/v1/dev/user-by-email?email=ada@x.com", headers=admin["headers"])
    assert res.status_code == 200
    deleted = res.get_json()["data"]["deleted"]
    assert deleted["users"] == 1
    assert deleted["onboardings"] == 1

    res = client.delete("/api/v1/dev/user-by-email", json={"email": "ada@x.com"}, headers=admin["headers"])
    assert res.status_code == 404

    # the email is free for a new offer
    hire_ada(client, admin, outbox)


def test_delete_requires_admin(app_client):
    _app, client = app_client
    res = client.delete("/api/v1/dev/user-by-email?email=ada@x.com")
    assert res.status_code == 401
