from __future__ import annotations

from flask import Blueprint

from actions import organizations
from app.routes.common import ADMIN, body, handle

organizations_bp = Blueprint("organizations", __name__)


@organizations_bp.post("/register")
def register():
    return handle(organizations.register_organization, body(), message="Organization registered", status=201)


@organizations_bp.get("")
def get_organization():
    # Readable while billing is blocked so the admin can see why.
    return handle(organizations.get_organization, {}, access=ADMIN, check_billing=False)


@organizations_bp.put("/profile")
def update_profile():
    return handle(organizations.update_profile, body(), access=ADMIN, with_branding=True, message="Organization updated")


@organizations_bp.post("/departments")
def add_department():
    return handle(organizations.add_department, body(), access=ADMIN, with_branding=True, message="Department added", status=201)


@organizations_bp.put("/departments/<department_id>")
def update_department(department_id: str):
    data = body()
    data["departmentId"] = department_id
    return handle(organizations.update_department, data, access=ADMIN, with_branding=True, message="Department updated")


@organizations_bp.delete("/departments/<department_id>")
def delete_department(department_id: str):
    return handle(
        organizations.delete_department,
        {"departmentId": department_id},
        access=ADMIN,
        with_branding=True,
        message="Department deleted",
    )


@organizations_bp.post("/policies")
def add_policy():
    return handle(organizations.add_policy, body(), access=ADMIN, with_branding=True, message="Policy added", status=201)


@organizations_bp.delete("/policies/<policy_id>")
def delete_policy(policy_id: str):
    return handle(organizations.delete_policy, {"policyId": policy_id}, access=ADMIN, with_branding=True, message="Policy deleted")
