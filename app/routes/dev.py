from __future__ import annotations

from flask import Blueprint, request

from actions import dev
from app.routes.common import ADMIN, body, handle

dev_bp = Blueprint("dev", __name__)


@dev_bp.delete("/user-by-email")
def delete_user_by_email():
    data = body()
    if not data.get("email"):
        data["email"] = request.args.get("email") or ""
    return handle(dev.delete_user_by_email, data, access=ADMIN, with_org=False, message="User deleted")
