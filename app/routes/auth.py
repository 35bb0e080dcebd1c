from __future__ import annotations

from flask import Blueprint

from actions import auth_actions
from app.routes.common import SESSION, bearer_token, body, handle

auth_bp = Blueprint("auth", __name__)


@auth_bp.post("/login")
def login():
    return handle(auth_actions.login, body(), message="Login successful")


@auth_bp.post("/logout")
def logout():
    return handle(auth_actions.logout, {}, access=SESSION, extra={"token": bearer_token()}, message="Logged out")


@auth_bp.get("/me")
def me():
    return handle(auth_actions.me, {}, access=SESSION)
