from __future__ import annotations

from flask import Blueprint

from actions import hiring
from app.routes.common import ADMIN, body, handle, query_args

hiring_bp = Blueprint("hiring", __name__)


@hiring_bp.post("/candidates")
def create_candidate():
    return handle(hiring.create_candidate, body(), access=ADMIN, message="Candidate created", status=201)


@hiring_bp.get("/applications")
def list_applications():
    return handle(hiring.list_applications, query_args(), access=ADMIN)


@hiring_bp.get("/applications/<application_id>")
def get_application(application_id: str):
    return handle(hiring.get_application, {"applicationId": application_id}, access=ADMIN)


@hiring_bp.put("/applications/<application_id>/move")
def move_stage(application_id: str):
    data = body()
    data["applicationId"] = application_id
    return handle(hiring.move_stage, data, access=ADMIN, message="Application moved")
