from __future__ import annotations

from flask import Blueprint

from actions import employment_forms
from app.middlewares.rate_limit import public_token_route
from app.routes.common import ADMIN, body, handle, query_args

employment_forms_bp = Blueprint("employment_forms", __name__)


@employment_forms_bp.post("")
def create_form():
    return handle(employment_forms.create_employment_form, body(), access=ADMIN, message="Employment form created", status=201)


@employment_forms_bp.get("")
def list_forms():
    return handle(employment_forms.list_forms, query_args(), access=ADMIN)


@employment_forms_bp.get("/<form_id>")
def get_form(form_id: str):
    return handle(employment_forms.get_form, {"formId": form_id}, access=ADMIN)


@employment_forms_bp.put("/<form_id>/review")
def review(form_id: str):
    data = body()
    data["formId"] = form_id
    return handle(employment_forms.review, data, access=ADMIN, message="Employment form reviewed")


@employment_forms_bp.put("/<form_id>/request-revision")
def request_revision(form_id: str):
    data = body()
    data["formId"] = form_id
    return handle(employment_forms.request_revision, data, access=ADMIN, message="Revision requested")


@employment_forms_bp.post("/submit/<token>")
@public_token_route
def submit(token: str):
    data = body()
    data["token"] = token
    return handle(employment_forms.submit, data, message="Employment form submitted successfully")


@employment_forms_bp.post("/submit")
@public_token_route
def submit_without_token():
    return handle(employment_forms.submit, body())


@employment_forms_bp.get("/view/<token>")
@public_token_route
def view(token: str):
    return handle(employment_forms.get_by_token, {"token": token}, with_branding=True)
