from __future__ import annotations

from flask import Blueprint

from actions import onboarding
from app.middlewares.rate_limit import public_token_route
from app.routes.common import ADMIN, body, handle, query_args

onboarding_bp = Blueprint("onboarding", __name__)


def _without_token(out):
    # The raw offer token only travels by email.
    return {k: v for k, v in out.items() if k != "token"}


@onboarding_bp.post("/create-employee")
def create_employee():
    return handle(
        onboarding.create_employee,
        body(),
        access=ADMIN,
        present=_without_token,
        message="Employee created and offer letter sent",
        status=201,
    )


@onboarding_bp.get("/admin/status")
def list_onboardings():
    return handle(onboarding.list_onboardings, query_args(), access=ADMIN)


@onboarding_bp.get("/admin/<onboarding_id>")
def get_onboarding(onboarding_id: str):
    return handle(onboarding.get_onboarding, {"onboardingId": onboarding_id}, access=ADMIN)


@onboarding_bp.post("/<onboarding_id>/revoke")
def revoke(onboarding_id: str):
    data = body()
    data["onboardingId"] = onboarding_id
    return handle(onboarding.revoke_onboarding, data, access=ADMIN, message="Offer revoked")


@onboarding_bp.post("/<onboarding_id>/resend")
def resend(onboarding_id: str):
    return handle(
        onboarding.resend_offer_letter,
        {"onboardingId": onboarding_id},
        access=ADMIN,
        present=_without_token,
        message="Offer letter resent",
    )


@onboarding_bp.get("/<token>")
@public_token_route
def get_details(token: str):
    return handle(onboarding.get_details, {"token": token}, with_branding=True)


@onboarding_bp.post("/<token>/accept")
@public_token_route
def accept(token: str):
    return handle(onboarding.accept_offer, {"token": token}, message="Offer accepted")


@onboarding_bp.post("/<token>/reject")
@public_token_route
def reject(token: str):
    data = body()
    data["token"] = token
    return handle(onboarding.reject_offer, data, message="Offer rejected")


@onboarding_bp.post("/<token>/complete")
@public_token_route
def complete(token: str):
    data = body()
    data["token"] = token
    return handle(onboarding.complete_onboarding, data, message="Onboarding completed successfully. You can now log in.")


@onboarding_bp.post("/<token>/employment-form")
@public_token_route
def ensure_employment_form(token: str):
    return handle(onboarding.ensure_employment_form, {"token": token})
