from __future__ import annotations

from flask import Blueprint

from actions import appointments
from app.middlewares.rate_limit import public_token_route
from app.routes.common import ADMIN, body, handle, query_args

appointments_bp = Blueprint("appointments", __name__)


@appointments_bp.post("")
def send_letter():
    return handle(appointments.send_letter, body(), access=ADMIN, message="Appointment letter sent", status=201)


@appointments_bp.get("")
def list_letters():
    return handle(appointments.list_letters, query_args(), access=ADMIN)


@appointments_bp.get("/<letter_id>")
def get_letter(letter_id: str):
    return handle(appointments.get_letter, {"letterId": letter_id}, access=ADMIN)


@appointments_bp.get("/view/<token>")
@public_token_route
def view(token: str):
    return handle(appointments.mark_as_viewed, {"token": token})


@appointments_bp.post("/respond/<token>")
@public_token_route
def respond(token: str):
    data = body()
    data["token"] = token
    return handle(appointments.respond, data, message="Response recorded")
