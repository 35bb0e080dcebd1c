from __future__ import annotations

from flask import Blueprint

from actions import contracts
from app.middlewares.rate_limit import client_ip, public_token_route
from app.routes.common import ADMIN, body, handle, query_args

contracts_bp = Blueprint("contracts", __name__)


@contracts_bp.post("")
def create_contract():
    return handle(contracts.create_contract, body(), access=ADMIN, message="Contract created", status=201)


@contracts_bp.get("")
def list_contracts():
    return handle(contracts.list_contracts, query_args(), access=ADMIN)


@contracts_bp.get("/<contract_id>")
def get_contract(contract_id: str):
    return handle(contracts.get_contract, {"contractId": contract_id}, access=ADMIN)


@contracts_bp.post("/<contract_id>/send")
def send_contract(contract_id: str):
    return handle(contracts.send_contract, {"contractId": contract_id}, access=ADMIN, message="Contract sent")


@contracts_bp.post("/<contract_id>/complete")
def complete_contract(contract_id: str):
    return handle(contracts.complete_contract, {"contractId": contract_id}, access=ADMIN, message="Contract completed")


@contracts_bp.post("/<contract_id>/terminate")
def terminate_contract(contract_id: str):
    data = body()
    data["contractId"] = contract_id
    return handle(contracts.terminate_contract, data, access=ADMIN, message="Contract terminated")


@contracts_bp.get("/view/<token>")
@public_token_route
def view(token: str):
    return handle(contracts.view_by_token, {"token": token})


@contracts_bp.post("/sign/<token>")
@public_token_route
def sign(token: str):
    data = body()
    data["token"] = token
    data["ipAddress"] = client_ip()
    return handle(contracts.sign_contract, data, message="Contract signed successfully")
