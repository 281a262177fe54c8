from quart import Blueprint, current_app, jsonify, request

from .service import initiate_payment, poll_gateway_status, query_payment, verify
from ..common.errors import InvalidPaymentData

bp = Blueprint("payments", __name__)


def _gateway_rng():
    # tests install a seeded/fixed random.Random here
    return current_app.config.get("PAYMENT_RNG")


async def _json_body() -> dict:
    data = await request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise InvalidPaymentData("Request body must be a JSON object")
    return data


@bp.post("/payment")
async def payment_create():
    result = await initiate_payment(await _json_body(), rng=_gateway_rng())
    status = 200 if result.get("success") else 400
    return jsonify(result), status


@bp.post("/payment/verify")
async def payment_verify():
    result = await verify(await _json_body(), rng=_gateway_rng())
    status = 200 if result.get("success") else 400
    return jsonify(result), status


@bp.get("/payment")
async def payment_get():
    payment = await query_payment(
        transaction_id=request.args.get("transaction_id"),
        order_id=request.args.get("order_id"),
    )
    return jsonify({"success": True, "payment": payment})


@bp.get("/payment/status")
async def payment_status():
    result = await poll_gateway_status(request.args.get("transaction_id"), rng=_gateway_rng())
    return jsonify(result)
