from quart import Blueprint, jsonify, request

from .service import get_order, list_orders, submit_order
from ..common.errors import InvalidOrderData

bp = Blueprint("orders", __name__)


@bp.post("/orders")
async def orders_create():
    data = await request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise InvalidOrderData("Order data is incomplete")
    order = await submit_order(data)
    return jsonify({"success": True, "order": order})


@bp.get("/orders")
async def orders_list():
    raw_user_id = request.args.get("user_id")
    user_id = None
    if raw_user_id is not None:
        if not raw_user_id.isdigit():
            raise InvalidOrderData("user_id must be an integer")
        user_id = int(raw_user_id)
    orders = await list_orders(user_id)
    return jsonify({"success": True, "orders": orders})


@bp.get("/orders/<int:order_id>")
async def orders_detail(order_id: int):
    order = await get_order(order_id)
    return jsonify({"success": True, "order": order})
