from quart import Blueprint, jsonify, request

from .service import add_to_cart, get_cart, remove_from_cart, update_cart_item
from ..common.errors import InvalidCartData

bp = Blueprint("cart", __name__)


async def _json_body() -> dict:
    data = await request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise InvalidCartData("Request body must be a JSON object")
    return data


@bp.post("/cart")
async def cart_add():
    item = await add_to_cart(await _json_body())
    return jsonify({"success": True, "item": item})


@bp.get("/cart/<int:user_id>")
async def cart_get(user_id: int):
    cart = await get_cart(user_id)
    return jsonify({"success": True, **cart})


@bp.put("/cart/<int:user_id>")
async def cart_update(user_id: int):
    updated = await update_cart_item(user_id, await _json_body())
    return jsonify({"success": True, "updated": updated})


@bp.delete("/cart/<int:user_id>")
async def cart_remove(user_id: int):
    # product_id from the query string, falling back to the body
    product_id = request.args.get("product_id")
    if product_id is None:
        data = await request.get_json(force=True, silent=True) or {}
        product_id = data.get("product_id") if isinstance(data, dict) else None
    deleted = await remove_from_cart(user_id, product_id)
    return jsonify({"success": True, "deleted": deleted})
