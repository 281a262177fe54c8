from quart import Blueprint, jsonify, request

from .service import add_product, find_products, get_product, get_products, get_stock, restock, take_stock

bp = Blueprint("inventory", __name__)


@bp.get("/products")
async def products_list():
    items = await get_products()
    return jsonify({"products": items})


@bp.post("/products")
async def products_create():
    data = await request.get_json(force=True, silent=True) or {}
    prod = await add_product(data)
    return jsonify({"success": True, "product": prod})


@bp.get("/products/search")
async def products_search():
    items = await find_products(request.args.get("name"))
    return jsonify({"products": items})


@bp.get("/products/<int:product_id>")
async def product_detail(product_id: int):
    prod = await get_product(product_id)
    stock = await get_stock(product_id)
    return jsonify({"product": prod, "stock": stock})


@bp.post("/products/<int:product_id>/restock")
async def product_restock(product_id: int):
    data = await request.get_json(force=True, silent=True) or {}
    prod = await restock(product_id, data.get("quantity"))
    return jsonify({"success": True, "product": prod})


@bp.post("/products/<int:product_id>/reduce-stock")
async def product_reduce_stock(product_id: int):
    data = await request.get_json(force=True, silent=True) or {}
    new_stock = await take_stock(product_id, data.get("quantity"))
    return jsonify({"success": True, "product_id": product_id, "stock": new_stock})
