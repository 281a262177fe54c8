import logging
from typing import Any, Dict

from ..common.database import add_cart_item, fetch_cart, fetch_product, remove_cart_item, set_cart_quantity
from ..common.errors import InvalidCartData, ProductNotFound
from ..common.validation import as_int, is_positive_int

_logger = logging.getLogger(__name__)


async def add_to_cart(data: Dict[str, Any]) -> Dict[str, Any]:
    user_id = data.get("user_id")
    product_id = data.get("product_id")
    quantity = data.get("quantity")
    if not (is_positive_int(user_id) and is_positive_int(product_id) and is_positive_int(quantity)):
        raise InvalidCartData("user_id, product_id and a quantity of at least 1 are required")

    if await fetch_product(product_id) is None:
        raise ProductNotFound(f"Product {product_id} not found")

    item = await add_cart_item(user_id, product_id, quantity)
    _logger.info(
        "Cart updated | user_id=%s product_id=%s added=%s quantity=%s",
        user_id, product_id, quantity, item["quantity"],
    )
    return item


async def get_cart(user_id: int) -> Dict[str, Any]:
    items = await fetch_cart(user_id)
    total = round(sum(i["product"]["price"] * i["quantity"] for i in items), 2)
    return {"user_id": user_id, "items": items, "total_amount": total}


async def update_cart_item(user_id: int, data: Dict[str, Any]) -> int:
    product_id = data.get("product_id")
    quantity = data.get("quantity")
    if not (is_positive_int(product_id) and is_positive_int(quantity)):
        raise InvalidCartData("product_id and a quantity of at least 1 are required")
    updated = await set_cart_quantity(user_id, product_id, quantity)
    _logger.info("Cart quantity set | user_id=%s product_id=%s quantity=%s updated=%s", user_id, product_id, quantity, updated)
    return updated


async def remove_from_cart(user_id: int, product_id: Any) -> int:
    parsed = as_int(product_id)
    if not parsed:
        raise InvalidCartData("product_id is invalid")
    deleted = await remove_cart_item(user_id, parsed)
    _logger.info("Cart item removed | user_id=%s product_id=%s deleted=%s", user_id, parsed, deleted)
    return deleted
