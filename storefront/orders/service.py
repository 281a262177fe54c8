import logging
from typing import Any, Dict, List, Optional

from ..common.database import create_order_with_items, fetch_order, fetch_orders, fetch_product
from ..common.errors import InvalidOrderData, OrderNotFound, ProductNotFound
from ..common.events import ORDER_CREATED, publish_event
from ..common.metrics import ORDERS_CREATED
from ..common.validation import as_amount, as_int
from ..inventory.service import refresh_stock_cache

_logger = logging.getLogger(__name__)

# Declared totals may differ from the item sum by rounding only
TOTAL_TOLERANCE = 0.01


async def _normalize_items(items: List[Any]) -> List[Dict[str, Any]]:
    normalized = []
    for raw in items:
        if not isinstance(raw, dict):
            raise InvalidOrderData("Each order item must be an object")
        product_id = as_int(raw.get("product_id"))
        quantity = as_int(raw.get("quantity"))
        if product_id is None or quantity is None or quantity < 1:
            raise InvalidOrderData("Each order item needs a product_id and a quantity of at least 1")

        if raw.get("price") is None:
            # no client snapshot: capture the live price now
            prod = await fetch_product(product_id)
            if prod is None:
                raise ProductNotFound(f"Product {product_id} not found")
            price = float(prod["price"])
        else:
            price = as_amount(raw.get("price"))
            if price is None or price < 0:
                raise InvalidOrderData("Item price must be a non-negative number")
        normalized.append({"product_id": product_id, "quantity": quantity, "price": price})
    return normalized


async def submit_order(data: Dict[str, Any]) -> Dict[str, Any]:
    """Create a pending order and take its stock in one transaction."""
    user_id = as_int(data.get("user_id"))
    items = data.get("items")
    if not user_id or not isinstance(items, list) or not items:
        raise InvalidOrderData("Order data is incomplete")

    normalized = await _normalize_items(items)
    computed = round(sum(i["price"] * i["quantity"] for i in normalized), 2)

    if data.get("total_amount") is None:
        total_amount = computed
    else:
        total_amount = as_amount(data.get("total_amount"))
        if total_amount is None or abs(total_amount - computed) > TOTAL_TOLERANCE:
            raise InvalidOrderData(f"total_amount does not match the item total ({computed})")

    order = await create_order_with_items(user_id, normalized, total_amount)
    ORDERS_CREATED.inc()
    _logger.info(
        "Order created | order_id=%s user_id=%s items=%s total=%s",
        order["id"], user_id, len(normalized), total_amount,
    )
    await refresh_stock_cache([i["product_id"] for i in normalized])
    await publish_event(ORDER_CREATED, {
        "order_id": order["id"],
        "user_id": user_id,
        "total_amount": total_amount,
        "items": [{"product_id": i["product_id"], "quantity": i["quantity"]} for i in normalized],
    })
    return order


async def get_order(order_id: int) -> Dict[str, Any]:
    order = await fetch_order(order_id)
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found")
    return order


async def list_orders(user_id: Optional[int] = None) -> List[Dict[str, Any]]:
    return await fetch_orders(user_id)
