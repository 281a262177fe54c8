from typing import Any, Dict, List, Optional
import json
import logging

from redis.exceptions import RedisError

from ..common.config import settings
from ..common.database import (
    create_product,
    decrement_stock,
    fetch_product,
    fetch_products,
    get_product_stock,
    increment_stock,
    search_products,
)
from ..common.errors import InvalidProductData, InvalidQuantity, ProductNotFound
from ..common.events import STOCK_RESTOCKED, publish_event
from ..common.redis_client import get_redis
from ..common.validation import is_positive_int

_logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10


def redis_stock_key(product_id: int) -> str:
    return f"product:{product_id}:stock"


def redis_product_key(product_id: int) -> str:
    return f"product:{product_id}:data"


async def _cache_get(key: str) -> Optional[str]:
    try:
        r = await get_redis()
        return await r.get(key) if r is not None else None
    except (RedisError, OSError) as e:
        _logger.warning("Cache read failed, using DB | key=%s err=%s", key, e)
        return None


async def _cache_stock(product_id: int, stock: int) -> None:
    """Write the new stock level through to both cache keys."""
    try:
        r = await get_redis()
        if r is None:
            return
        await r.set(redis_stock_key(product_id), stock, ex=settings.REDIS_CACHE_TTL)
        prod_json = await r.get(redis_product_key(product_id))
        if prod_json:
            prod = json.loads(prod_json)
            prod["stock"] = stock
            await r.set(redis_product_key(product_id), json.dumps(prod), ex=settings.REDIS_CACHE_TTL)
    except (RedisError, OSError) as e:
        _logger.warning("Cache write failed | product_id=%s err=%s", product_id, e)


async def _cache_product(prod: Dict[str, Any]) -> None:
    try:
        r = await get_redis()
        if r is None:
            return
        await r.set(redis_product_key(prod["id"]), json.dumps(prod), ex=settings.REDIS_CACHE_TTL)
        await r.set(redis_stock_key(prod["id"]), int(prod["stock"]), ex=settings.REDIS_CACHE_TTL)
    except (RedisError, OSError) as e:
        _logger.warning("Cache write failed | product_id=%s err=%s", prod["id"], e)


async def get_stock(product_id: int) -> Optional[int]:
    cached = await _cache_get(redis_stock_key(product_id))
    if cached is not None:
        try:
            value = int(cached)
            _logger.debug("Cache hit: stock | product_id=%s stock=%s", product_id, value)
            return value
        except ValueError:
            pass
    stock = await get_product_stock(product_id)
    _logger.info("DB get stock | product_id=%s stock=%s (cache miss)", product_id, stock)
    if stock is not None:
        await _cache_stock(product_id, stock)
    return stock


async def get_product(product_id: int) -> Dict[str, Any]:
    raw = await _cache_get(redis_product_key(product_id))
    if raw:
        try:
            obj = json.loads(raw)
            _logger.debug("Cache hit: product | product_id=%s", product_id)
            return obj
        except ValueError:
            pass
    prod = await fetch_product(product_id)
    if prod is None:
        raise ProductNotFound(f"Product {product_id} not found")
    _logger.info("DB get product | product_id=%s", product_id)
    await _cache_product(prod)
    return prod


async def get_products() -> List[Dict[str, Any]]:
    return await fetch_products()


async def find_products(name: Optional[str]) -> List[Dict[str, Any]]:
    if not name or not name.strip():
        return []
    return await search_products(name.strip(), limit=SEARCH_LIMIT)


async def add_product(data: Dict[str, Any]) -> Dict[str, Any]:
    name = data.get("name")
    price = data.get("price")
    stock = data.get("stock")
    image_url = data.get("image_url")
    if (
        not isinstance(name, str)
        or not name.strip()
        or isinstance(price, bool)
        or not isinstance(price, (int, float))
        or price < 0
        or isinstance(stock, bool)
        or not isinstance(stock, int)
        or stock < 0
        or (image_url is not None and not isinstance(image_url, str))
    ):
        raise InvalidProductData("Fields 'name', 'price' and 'stock' are required and must be valid")
    prod = await create_product(
        name=name.strip(),
        price=float(price),
        stock=stock,
        image_url=image_url.strip() if image_url else None,
        description=str(data.get("description") or ""),
    )
    _logger.info("Product created | product_id=%s stock=%s", prod["id"], prod["stock"])
    return prod


async def take_stock(product_id: int, quantity: int) -> int:
    """Conditionally decrement a single product; raises InsufficientStock."""
    if not is_positive_int(quantity):
        raise InvalidQuantity("Quantity must be a positive integer")
    new_stock = await decrement_stock(product_id, quantity)
    _logger.info("Stock decremented | product_id=%s qty=%s new_stock=%s", product_id, quantity, new_stock)
    await _cache_stock(product_id, new_stock)
    return new_stock


async def restock(product_id: int, quantity: Any) -> Dict[str, Any]:
    if not is_positive_int(quantity):
        raise InvalidQuantity("Restock quantity must be an integer of at least 1")
    new_stock = await increment_stock(product_id, quantity)
    _logger.info("Restocked | product_id=%s added=%s new_stock=%s", product_id, quantity, new_stock)
    await _cache_stock(product_id, new_stock)
    await publish_event(STOCK_RESTOCKED, {"product_id": product_id, "added": quantity, "stock": new_stock})
    return await fetch_product(product_id)


async def refresh_stock_cache(product_ids: List[int]) -> None:
    if not settings.REDIS_ENABLED:
        return
    for product_id in set(product_ids):
        stock = await get_product_stock(product_id)
        if stock is not None:
            await _cache_stock(product_id, stock)
