import asyncio

import pytest

from conftest import FakeRedis
from storefront.common.database import create_product, fetch_product, get_product_stock
from storefront.common.errors import InsufficientStock, InvalidQuantity, ProductNotFound
from storefront.inventory import service
from storefront.inventory.service import get_product, get_stock, restock, take_stock


async def test_decrement_subtracts_quantity(product):
    new_stock = await take_stock(product["id"], 3)

    assert new_stock == 2
    assert await get_product_stock(product["id"]) == 2


async def test_decrement_beyond_stock_is_rejected(product):
    with pytest.raises(InsufficientStock) as exc:
        await take_stock(product["id"], 6)

    assert exc.value.available == 5
    assert await get_product_stock(product["id"]) == 5


async def test_decrement_unknown_product():
    with pytest.raises(ProductNotFound):
        await take_stock(999, 1)


async def test_concurrent_decrements_never_oversell(product):
    results = await asyncio.gather(
        *(take_stock(product["id"], 1) for _ in range(12)),
        return_exceptions=True,
    )

    taken = [r for r in results if isinstance(r, int)]
    rejected = [r for r in results if isinstance(r, InsufficientStock)]
    assert len(taken) == 5
    assert len(rejected) == 7
    assert await get_product_stock(product["id"]) == 0


async def test_restock_adds_quantity(product):
    updated = await restock(product["id"], 4)

    assert updated["stock"] == 9


@pytest.mark.parametrize("quantity", [0, -2, "3", 1.5, True, None])
async def test_restock_requires_positive_integer(product, quantity):
    with pytest.raises(InvalidQuantity):
        await restock(product["id"], quantity)
    assert await get_product_stock(product["id"]) == 5


async def test_restock_unknown_product():
    with pytest.raises(ProductNotFound):
        await restock(404, 1)


async def test_product_cache_is_written_through(product, monkeypatch):
    cache = FakeRedis()

    async def fake_get_redis():
        return cache

    monkeypatch.setattr(service, "get_redis", fake_get_redis)

    assert (await get_product(product["id"]))["stock"] == 5
    assert cache.store[service.redis_stock_key(product["id"])] == "5"

    await take_stock(product["id"], 2)

    assert await get_stock(product["id"]) == 3
    assert (await get_product(product["id"]))["stock"] == 3


async def test_cache_outage_falls_back_to_database(product, monkeypatch):
    async def broken_get_redis():
        raise ConnectionError("redis is down")

    monkeypatch.setattr(service, "get_redis", broken_get_redis)

    assert await get_stock(product["id"]) == 5
    assert await take_stock(product["id"], 1) == 4


async def test_list_and_detail_endpoints(client, product):
    listed = await client.get("/products")
    detail = await client.get(f"/products/{product['id']}")
    missing = await client.get("/products/999")

    assert [p["name"] for p in (await listed.get_json())["products"]] == ["Recurve Bow"]
    assert (await detail.get_json())["stock"] == 5
    assert missing.status_code == 404
    assert (await missing.get_json())["error"] == "product_not_found"


async def test_search_is_limited_and_sorted(client):
    for i in range(12):
        await create_product(name=f"Arrow {i:02d}", price=1000, stock=1)
    await create_product(name="Quiver", price=5000, stock=1)

    res = await client.get("/products/search?name=arrow")
    empty = await client.get("/products/search?name=%20")

    names = [p["name"] for p in (await res.get_json())["products"]]
    assert names == [f"Arrow {i:02d}" for i in range(10)]
    assert (await empty.get_json())["products"] == []


async def test_create_product_validation(client):
    ok = await client.post("/products", json={"name": " Arm Guard ", "price": 95000, "stock": 3})
    bad = await client.post("/products", json={"name": "Arm Guard", "price": -1, "stock": 3})

    assert ok.status_code == 200
    assert (await ok.get_json())["product"]["name"] == "Arm Guard"
    assert bad.status_code == 400
    assert (await bad.get_json())["error"] == "invalid_product_data"


async def test_restock_endpoint(client, product):
    ok = await client.post(f"/products/{product['id']}/restock", json={"quantity": 10})
    bad = await client.post(f"/products/{product['id']}/restock", json={"quantity": 0})

    assert (await ok.get_json())["product"]["stock"] == 15
    assert bad.status_code == 400
    assert (await bad.get_json())["error"] == "invalid_quantity"
    assert (await fetch_product(product["id"]))["stock"] == 15


async def test_reduce_stock_endpoint(client, product):
    ok = await client.post(f"/products/{product['id']}/reduce-stock", json={"quantity": 2})
    short = await client.post(f"/products/{product['id']}/reduce-stock", json={"quantity": 10})

    assert (await ok.get_json())["stock"] == 3
    assert short.status_code == 400
    assert (await short.get_json())["error"] == "insufficient_stock"
