import asyncio

import pytest

from storefront.cart.service import add_to_cart, get_cart
from storefront.common.database import create_product
from storefront.common.errors import InvalidCartData


async def test_add_creates_cart_line(client, product):
    res = await client.post("/cart", json={"user_id": 7, "product_id": product["id"], "quantity": 2})

    body = await res.get_json()
    assert res.status_code == 200
    assert body["item"]["quantity"] == 2
    assert body["item"]["product_id"] == product["id"]


async def test_adding_same_product_merges_quantity(product):
    first = await add_to_cart({"user_id": 7, "product_id": product["id"], "quantity": 2})
    second = await add_to_cart({"user_id": 7, "product_id": product["id"], "quantity": 3})

    cart = await get_cart(7)
    assert second["id"] == first["id"]
    assert second["quantity"] == 5
    assert len(cart["items"]) == 1


async def test_concurrent_adds_merge_into_one_line(product):
    await asyncio.gather(
        *(add_to_cart({"user_id": 7, "product_id": product["id"], "quantity": 1}) for _ in range(6))
    )

    cart = await get_cart(7)
    assert [i["quantity"] for i in cart["items"]] == [6]


@pytest.mark.parametrize("payload", [
    {"product_id": 1, "quantity": 1},
    {"user_id": 7, "product_id": "1", "quantity": 1},
    {"user_id": 7, "product_id": 1, "quantity": 0},
    {"user_id": 7, "product_id": 1, "quantity": 1.5},
])
async def test_invalid_cart_data_is_rejected(product, payload):
    with pytest.raises(InvalidCartData):
        await add_to_cart(payload)


async def test_unknown_product_cannot_be_added(client):
    res = await client.post("/cart", json={"user_id": 7, "product_id": 404, "quantity": 1})

    assert res.status_code == 404
    assert (await res.get_json())["error"] == "product_not_found"


async def test_cart_lists_products_and_total(client, product):
    quiver = await create_product(name="Quiver", price=2500, stock=4)
    await add_to_cart({"user_id": 7, "product_id": product["id"], "quantity": 2})
    await add_to_cart({"user_id": 7, "product_id": quiver["id"], "quantity": 1})
    await add_to_cart({"user_id": 8, "product_id": quiver["id"], "quantity": 3})

    res = await client.get("/cart/7")

    body = await res.get_json()
    assert [i["product"]["name"] for i in body["items"]] == ["Recurve Bow", "Quiver"]
    assert body["total_amount"] == 22500


async def test_update_sets_quantity(client, product):
    await add_to_cart({"user_id": 7, "product_id": product["id"], "quantity": 2})

    ok = await client.put("/cart/7", json={"product_id": product["id"], "quantity": 4})
    bad = await client.put("/cart/7", json={"product_id": product["id"], "quantity": 0})

    assert (await ok.get_json())["updated"] == 1
    assert bad.status_code == 400
    assert (await bad.get_json())["error"] == "invalid_cart_data"
    assert (await get_cart(7))["items"][0]["quantity"] == 4


async def test_remove_by_query_or_body(client, product):
    quiver = await create_product(name="Quiver", price=2500, stock=4)
    await add_to_cart({"user_id": 7, "product_id": product["id"], "quantity": 1})
    await add_to_cart({"user_id": 7, "product_id": quiver["id"], "quantity": 1})

    by_query = await client.delete(f"/cart/7?product_id={product['id']}")
    by_body = await client.delete("/cart/7", json={"product_id": quiver["id"]})
    missing = await client.delete("/cart/7")

    assert (await by_query.get_json())["deleted"] == 1
    assert (await by_body.get_json())["deleted"] == 1
    assert missing.status_code == 400
    assert (await get_cart(7))["items"] == []
