async def test_health(client):
    res = await client.get("/health")

    assert res.status_code == 200
    assert (await res.get_json())["status"] == "ok"


async def test_unknown_route_keeps_its_http_status(client):
    res = await client.get("/no-such-page")

    assert res.status_code == 404


async def test_wrong_method_keeps_its_http_status(client):
    res = await client.delete("/orders")

    assert res.status_code == 405


async def test_metrics_group_dynamic_routes(client, product):
    await client.get(f"/products/{product['id']}")
    await client.get("/cart/7")

    res = await client.get("/metrics")

    text = (await res.get_data()).decode()
    assert 'endpoint="/products/<id>"' in text
    assert 'endpoint="/cart/<user_id>"' in text


async def test_http_errors_render_as_json(client):
    res = await client.get("/no-such-page")

    body = await res.get_json()
    assert body["success"] is False
    assert body["error"] == "not_found"
