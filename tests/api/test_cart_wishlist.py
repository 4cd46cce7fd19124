import httpx
from httpx import ASGITransport


async def test_guest_cart_add_and_read(client, catalog):
    product = await catalog.add(name="Candle", price=12.5, stock=5)

    r = await client.post(
        "/api/cart/add",
        json={"productId": product.id, "quantity": 2, "selectedColor": "amber"},
    )
    assert r.status_code == 200, r.text
    assert r.json()["success"] is True

    await client.post(
        "/api/cart/add",
        json={"productId": product.id, "quantity": 1, "selectedColor": "amber"},
    )
    cart = (await client.get("/api/cart")).json()
    assert cart["count"] == 3
    assert len(cart["items"]) == 1
    assert cart["items"][0]["price"] == 12.5


async def test_cart_add_beyond_stock(client, catalog):
    product = await catalog.add(name="Candle", price=1.0, stock=2)
    r = await client.post("/api/cart/add", json={"productId": product.id, "quantity": 3})
    assert r.status_code == 400
    assert r.json()["message"] == "Insufficient stock"


async def test_cart_add_unknown_or_inactive_product(client, catalog):
    retired = await catalog.add(name="Old", price=1.0, stock=2, is_active=False)
    for pid in ("missing", retired.id):
        r = await client.post("/api/cart/add", json={"productId": pid})
        assert r.status_code == 404
        assert r.json()["message"] == "Product not found or unavailable"


async def test_cart_add_validates_quantity(client, catalog):
    product = await catalog.add(name="Candle", price=1.0, stock=2)
    r = await client.post("/api/cart/add", json={"productId": product.id, "quantity": 0})
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"


async def test_guest_carts_are_per_session(client, catalog, app):
    product = await catalog.add(name="Candle", price=1.0, stock=9)
    await client.post("/api/cart/add", json={"productId": product.id})

    async with httpx.AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as other:
        r = await other.get("/api/cart")
        assert r.json()["count"] == 0


async def test_wishlist_add_remove(client, catalog):
    a = await catalog.add(name="A", price=1.0, stock=1)
    b = await catalog.add(name="B", price=2.0, stock=0)

    await client.post("/api/wishlist", json={"productId": a.id})
    r = await client.post("/api/wishlist", json={"productId": b.id})
    assert r.json()["productIds"] == [a.id, b.id]

    # Adding twice keeps one entry
    r = await client.post("/api/wishlist", json={"productId": a.id})
    assert r.json()["productIds"] == [a.id, b.id]

    r = await client.request("DELETE", "/api/wishlist", json={"productId": a.id})
    assert r.json() == {"success": True, "productIds": [b.id]}

    body = (await client.get("/api/wishlist")).json()
    assert body["productIds"] == [b.id]
    assert body["products"][0]["name"] == "B"


async def test_customer_cart_is_scoped_to_account(client, catalog, make_user, login):
    product = await catalog.add(name="Candle", price=1.0, stock=9)
    await make_user()
    await login()
    await client.post("/api/cart/add", json={"productId": product.id, "quantity": 2})

    await client.post("/api/auth/logout")
    assert (await client.get("/api/cart")).json()["count"] == 0

    await login()
    assert (await client.get("/api/cart")).json()["count"] == 2
