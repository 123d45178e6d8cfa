"""Bio page shop: premium-gated creation, owner CRUD and the public listing."""

from __future__ import annotations

import pytest_asyncio
from httpx import AsyncClient

from hml.db.models import User

MUG = {"name": "Mug", "price_cents": 1500, "description": "Ceramic"}


@pytest_asyncio.fixture
async def seller(make_user):
    return await make_user(username="seller", is_premium=True, premium_plan_type="lifetime", is_published=True)


class TestOwnerProducts:
    async def test_free_user_cannot_add(self, client: AsyncClient, user):
        response = await client.post("/api/products", json=MUG, headers=user.headers)
        assert response.status_code == 403

    async def test_add_appends_in_order(self, client: AsyncClient, seller):
        first = await client.post("/api/products", json=MUG, headers=seller.headers)
        second = await client.post(
            "/api/products",
            json={"name": "E-book", "price_cents": 0, "product_type": "digital"},
            headers=seller.headers,
        )
        assert first.status_code == 201
        assert first.json()["position"] == 0
        assert first.json()["product_type"] == "physical"
        assert second.json()["position"] == 1

        listed = await client.get("/api/products", headers=seller.headers)
        assert [p["name"] for p in listed.json()] == ["Mug", "E-book"]

    async def test_negative_price_is_rejected(self, client: AsyncClient, seller):
        response = await client.post("/api/products", json={"name": "Bad", "price_cents": -1}, headers=seller.headers)
        assert response.status_code == 400
        assert response.json()["detail"].startswith("price_cents: ")

    async def test_update_is_partial(self, client: AsyncClient, seller):
        created = (await client.post("/api/products", json=MUG, headers=seller.headers)).json()
        response = await client.patch(
            f"/api/products/{created['id']}", json={"price_cents": 1800, "name": None}, headers=seller.headers
        )
        assert response.status_code == 200
        data = response.json()
        assert data["price_cents"] == 1800
        assert data["name"] == "Mug"
        assert data["description"] == "Ceramic"

    async def test_delete(self, client: AsyncClient, seller):
        created = (await client.post("/api/products", json=MUG, headers=seller.headers)).json()
        response = await client.delete(f"/api/products/{created['id']}", headers=seller.headers)
        assert response.json() == {"success": True}
        assert (await client.get("/api/products", headers=seller.headers)).json() == []

    async def test_other_users_product_is_not_found(self, client: AsyncClient, seller, user):
        created = (await client.post("/api/products", json=MUG, headers=seller.headers)).json()
        edit = await client.patch(f"/api/products/{created['id']}", json={"price_cents": 1}, headers=user.headers)
        delete = await client.delete(f"/api/products/{created['id']}", headers=user.headers)
        assert edit.status_code == 404
        assert delete.status_code == 404
        assert (await client.get("/api/products", headers=user.headers)).json() == []

    async def test_lapsed_seller_can_still_edit(self, client: AsyncClient, seller, db_scope):
        created = (await client.post("/api/products", json=MUG, headers=seller.headers)).json()
        async with db_scope() as db:
            stored = await db.get(User, seller.id)
            stored.is_premium = False
            await db.commit()

        response = await client.patch(
            f"/api/products/{created['id']}", json={"is_active": False}, headers=seller.headers
        )
        assert response.status_code == 200
        assert response.json()["is_active"] is False


class TestPublicProducts:
    async def test_lists_active_products(self, client: AsyncClient, seller):
        await client.post("/api/products", json=MUG, headers=seller.headers)
        old = {"name": "Old", "price_cents": 5}
        hidden = (await client.post("/api/products", json=old, headers=seller.headers)).json()
        await client.patch(f"/api/products/{hidden['id']}", json={"is_active": False}, headers=seller.headers)

        response = await client.get("/api/public/Seller/products")
        assert response.status_code == 200
        data = response.json()
        assert data["username"] == "seller"
        assert [p["name"] for p in data["products"]] == ["Mug"]
        assert "is_active" not in data["products"][0]

    async def test_shop_turned_off_lists_nothing(self, client: AsyncClient, seller):
        await client.post("/api/products", json=MUG, headers=seller.headers)
        await client.patch("/api/user/profile", json={"show_products": False}, headers=seller.headers)

        response = await client.get("/api/public/seller/products")
        assert response.status_code == 200
        assert response.json()["products"] == []

    async def test_unpublished_page_is_not_found(self, client: AsyncClient, user):
        response = await client.get("/api/public/owner/products")
        assert response.status_code == 404
