"""Bio link and social link CRUD."""

from __future__ import annotations

from httpx import AsyncClient


async def _create(client: AsyncClient, account, **fields) -> dict:
    body = {"title": "Link", "url": "example.com", **fields}
    response = await client.post("/api/links", json=body, headers=account.headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestLinks:
    async def test_create_appends_and_normalizes_url(self, client: AsyncClient, user):
        first = await _create(client, user, title="One")
        second = await _create(client, user, title="Two", url="mailto:me@example.com")
        assert first["order"] == 0
        assert first["url"] == "https://example.com"
        assert first["layout"] == "simple"
        assert second["order"] == 1
        assert second["url"] == "mailto:me@example.com"

    async def test_create_after_explicit_order(self, client: AsyncClient, user):
        await _create(client, user, order=7)
        assert (await _create(client, user))["order"] == 8

    async def test_invalid_layout(self, client: AsyncClient, user):
        response = await client.post(
            "/api/links", json={"title": "x", "url": "x.com", "layout": "carousel"}, headers=user.headers
        )
        assert response.status_code == 400
        assert response.json()["detail"].startswith("Layout must be one of")

    async def test_missing_title_names_the_field(self, client: AsyncClient, user):
        response = await client.post("/api/links", json={"url": "example.com"}, headers=user.headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "title: Field required"

    async def test_list_is_scoped_to_owner(self, client: AsyncClient, user, make_user):
        other = await make_user()
        await _create(client, user, title="Mine")
        await _create(client, other, title="Theirs")
        response = await client.get("/api/links", headers=user.headers)
        assert [link["title"] for link in response.json()] == ["Mine"]

    async def test_update(self, client: AsyncClient, user):
        link = await _create(client, user)
        response = await client.patch(
            f"/api/links/{link['id']}",
            json={"title": "Renamed", "url": "new.example.com", "is_visible": False},
            headers=user.headers,
        )
        data = response.json()
        assert data["title"] == "Renamed"
        assert data["url"] == "https://new.example.com"
        assert data["is_visible"] is False

    async def test_update_other_users_link(self, client: AsyncClient, user, make_user):
        other = await make_user()
        link = await _create(client, other)
        response = await client.patch(f"/api/links/{link['id']}", json={"title": "Hijack"}, headers=user.headers)
        assert response.status_code == 404

    async def test_delete_keeps_sibling_orders(self, client: AsyncClient, user):
        a = await _create(client, user, title="A")
        b = await _create(client, user, title="B")
        c = await _create(client, user, title="C")
        response = await client.delete(f"/api/links/{b['id']}", headers=user.headers)
        assert response.json() == {"success": True}

        remaining = (await client.get("/api/links", headers=user.headers)).json()
        assert [(link["id"], link["order"]) for link in remaining] == [(a["id"], 0), (c["id"], 2)]

    async def test_delete_missing(self, client: AsyncClient, user):
        response = await client.delete("/api/links/999", headers=user.headers)
        assert response.status_code == 404


class TestReorder:
    async def test_reorder(self, client: AsyncClient, user):
        a = await _create(client, user, title="A")
        b = await _create(client, user, title="B")
        response = await client.patch(
            "/api/links/reorder",
            json={"links": [{"id": a["id"], "order": 1}, {"id": b["id"], "order": 0}]},
            headers=user.headers,
        )
        assert response.status_code == 200
        assert [link["title"] for link in response.json()] == ["B", "A"]

    async def test_empty_list(self, client: AsyncClient, user):
        response = await client.patch("/api/links/reorder", json={"links": []}, headers=user.headers)
        assert response.status_code == 400

    async def test_duplicate_ids(self, client: AsyncClient, user):
        a = await _create(client, user)
        response = await client.patch(
            "/api/links/reorder",
            json={"links": [{"id": a["id"], "order": 0}, {"id": a["id"], "order": 1}]},
            headers=user.headers,
        )
        assert response.status_code == 400

    async def test_foreign_id_changes_nothing(self, client: AsyncClient, user, make_user):
        other = await make_user()
        mine = await _create(client, user)
        theirs = await _create(client, other)
        response = await client.patch(
            "/api/links/reorder",
            json={"links": [{"id": mine["id"], "order": 5}, {"id": theirs["id"], "order": 0}]},
            headers=user.headers,
        )
        assert response.status_code == 404
        assert response.json()["detail"] == f"Link not found: {theirs['id']}"

        links = (await client.get("/api/links", headers=user.headers)).json()
        assert links[0]["order"] == 0


class TestSocials:
    async def test_crud(self, client: AsyncClient, user):
        created = await client.post(
            "/api/socials", json={"platform": "x", "url": "x.com/owner", "icon": "x"}, headers=user.headers
        )
        assert created.status_code == 201
        social = created.json()
        assert social["url"] == "https://x.com/owner"

        updated = await client.patch(
            f"/api/socials/{social['id']}", json={"url": "https://x.com/renamed"}, headers=user.headers
        )
        assert updated.json()["url"] == "https://x.com/renamed"
        assert updated.json()["platform"] == "x"

        listed = await client.get("/api/socials", headers=user.headers)
        assert len(listed.json()) == 1

        deleted = await client.delete(f"/api/socials/{social['id']}", headers=user.headers)
        assert deleted.json() == {"success": True}
        assert (await client.get("/api/socials", headers=user.headers)).json() == []

    async def test_missing_field(self, client: AsyncClient, user):
        response = await client.post("/api/socials", json={"platform": "x", "url": "x.com"}, headers=user.headers)
        assert response.status_code == 400

    async def test_other_users_social(self, client: AsyncClient, user, make_user):
        other = await make_user()
        social = (
            await client.post(
                "/api/socials", json={"platform": "x", "url": "x.com/o", "icon": "x"}, headers=other.headers
            )
        ).json()
        response = await client.delete(f"/api/socials/{social['id']}", headers=user.headers)
        assert response.status_code == 404
