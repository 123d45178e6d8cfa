"""Profile editing, username claim, publishing and the public page."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from httpx import AsyncClient


def _future(days: int = 30) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


class TestProfile:
    async def test_get_profile_defaults(self, client: AsyncClient, user):
        response = await client.get("/api/user/profile", headers=user.headers)
        assert response.status_code == 200
        data = response.json()
        assert data["username"] == "owner"
        assert data["template"] == "default"
        assert data["is_published"] is False
        assert data["is_premium"] is False

    async def test_partial_update_leaves_other_fields(self, client: AsyncClient, user):
        await client.patch("/api/user/profile", json={"bio": "Hello", "theme_color": "#ff0000"}, headers=user.headers)
        response = await client.patch("/api/user/profile", json={"name": "Owner"}, headers=user.headers)
        data = response.json()
        assert data["name"] == "Owner"
        assert data["bio"] == "Hello"
        assert data["theme_color"] == "#ff0000"

    async def test_bad_color_is_rejected(self, client: AsyncClient, user):
        response = await client.patch("/api/user/profile", json={"theme_color": "red"}, headers=user.headers)
        assert response.status_code == 400

    async def test_premium_template_requires_premium(self, client: AsyncClient, user):
        response = await client.patch("/api/user/profile", json={"template": "neon"}, headers=user.headers)
        assert response.status_code == 403

    async def test_background_video_requires_premium(self, client: AsyncClient, user):
        response = await client.patch(
            "/api/user/profile", json={"background_video": "/uploads/videos/a.mp4"}, headers=user.headers
        )
        assert response.status_code == 403

    async def test_premium_user_can_pick_template(self, client: AsyncClient, make_user):
        premium = await make_user(is_premium=True, premium_plan_type="lifetime")
        response = await client.patch("/api/user/profile", json={"template": "neon"}, headers=premium.headers)
        assert response.status_code == 200
        assert response.json()["template"] == "neon"

    async def test_lapsed_promo_cannot_pick_template(self, client: AsyncClient, make_user):
        lapsed = await make_user(
            is_premium=True,
            premium_plan_type="promo",
            premium_expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        )
        response = await client.patch("/api/user/profile", json={"template": "neon"}, headers=lapsed.headers)
        assert response.status_code == 403


class TestPremiumStatus:
    async def test_free_user(self, client: AsyncClient, user):
        response = await client.get("/api/user/premium-status", headers=user.headers)
        assert response.json() == {
            "is_premium": False,
            "stored_is_premium": False,
            "plan_type": None,
            "started_at": None,
            "expires_at": None,
            "has_subscription": False,
        }

    async def test_monthly_subscriber(self, client: AsyncClient, make_user):
        subscriber = await make_user(
            is_premium=True,
            premium_plan_type="monthly",
            premium_expires_at=_future(),
            stripe_subscription_id="sub_1",
        )
        data = (await client.get("/api/user/premium-status", headers=subscriber.headers)).json()
        assert data["is_premium"] is True
        assert data["plan_type"] == "monthly"
        assert data["has_subscription"] is True


class TestUsername:
    async def test_claim_once(self, client: AsyncClient, make_user):
        account = await make_user()
        response = await client.post("/api/user/username", json={"username": "MyName"}, headers=account.headers)
        assert response.status_code == 200
        assert response.json()["username"] == "myname"
        assert response.json()["username_is_custom"] is True

        again = await client.post("/api/user/username", json={"username": "other"}, headers=account.headers)
        assert again.status_code == 409

    async def test_claim_taken(self, client: AsyncClient, user, make_user):
        account = await make_user()
        response = await client.post("/api/user/username", json={"username": "OWNER"}, headers=account.headers)
        assert response.status_code == 409
        assert response.json()["detail"] == "Username is already taken"

    async def test_claim_invalid(self, client: AsyncClient, make_user):
        account = await make_user()
        response = await client.post("/api/user/username", json={"username": "a b"}, headers=account.headers)
        assert response.status_code == 400

    async def test_claim_route_like_name(self, client: AsyncClient, make_user):
        account = await make_user()
        response = await client.post("/api/user/username", json={"username": "admin"}, headers=account.headers)
        assert response.status_code == 200
        assert response.json()["username"] == "admin"

    async def test_claim_with_surrounding_whitespace_is_rejected(self, client: AsyncClient, make_user, fetch_user):
        account = await make_user()
        response = await client.post("/api/user/username", json={"username": " abc "}, headers=account.headers)
        assert response.status_code == 400
        assert (await fetch_user(account.id)).username_is_custom is False

    async def test_check_available(self, client: AsyncClient, database):
        response = await client.get("/api/username/check", params={"username": "Fresh_Name"})
        assert response.json() == {"available": True, "username": "fresh_name", "error": None}

    async def test_check_taken(self, client: AsyncClient, user):
        response = await client.get("/api/username/check", params={"username": "Owner"})
        assert response.json()["available"] is False

    async def test_check_own_username_is_available(self, client: AsyncClient, user):
        response = await client.get("/api/username/check", params={"username": "owner"}, headers=user.headers)
        assert response.json()["available"] is True

    async def test_check_reports_format_error(self, client: AsyncClient, database):
        data = (await client.get("/api/username/check", params={"username": "ab"})).json()
        assert data["available"] is False
        assert data["error"] == "Username must be at least 3 characters"


class TestPublish:
    async def test_generated_username_needs_a_choice(self, client: AsyncClient, make_user):
        account = await make_user()
        response = await client.post("/api/user/publish", headers=account.headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Choose a username before publishing"

    async def test_publish_with_username_claims_it(self, client: AsyncClient, make_user):
        account = await make_user()
        response = await client.post("/api/user/publish", json={"username": "chosen"}, headers=account.headers)
        assert response.status_code == 200
        data = response.json()
        assert data["is_published"] is True
        assert data["username"] == "chosen"
        assert data["username_is_custom"] is True

    async def test_publish_is_idempotent(self, client: AsyncClient, user):
        first = await client.post("/api/user/publish", headers=user.headers)
        second = await client.post("/api/user/publish", json={"username": "ignored"}, headers=user.headers)
        assert first.status_code == second.status_code == 200
        assert second.json()["username"] == "owner"

    async def test_unpublish_through_profile(self, client: AsyncClient, user):
        await client.post("/api/user/publish", headers=user.headers)
        response = await client.patch("/api/user/profile", json={"is_published": False}, headers=user.headers)
        assert response.json()["is_published"] is False


class TestPublicPage:
    async def test_unpublished_page_is_not_found(self, client: AsyncClient, user):
        response = await client.get("/api/public/owner")
        assert response.status_code == 404
        assert response.json()["detail"] == "Page not found"

    async def test_banned_page_is_not_found(self, client: AsyncClient, make_user):
        await make_user(username="gone", is_published=True, is_banned=True)
        response = await client.get("/api/public/gone")
        assert response.status_code == 404

    async def test_published_page_lists_visible_links_in_order(self, client: AsyncClient, user):
        await client.post("/api/links", json={"title": "B", "url": "b.com", "order": 2}, headers=user.headers)
        await client.post("/api/links", json={"title": "A", "url": "a.com", "order": 1}, headers=user.headers)
        await client.post(
            "/api/links", json={"title": "Hidden", "url": "h.com", "is_visible": False}, headers=user.headers
        )
        await client.post(
            "/api/socials", json={"platform": "github", "url": "github.com/owner", "icon": "github"}, headers=user.headers
        )
        await client.post("/api/user/publish", headers=user.headers)

        response = await client.get("/api/public/OWNER")
        assert response.status_code == 200
        data = response.json()
        assert data["username"] == "owner"
        assert [link["title"] for link in data["links"]] == ["A", "B"]
        assert data["socials"][0]["url"] == "https://github.com/owner"

    async def test_lapsed_premium_falls_back_to_free_look(self, client: AsyncClient, make_user):
        await make_user(
            username="lapsed",
            is_published=True,
            is_premium=True,
            premium_plan_type="monthly",
            premium_expires_at=datetime.now(timezone.utc) - timedelta(days=1),
            template="neon",
            background_video="/uploads/videos/v.mp4",
        )
        data = (await client.get("/api/public/lapsed")).json()
        assert data["is_premium"] is False
        assert data["template"] == "default"
        assert data["background_video"] is None


class TestTemplates:
    async def test_free_user_cannot_apply(self, client: AsyncClient, user, make_user):
        await make_user(username="source", is_published=True, template="neon")
        response = await client.post("/api/templates/apply", json={"source_username": "source"}, headers=user.headers)
        assert response.status_code == 403

    async def test_lapsed_monthly_cannot_apply(self, client: AsyncClient, make_user):
        await make_user(username="source", is_published=True, template="neon")
        lapsed = await make_user(
            is_premium=True,
            premium_plan_type="monthly",
            premium_expires_at=datetime.now(timezone.utc) - timedelta(days=1),
        )
        response = await client.post(
            "/api/templates/apply", json={"source_username": "source"}, headers=lapsed.headers
        )
        assert response.status_code == 403

    async def test_copies_design_only(self, client: AsyncClient, make_user):
        await make_user(
            username="source",
            name="Source Name",
            bio="Source bio",
            is_published=True,
            template="neon",
            theme_color="#123456",
            background_color="#000000",
        )
        premium = await make_user(
            username="copier",
            name="Copier",
            is_premium=True,
            premium_plan_type="monthly",
            premium_expires_at=_future(),
        )
        response = await client.post(
            "/api/templates/apply", json={"source_username": "SOURCE"}, headers=premium.headers
        )
        assert response.status_code == 200
        data = response.json()
        assert data["template"] == "neon"
        assert data["theme_color"] == "#123456"
        assert data["background_color"] == "#000000"
        assert data["username"] == "copier"
        assert data["name"] == "Copier"
        assert data["bio"] is None

    async def test_unpublished_source_is_not_found(self, client: AsyncClient, make_user):
        await make_user(username="hidden", template="neon")
        premium = await make_user(is_premium=True, premium_plan_type="lifetime")
        response = await client.post(
            "/api/templates/apply", json={"source_username": "hidden"}, headers=premium.headers
        )
        assert response.status_code == 404
