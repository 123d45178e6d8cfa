"""Admin bulk email campaigns."""

from __future__ import annotations

from httpx import AsyncClient


async def _send(client: AsyncClient, admin, **fields):
    body = {
        "from_email": "news@heremylinks.test",
        "from_name": "HereMyLinks News",
        "target_type": "all",
        "subject": "Big update",
        "body_html": "<p>New <b>templates</b> are live.</p>",
        **fields,
    }
    return await client.post("/api/admin/emails/send", json=body, headers=admin.headers)


class TestSendCampaign:
    async def test_send_to_all(self, client: AsyncClient, master, user, email_provider):
        response = await _send(client, master)
        assert response.status_code == 200
        data = response.json()
        assert data["recipients_count"] == 2
        assert data["sent"] == 2
        assert data["failed"] == 0
        assert data["partial"] is False
        assert data["status"] == "sent"

        message = next(m for m in email_provider.outbox if m["to"] == "owner@example.com")
        assert message["from"] == "HereMyLinks News <news@heremylinks.test>"
        assert message["subject"] == "Big update"
        assert "templates" in message["text"]
        assert "<b>" not in message["text"]

    async def test_explicit_text_body_is_kept(self, client: AsyncClient, master, user, email_provider):
        await _send(client, master, target_type="specific", target_user_id=user.id, body_text="Plain version")
        assert email_provider.outbox[0]["text"] == "Plain version"

    async def test_specific_requires_target(self, client: AsyncClient, master):
        response = await _send(client, master, target_type="specific")
        assert response.status_code == 400

    async def test_invalid_sender(self, client: AsyncClient, master):
        response = await _send(client, master, from_email="not-an-email")
        assert response.status_code == 400

    async def test_partial_failure_is_recorded_per_recipient(self, client: AsyncClient, master, user, email_provider):
        email_provider.failing.add("owner@example.com")
        data = (await _send(client, master)).json()
        assert data["sent"] == 1
        assert data["failed"] == 1
        assert data["status"] == "partial"

        detail = (await client.get(f"/api/admin/emails/{data['sent_email_id']}", headers=master.headers)).json()
        statuses = {r["user_email"]: r["status"] for r in detail["recipients"]}
        assert statuses == {"master@example.com": "sent", "owner@example.com": "failed"}
        failed = next(r for r in detail["recipients"] if r["status"] == "failed")
        assert failed["sent_at"] is None
        assert detail["sent_count"] == 1
        assert detail["failed_count"] == 1
        assert detail["body_html"].startswith("<p>")

    async def test_everyone_failing(self, client: AsyncClient, master, email_provider):
        email_provider.failing.add("master@example.com")
        data = (await _send(client, master)).json()
        assert data["status"] == "failed"

    async def test_requires_send_emails(self, client: AsyncClient, make_admin):
        notifier = await make_admin(role="notification_manager")
        assert (await _send(client, notifier)).status_code == 200

        viewer = await make_admin(role="analytics_viewer")
        assert (await _send(client, viewer)).status_code == 403


class TestCampaignHistory:
    async def test_list_newest_first(self, client: AsyncClient, master):
        await _send(client, master, subject="One")
        await _send(client, master, subject="Two")
        data = (await client.get("/api/admin/emails", headers=master.headers)).json()
        assert [e["subject"] for e in data["emails"]] == ["Two", "One"]
        assert data["pagination"]["total"] == 2
        assert data["emails"][0]["sent_at"] is not None

    async def test_detail_missing(self, client: AsyncClient, master):
        response = await client.get("/api/admin/emails/999", headers=master.headers)
        assert response.status_code == 404
        assert response.json()["detail"] == "Email not found"

    async def test_delete(self, client: AsyncClient, master):
        sent_id = (await _send(client, master)).json()["sent_email_id"]
        response = await client.delete(f"/api/admin/emails/{sent_id}", headers=master.headers)
        assert response.json() == {"success": True}
        assert (await client.get(f"/api/admin/emails/{sent_id}", headers=master.headers)).status_code == 404

        logs = (await client.get("/api/admin/activity", headers=master.headers)).json()["logs"]
        assert logs[0]["action"] == "delete_sent_email"
