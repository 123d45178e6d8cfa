"""Media uploads stored on local disk and served under /uploads."""

from __future__ import annotations

from pathlib import Path

from httpx import AsyncClient

from hml.config import get_settings

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _stored(path: str) -> Path:
    settings = get_settings()
    relative = path.removeprefix(settings.upload_public_prefix.rstrip("/") + "/")
    return Path(settings.upload_dir) / relative


class TestProfileImage:
    async def test_upload_png(self, client: AsyncClient, user):
        response = await client.post(
            "/api/upload", files={"file": ("me.png", PNG, "image/png")}, headers=user.headers
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["path"].startswith("/uploads/images/")
        assert data["path"].endswith(".png")
        assert _stored(data["path"]).read_bytes() == PNG

        served = await client.get(data["path"])
        assert served.status_code == 200
        assert served.content == PNG

    async def test_rejects_non_image(self, client: AsyncClient, user):
        response = await client.post(
            "/api/upload", files={"file": ("notes.txt", b"hello", "text/plain")}, headers=user.headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "File must be an image"

    async def test_rejects_unsupported_image_format(self, client: AsyncClient, user):
        response = await client.post(
            "/api/upload", files={"file": ("pic.bmp", b"BM" + b"\x00" * 10, "image/bmp")}, headers=user.headers
        )
        assert response.status_code == 400

    async def test_rejects_oversize_and_cleans_up(self, client: AsyncClient, user):
        settings = get_settings()
        images = Path(settings.upload_dir) / "images"
        before = set(images.glob("*"))
        too_big = b"\x00" * (settings.max_profile_image_upload_mb * 1024 * 1024 + 1)
        response = await client.post(
            "/api/upload", files={"file": ("big.jpg", too_big, "image/jpeg")}, headers=user.headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == f"File size must be less than {settings.max_profile_image_upload_mb}MB"
        assert set(images.glob("*")) == before

    async def test_requires_auth(self, client: AsyncClient, database):
        response = await client.post("/api/upload", files={"file": ("me.png", PNG, "image/png")})
        assert response.status_code == 401


class TestBackground:
    async def test_image_background(self, client: AsyncClient, user):
        response = await client.post(
            "/api/upload/background",
            files={"file": ("bg.webp", b"RIFF0000WEBP", "image/webp")},
            data={"type": "image"},
            headers=user.headers,
        )
        assert response.status_code == 200
        assert response.json()["path"].startswith("/uploads/backgrounds/")

    async def test_video_background(self, client: AsyncClient, user):
        response = await client.post(
            "/api/upload/background",
            files={"file": ("clip.mp4", b"\x00\x00\x00\x18ftypmp42", "video/mp4")},
            data={"type": "video"},
            headers=user.headers,
        )
        assert response.status_code == 200
        assert response.json()["path"].startswith("/uploads/videos/")
        assert response.json()["path"].endswith(".mp4")

    async def test_video_type_with_image_file(self, client: AsyncClient, user):
        response = await client.post(
            "/api/upload/background",
            files={"file": ("bg.png", PNG, "image/png")},
            data={"type": "video"},
            headers=user.headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "File must be a video"

    async def test_invalid_type(self, client: AsyncClient, user):
        response = await client.post(
            "/api/upload/background",
            files={"file": ("bg.png", PNG, "image/png")},
            data={"type": "gif"},
            headers=user.headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid type"

    async def test_missing_type(self, client: AsyncClient, user):
        response = await client.post(
            "/api/upload/background", files={"file": ("bg.png", PNG, "image/png")}, headers=user.headers
        )
        assert response.status_code == 400
