"""Unit tests for upload validation."""

import pytest

from hml.errors import ValidationError
from hml.uploads.storage import (
    background_rule,
    check_content_type,
    pick_extension,
    profile_image_rule,
    write_streamed,
)


class TestRules:
    def test_background_image(self):
        rule = background_rule("image")
        assert (rule.category, rule.kind, rule.max_mb) == ("backgrounds", "image", 10)

    def test_background_video(self):
        rule = background_rule("video")
        assert (rule.category, rule.kind, rule.max_mb) == ("videos", "video", 50)
        assert rule.max_bytes == 50 * 1024 * 1024

    def test_background_invalid_type(self):
        with pytest.raises(ValidationError, match="Invalid type"):
            background_rule("audio")

    def test_profile_image(self):
        rule = profile_image_rule()
        assert rule.max_mb == 5
        assert "image/webp" in rule.allowed_types


class TestContentType:
    def test_image_ok(self):
        assert check_content_type("image/PNG; charset=binary", background_rule("image")) == "image/png"

    def test_image_rule_rejects_video(self):
        with pytest.raises(ValidationError, match="File must be an image"):
            check_content_type("video/mp4", background_rule("image"))

    def test_video_rule_rejects_image(self):
        with pytest.raises(ValidationError, match="File must be a video"):
            check_content_type("image/jpeg", background_rule("video"))

    def test_missing_content_type(self):
        with pytest.raises(ValidationError):
            check_content_type(None, background_rule("image"))

    def test_profile_rejects_svg(self):
        with pytest.raises(ValidationError, match="Unsupported image format"):
            check_content_type("image/svg+xml", profile_image_rule())


class TestExtension:
    def test_from_content_type(self):
        assert pick_extension("image/png", "photo.bin", "image") == ".png"

    def test_jpeg_normalized(self):
        assert pick_extension("image/jpeg", None, "image") in (".jpg", ".jpeg")

    def test_from_filename(self):
        assert pick_extension("image/x-unknown-format", "pic.HEIC", "image") == ".heic"

    def test_fallback(self):
        assert pick_extension("video/x-unknown-format", None, "video") == ".mp4"


class _ChunkedUpload:
    """Hands out fixed chunks, then raises ``error`` if one is set."""

    def __init__(self, chunks: list[bytes], error: Exception | None = None) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.closed = False

    async def read(self, size: int = -1) -> bytes:
        if self.chunks:
            return self.chunks.pop(0)
        if self.error is not None:
            raise self.error
        return b""

    async def close(self) -> None:
        self.closed = True


class TestWriteStreamed:
    @pytest.mark.asyncio
    async def test_writes_all_chunks(self, tmp_path):
        upload = _ChunkedUpload([b"abc", b"def"])
        dst = tmp_path / "out.bin"
        assert await write_streamed(upload, dst, max_bytes=10, max_mb=1) == 6
        assert dst.read_bytes() == b"abcdef"
        assert upload.closed

    @pytest.mark.asyncio
    async def test_oversize_removes_partial_file(self, tmp_path):
        upload = _ChunkedUpload([b"abcd", b"efgh"])
        dst = tmp_path / "out.bin"
        with pytest.raises(ValidationError, match="less than 1MB"):
            await write_streamed(upload, dst, max_bytes=5, max_mb=1)
        assert not dst.exists()

    @pytest.mark.asyncio
    async def test_read_failure_removes_partial_file(self, tmp_path):
        upload = _ChunkedUpload([b"abcd"], error=OSError("connection reset"))
        dst = tmp_path / "out.bin"
        with pytest.raises(OSError, match="connection reset"):
            await write_streamed(upload, dst, max_bytes=100, max_mb=1)
        assert not dst.exists()
        assert upload.closed
