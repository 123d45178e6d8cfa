"""Local file storage for uploaded media.

Files land under ``<upload_dir>/<category>/<random>.<ext>`` and are served
from ``<upload_public_prefix>/<category>/<name>``. Size is enforced while
streaming, so an oversize upload never sits on disk in full; the partial
file is removed.
"""

from __future__ import annotations

import mimetypes
import secrets
from dataclasses import dataclass
from pathlib import Path

import structlog
from fastapi import UploadFile

from hml.config import get_settings
from hml.errors import ValidationError

logger = structlog.get_logger()

CHUNK_SIZE = 1024 * 1024  # 1MB

PROFILE_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})

_FALLBACK_EXT = {"image": ".jpg", "video": ".mp4"}


@dataclass(frozen=True)
class UploadRule:
    """What one upload endpoint accepts."""

    category: str
    kind: str  # MIME major type: image | video
    max_mb: int
    allowed_types: frozenset[str] | None = None

    @property
    def max_bytes(self) -> int:
        return self.max_mb * 1024 * 1024


def background_rule(upload_type: str) -> UploadRule:
    settings = get_settings()
    if upload_type == "image":
        return UploadRule("backgrounds", "image", settings.max_image_upload_mb)
    if upload_type == "video":
        return UploadRule("videos", "video", settings.max_video_upload_mb)
    msg = "Invalid type"
    raise ValidationError(msg)


def profile_image_rule() -> UploadRule:
    return UploadRule("images", "image", get_settings().max_profile_image_upload_mb, PROFILE_IMAGE_TYPES)


def check_content_type(content_type: str | None, rule: UploadRule) -> str:
    """Return the normalized MIME type or raise when it does not fit the rule."""
    ctype = (content_type or "").split(";")[0].strip().lower()
    if not ctype.startswith(f"{rule.kind}/"):
        msg = f"File must be an {rule.kind}" if rule.kind == "image" else f"File must be a {rule.kind}"
        raise ValidationError(msg)
    if rule.allowed_types is not None and ctype not in rule.allowed_types:
        msg = "Unsupported image format. Use JPEG, PNG, GIF or WebP"
        raise ValidationError(msg)
    return ctype


def pick_extension(ctype: str, filename: str | None, kind: str) -> str:
    """Extension by content type, then by the client's filename, then a per-kind default."""
    guessed = mimetypes.guess_extension(ctype) or ""
    if guessed:
        return ".jpg" if guessed == ".jpe" else guessed
    name_ext = Path(filename or "").suffix.lower()
    if name_ext and len(name_ext) <= 6 and name_ext[1:].isalnum():
        return name_ext
    return _FALLBACK_EXT.get(kind, "")


async def write_streamed(file: UploadFile, dst: Path, max_bytes: int, max_mb: int) -> int:
    """Write the upload to ``dst`` chunk by chunk; returns the size in bytes."""
    total = 0
    try:
        with dst.open("wb") as out:
            while True:
                chunk = await file.read(CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                if total > max_bytes:
                    msg = f"File size must be less than {max_mb}MB"
                    raise ValidationError(msg)
                out.write(chunk)
    except Exception:
        dst.unlink(missing_ok=True)
        raise
    finally:
        await file.close()
    return total


async def save_upload(file: UploadFile, rule: UploadRule, owner_id: int) -> str:
    """Validate and store an upload; returns its public path."""
    ctype = check_content_type(file.content_type, rule)
    settings = get_settings()
    directory = Path(settings.upload_dir) / rule.category
    directory.mkdir(parents=True, exist_ok=True)

    name = f"{secrets.token_hex(16)}{pick_extension(ctype, file.filename, rule.kind)}"
    size = await write_streamed(file, directory / name, rule.max_bytes, rule.max_mb)
    public_path = f"{settings.upload_public_prefix.rstrip('/')}/{rule.category}/{name}"
    logger.info("file_uploaded", user_id=owner_id, category=rule.category, content_type=ctype, size=size)
    return public_path
