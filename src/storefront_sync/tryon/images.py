# src/storefront_sync/tryon/images.py

from __future__ import annotations

import base64
import mimetypes
from pathlib import Path

from ..core.errors import ValidationError

_REMOTE_PREFIXES = ("http://", "https://", "data:")


def is_inline_or_remote(value: str) -> bool:
    return value.strip().lower().startswith(_REMOTE_PREFIXES)


def image_problem(value: str | None, label: str) -> str | None:
    """Describe what is wrong with an image reference, or None if it is usable."""
    if value is None or not str(value).strip():
        return f"{label} is required"
    if is_inline_or_remote(value):
        return None
    path = Path(value).expanduser()
    if not path.is_file():
        return f"{label} not found: {value}"
    return None


def to_image_payload(value: str) -> str:
    """
    URLs and data URLs pass through; local files become base64 data URLs
    (the same shape the mobile picker produced).
    """
    value = value.strip()
    if is_inline_or_remote(value):
        return value

    path = Path(value).expanduser()
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ValidationError(f"cannot read image {value}: {exc}") from exc

    mime, _ = mimetypes.guess_type(path.name)
    if not mime or not mime.startswith("image/"):
        mime = "image/jpeg"
    return f"data:{mime};base64,{base64.b64encode(raw).decode('ascii')}"
