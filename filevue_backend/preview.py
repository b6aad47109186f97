from __future__ import annotations

import base64
import mimetypes
from pathlib import Path

TEXT_MIMES = {"application/json", "application/javascript", "application/xml"}
BINARY_SNIFF_BYTES = 512


def guess_mime(path: Path | str) -> str | None:
    mime, _ = mimetypes.guess_type(str(path))
    return mime


def is_image_mime(mime: str | None) -> bool:
    return bool(mime) and mime.startswith("image/")


def is_text_mime(mime: str | None) -> bool:
    if not mime:
        return False
    return mime.startswith("text/") or mime in TEXT_MIMES


def is_likely_binary(data: bytes) -> bool:
    """A NUL byte in the first 512 bytes marks the content as binary."""
    return b"\x00" in data[:BINARY_SNIFF_BYTES]


def preview_limit(mime: str | None, max_preview_bytes: int, image_preview_max_bytes: int) -> int:
    return image_preview_max_bytes if is_image_mime(mime) else max_preview_bytes


def build_preview(data: bytes, mime: str | None) -> dict:
    """Classify already-read file bytes into a preview payload.

    Images and binaries are base64 encoded; text is decoded as UTF-8 with
    replacement so a stray invalid byte does not fail the request.
    """
    if is_image_mime(mime):
        return {
            "previewType": "image",
            "encoding": "base64",
            "content": base64.b64encode(data).decode("ascii"),
        }
    if not is_text_mime(mime) or is_likely_binary(data):
        return {
            "previewType": "binary",
            "encoding": "base64",
            "content": base64.b64encode(data).decode("ascii"),
            "note": "Binary data shown as base64. Download for full inspection.",
        }
    return {
        "previewType": "text",
        "encoding": "utf-8",
        "content": data.decode("utf-8", errors="replace"),
    }
