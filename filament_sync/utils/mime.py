"""Attachment MIME helpers.

Classifies attachments as inline-previewable image/video or plain file,
falling back to the filename extension when the declared MIME type is
missing or generic.
"""

from __future__ import annotations

from typing import Literal

MediaKind = Literal["image", "video", "file"]

GENERIC_MIME_TYPE = "application/octet-stream"

IMAGE_MIME_BY_EXTENSION: dict[str, str] = {
    "avif": "image/avif",
    "bmp": "image/bmp",
    "gif": "image/gif",
    "heic": "image/heic",
    "heif": "image/heif",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}

VIDEO_MIME_BY_EXTENSION: dict[str, str] = {
    "m4v": "video/mp4",
    "mov": "video/quicktime",
    "mp4": "video/mp4",
    "webm": "video/webm",
}


def normalize_mime_type(raw: str | None) -> str:
    """Drop parameters and normalize case: ``"Image/PNG; q=1"`` -> ``"image/png"``."""
    if not raw:
        return ""
    return raw.split(";", 1)[0].strip().lower()


def extension_from_filename(filename: str) -> str | None:
    name = filename.strip()
    dot = name.rfind(".")
    if dot <= 0 or dot == len(name) - 1:
        return None
    return name[dot + 1 :].lower()


def infer_mime_type_from_filename(filename: str) -> str | None:
    extension = extension_from_filename(filename)
    if extension is None:
        return None
    return IMAGE_MIME_BY_EXTENSION.get(extension) or VIDEO_MIME_BY_EXTENSION.get(
        extension
    )


def classify_media_type(mime_type: str) -> MediaKind:
    """Classify a normalized MIME type. SVG is never previewed inline."""
    if mime_type.startswith("image/") and mime_type != "image/svg+xml":
        return "image"
    if mime_type.startswith("video/"):
        return "video"
    return "file"


def resolve_attachment_preview_type(
    payload_mime_type: str | None,
    attachment_mime_type: str,
    filename: str,
) -> tuple[MediaKind, str]:
    """Resolve the preview kind and effective MIME type of an attachment.

    Args:
        payload_mime_type: MIME type reported by the download response, if any
        attachment_mime_type: MIME type declared on the attachment record
        filename: Attachment filename, used for extension inference

    Returns:
        (kind, mime_type) where kind is "image", "video" or "file"
    """
    payload_mime = normalize_mime_type(payload_mime_type)
    declared_mime = normalize_mime_type(attachment_mime_type)
    inferred = infer_mime_type_from_filename(filename)

    fallback = (inferred or declared_mime) or GENERIC_MIME_TYPE
    resolved = payload_mime or fallback
    kind = classify_media_type(resolved)
    if kind == "file" and inferred:
        kind = classify_media_type(inferred)

    if kind == "file":
        return kind, resolved
    return kind, inferred or resolved
