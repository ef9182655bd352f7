from __future__ import annotations

import os
from typing import Iterable

from marketplace.domain.contracts import InvoiceAttachment
from marketplace.errors import ValidationError


_EXTENSION_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}


def parse_allowed_types(raw: str | Iterable[str] | None) -> set[str]:
    if raw is None:
        return set(_EXTENSION_TYPES.values())
    values = raw.split(",") if isinstance(raw, str) else raw
    return {str(value).strip().lower() for value in values if str(value).strip()}


def extension_type(filename: str | None) -> str | None:
    _root, ext = os.path.splitext(str(filename or "").lower())
    return _EXTENSION_TYPES.get(ext)


def resolve_content_type(filename: str | None, declared: str | None) -> str:
    content_type = str(declared or "").split(";", 1)[0].strip().lower()
    if content_type and content_type != "application/octet-stream":
        return content_type
    return extension_type(filename) or content_type


def validate_invoice(
    attachment: InvoiceAttachment,
    *,
    allowed_types: set[str],
    max_bytes: int,
) -> dict:
    """The declared type alone is not trusted: the file extension must agree with it."""
    content_type = resolve_content_type(attachment.filename, attachment.content_type)
    if content_type not in allowed_types or extension_type(attachment.filename) != content_type:
        raise ValidationError(
            code="invoice_invalid_type",
            message_key="invoice_invalid_type",
            details=f"filename={attachment.filename} content_type={content_type}",
        )
    if attachment.size_bytes > max_bytes or attachment.size_bytes < 0:
        raise ValidationError(
            code="invoice_too_large",
            message_key="invoice_too_large",
            details=f"size_bytes={attachment.size_bytes}",
        )
    return {
        "filename": attachment.filename,
        "content_type": content_type,
        "size_bytes": attachment.size_bytes,
    }
