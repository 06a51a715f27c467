"""Structural checks run before any network or AI call."""
from __future__ import annotations

import base64
import binascii
import re
from typing import Iterable, Optional

from murmur.core.errors import ValidationError, ValidationErrorKind
from murmur.services.entities import Submission, ValidSubmission

DEFAULT_MAX_LENGTH = 280
DEFAULT_MAX_ATTACHMENT_BYTES = 2 * 1024 * 1024
DEFAULT_IMAGE_TYPES = ("png", "jpeg", "gif", "webp")

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^;,]*)*?);base64,(?P<data>.*)$", re.DOTALL)

_MIME_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}


def utf16_length(text: str) -> int:
    # Browser clients count UTF-16 code units; astral characters count twice.
    return len(text.encode("utf-16-le")) // 2


def sniff_image_type(data: bytes) -> Optional[str]:
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if data.startswith(b"\xff\xd8\xff"):
        return "jpeg"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return None


class SubmissionValidator:
    def __init__(
        self,
        max_length: int = DEFAULT_MAX_LENGTH,
        max_attachment_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES,
        image_types: Iterable[str] = DEFAULT_IMAGE_TYPES,
    ) -> None:
        self.max_length = max_length
        self.max_attachment_bytes = max_attachment_bytes
        self.image_types = tuple(t.lower() for t in image_types)

    def validate_content(self, content: str) -> str:
        if not content or not content.strip():
            raise ValidationError(ValidationErrorKind.EMPTY_CONTENT, "Content cannot be empty.")
        if utf16_length(content) > self.max_length:
            raise ValidationError(
                ValidationErrorKind.CONTENT_TOO_LONG,
                f"Content cannot exceed {self.max_length} characters.",
            )
        return content

    def validate(self, submission: Submission) -> ValidSubmission:
        content = self.validate_content(submission.content)
        attachment_type = None
        if submission.attachment_uri:
            attachment_type = self._check_attachment(submission.attachment_uri)
        return ValidSubmission(
            content=content,
            attachment_uri=submission.attachment_uri or None,
            attachment_type=attachment_type,
            parent_thread_id=submission.parent_thread_id or None,
        )

    def _not_an_image(self) -> ValidationError:
        allowed = ", ".join(t.upper() for t in self.image_types)
        return ValidationError(
            ValidationErrorKind.ATTACHMENT_NOT_AN_IMAGE,
            f"Attachment must be an image ({allowed}).",
        )

    def _too_large(self) -> ValidationError:
        mib = self.max_attachment_bytes / (1024 * 1024)
        return ValidationError(
            ValidationErrorKind.ATTACHMENT_TOO_LARGE,
            f"Attachment cannot exceed {mib:g} MiB.",
        )

    def _check_attachment(self, uri: str) -> str:
        m = _DATA_URI.match(uri.strip())
        if not m:
            raise self._not_an_image()
        payload = re.sub(r"\s+", "", m.group("data"))
        # Reject oversized payloads before decoding them.
        if len(payload) * 3 // 4 - payload[-2:].count("=") > self.max_attachment_bytes:
            raise self._too_large()
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            raise self._not_an_image()
        if len(data) > self.max_attachment_bytes:
            raise self._too_large()
        kind = sniff_image_type(data)
        if kind is None or kind not in self.image_types:
            raise self._not_an_image()
        mime = m.group("mime")
        if mime:
            mime = _MIME_ALIASES.get(mime.lower(), mime.lower())
            if mime != f"image/{kind}":
                raise self._not_an_image()
        return kind
