import base64

import pytest

from murmur.core.errors import ValidationError, ValidationErrorKind
from murmur.services.entities import Submission
from murmur.services.validation import SubmissionValidator, sniff_image_type, utf16_length

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 32
GIF = b"GIF89a" + b"\x00" * 32
WEBP = b"RIFF\x00\x00\x00\x00WEBPVP8 " + b"\x00" * 32


def data_uri(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode()}"


@pytest.fixture
def validator():
    return SubmissionValidator()


class TestContent:
    def test_accepts_plain_text(self, validator):
        valid = validator.validate(Submission(content="hello world"))
        assert valid.content == "hello world"
        assert valid.attachment_uri is None
        assert valid.parent_thread_id is None

    @pytest.mark.parametrize("content", ["", "   ", "\n\t"])
    def test_rejects_empty_or_blank(self, validator, content):
        with pytest.raises(ValidationError) as exc:
            validator.validate(Submission(content=content))
        assert exc.value.kind is ValidationErrorKind.EMPTY_CONTENT
        assert exc.value.message == "Content cannot be empty."

    def test_exactly_280_is_allowed(self, validator):
        assert validator.validate(Submission(content="a" * 280)).content == "a" * 280

    def test_281_is_too_long(self, validator):
        with pytest.raises(ValidationError) as exc:
            validator.validate(Submission(content="a" * 281))
        assert exc.value.kind is ValidationErrorKind.CONTENT_TOO_LONG
        assert exc.value.message == "Content cannot exceed 280 characters."

    def test_length_counts_utf16_units(self, validator):
        # Each emoji is one code point but two UTF-16 units.
        assert utf16_length("\U0001F600") == 2
        validator.validate(Submission(content="\U0001F600" * 140))
        with pytest.raises(ValidationError):
            validator.validate(Submission(content="\U0001F600" * 141))

    def test_custom_limit(self):
        with pytest.raises(ValidationError):
            SubmissionValidator(max_length=5).validate(Submission(content="abcdef"))

    def test_blank_parent_is_dropped(self, validator):
        assert validator.validate(Submission(content="hi", parent_thread_id="")).parent_thread_id is None


class TestAttachment:
    @pytest.mark.parametrize(
        "data,mime,kind",
        [(PNG, "image/png", "png"), (JPEG, "image/jpeg", "jpeg"), (GIF, "image/gif", "gif"), (WEBP, "image/webp", "webp")],
    )
    def test_accepts_images(self, validator, data, mime, kind):
        valid = validator.validate(Submission(content="pic", attachment_uri=data_uri(data, mime)))
        assert valid.attachment_type == kind

    def test_jpg_alias(self, validator):
        valid = validator.validate(Submission(content="pic", attachment_uri=data_uri(JPEG, "image/jpg")))
        assert valid.attachment_type == "jpeg"

    def test_rejects_non_image_bytes(self, validator):
        with pytest.raises(ValidationError) as exc:
            validator.validate(Submission(content="x", attachment_uri=data_uri(b"%PDF-1.4 whatever", "image/png")))
        assert exc.value.kind is ValidationErrorKind.ATTACHMENT_NOT_AN_IMAGE

    def test_rejects_mismatched_mime(self, validator):
        with pytest.raises(ValidationError) as exc:
            validator.validate(Submission(content="x", attachment_uri=data_uri(PNG, "image/gif")))
        assert exc.value.kind is ValidationErrorKind.ATTACHMENT_NOT_AN_IMAGE

    def test_rejects_remote_url(self, validator):
        with pytest.raises(ValidationError) as exc:
            validator.validate(Submission(content="x", attachment_uri="https://example.com/cat.png"))
        assert exc.value.kind is ValidationErrorKind.ATTACHMENT_NOT_AN_IMAGE

    def test_rejects_broken_base64(self, validator):
        with pytest.raises(ValidationError) as exc:
            validator.validate(Submission(content="x", attachment_uri="data:image/png;base64,@@@@"))
        assert exc.value.kind is ValidationErrorKind.ATTACHMENT_NOT_AN_IMAGE

    def test_rejects_oversized(self):
        validator = SubmissionValidator(max_attachment_bytes=1024)
        with pytest.raises(ValidationError) as exc:
            validator.validate(Submission(content="x", attachment_uri=data_uri(PNG + b"\x00" * 2048)))
        assert exc.value.kind is ValidationErrorKind.ATTACHMENT_TOO_LARGE

    def test_default_size_message(self, validator):
        big = PNG + b"\x00" * (2 * 1024 * 1024)
        with pytest.raises(ValidationError) as exc:
            validator.validate(Submission(content="x", attachment_uri=data_uri(big)))
        assert exc.value.message == "Attachment cannot exceed 2 MiB."

    def test_disallowed_type(self):
        validator = SubmissionValidator(image_types=["png"])
        with pytest.raises(ValidationError) as exc:
            validator.validate(Submission(content="x", attachment_uri=data_uri(GIF, "image/gif")))
        assert exc.value.message == "Attachment must be an image (PNG)."


def test_sniff_unknown():
    assert sniff_image_type(b"hello") is None
