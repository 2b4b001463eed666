"""
Tests for upload validators.
"""

import pytest
from django.core.exceptions import ValidationError
from django.core.files.uploadedfile import SimpleUploadedFile

from core.validators import detect_content_type, validate_evidence_file, validate_file_size, validate_media_file


def _upload(name, content_type, size=16):
    return SimpleUploadedFile(name, b"0" * size, content_type=content_type)


class TestDetectContentType:
    def test_uses_reported_type(self):
        assert detect_content_type(_upload("photo.bin", "image/PNG")) == "image/png"

    def test_falls_back_to_extension(self):
        assert detect_content_type(_upload("clip.MOV", "application/octet-stream")) == "video/quicktime"

    def test_unknown(self):
        assert detect_content_type(_upload("archive.zip", "application/octet-stream")) == ""


class TestValidateFileSize:
    def test_within_limit(self):
        validate_file_size(max_mb=1)(_upload("a.png", "image/png", size=1024))

    def test_over_limit(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_file_size(max_mb=1)(_upload("a.png", "image/png", size=1024 * 1024 + 1))

        assert exc_info.value.code == "FILE_TOO_LARGE"


class TestValidateMediaFile:
    @pytest.mark.parametrize(
        "name, content_type, expected",
        [
            ("a.jpg", "image/jpeg", "image"),
            ("a.gif", "image/gif", "image"),
            ("a.mp4", "video/mp4", "video"),
            ("a.avi", "application/octet-stream", "video"),
        ],
    )
    def test_accepted(self, name, content_type, expected):
        assert validate_media_file(_upload(name, content_type)) == expected

    def test_unsupported(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_media_file(_upload("notes.pdf", "application/pdf"))

        assert exc_info.value.code == "UNSUPPORTED_MEDIA"

    def test_image_size_limit(self, settings):
        settings.MEDIA_MAX_IMAGE_SIZE_MB = 1

        with pytest.raises(ValidationError) as exc_info:
            validate_media_file(_upload("big.png", "image/png", size=2 * 1024 * 1024))

        assert exc_info.value.code == "FILE_TOO_LARGE"


class TestValidateEvidenceFile:
    def test_pdf_and_images(self):
        assert validate_evidence_file(_upload("statement.pdf", "application/pdf")) == "application/pdf"
        assert validate_evidence_file(_upload("photo.jpg", "image/jpeg")) == "image/jpeg"

    def test_video_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_evidence_file(_upload("clip.mp4", "video/mp4"))

        assert exc_info.value.code == "UNSUPPORTED_FILE"

    def test_size_limit(self, settings):
        settings.MODERATION_EVIDENCE_MAX_SIZE_MB = 1

        with pytest.raises(ValidationError) as exc_info:
            validate_evidence_file(_upload("scan.pdf", "application/pdf", size=2 * 1024 * 1024))

        assert exc_info.value.code == "FILE_TOO_LARGE"
