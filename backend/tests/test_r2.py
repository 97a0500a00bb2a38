"""Tests for the R2 storage wrapper: key layout, presigned URLs, and configuration checks.

All boto3 calls are mocked since R2 is an external service.
"""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from modelmagic.config import settings
from modelmagic.utils import r2


@pytest.fixture(autouse=True)
def _reset_r2_client():
    """Reset the singleton R2 client before each test."""
    r2.reset_client()
    yield
    r2.reset_client()


@pytest.fixture()
def mock_s3():
    """Provide a mocked boto3 S3 client."""
    with patch.object(r2, "_build_client") as mock_build:
        mock_client = MagicMock()
        mock_build.return_value = mock_client
        yield mock_client


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestBuildFileKey:
    """Keys are namespaced per project and asset kind."""

    def test_layout(self):
        """Key is projects/{id}/{kind}/{hex}-{name}."""
        key = r2.build_file_key("p-123", "GENERATED", "shot.png")
        prefix, _, name = key.rpartition("/")
        assert prefix == "projects/p-123/generated"
        hex_part, _, file_name = name.partition("-")
        assert len(hex_part) == 32
        assert file_name == "shot.png"

    def test_sanitises_file_name(self):
        """Path separators and spaces never reach the key."""
        key = r2.build_file_key("p-1", "reference", "../my photo (1).jpg")
        name = key.rsplit("/", 1)[1]
        assert ".." not in key.split("/", 3)[3]
        assert name.endswith("my_photo_1_.jpg")

    def test_empty_name_falls_back(self):
        assert r2.build_file_key("p-1", "reference", "...").endswith("-file")

    def test_keys_are_unique(self):
        """Uploading the same file twice yields two keys."""
        assert r2.build_file_key("p", "reference", "a.jpg") != r2.build_file_key("p", "reference", "a.jpg")


class TestPresignedUpload:
    def test_signs_put_with_content_type(self, mock_s3):
        """Upload URL binds bucket, key and content type."""
        mock_s3.generate_presigned_url.return_value = "https://r2.example.com/put"

        url = r2.generate_presigned_upload_url("projects/p/reference/x.jpg", "image/jpeg")

        assert url == "https://r2.example.com/put"
        mock_s3.generate_presigned_url.assert_called_once_with(
            "put_object",
            Params={
                "Bucket": settings.r2_bucket_name,
                "Key": "projects/p/reference/x.jpg",
                "ContentType": "image/jpeg",
            },
            ExpiresIn=settings.presigned_url_expiry_seconds,
        )

    def test_client_error_propagates(self, mock_s3):
        mock_s3.generate_presigned_url.side_effect = _client_error("AccessDenied", "PutObject")
        with pytest.raises(ClientError):
            r2.generate_presigned_upload_url("k", "image/png")


class TestGeneratePresignedUrl:
    def test_generates_get_url(self, mock_s3):
        mock_s3.generate_presigned_url.return_value = "https://r2.example.com/signed"

        url = r2.generate_presigned_url("projects/abc/generated/shot.png")

        assert url == "https://r2.example.com/signed"
        mock_s3.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "modelmagic-assets", "Key": "projects/abc/generated/shot.png"},
            ExpiresIn=3600,
        )

    def test_uses_configured_expiry(self, mock_s3):
        """Verifies pre-signed URL uses the expiry from settings."""
        mock_s3.generate_presigned_url.return_value = "https://r2.example.com/signed"
        with patch("modelmagic.utils.r2.settings") as mock_settings:
            mock_settings.r2_bucket_name = "test-bucket"
            mock_settings.presigned_url_expiry_seconds = 7200

            r2.generate_presigned_url("test/key.jpg")

        assert mock_s3.generate_presigned_url.call_args.kwargs["ExpiresIn"] == 7200


class TestResolveUrl:
    def test_storage_key_is_resolved(self, mock_s3):
        mock_s3.generate_presigned_url.return_value = "https://r2.example.com/signed"
        assert r2.resolve_url("projects/p/generated/a.png") == "https://r2.example.com/signed"

    @pytest.mark.parametrize("url", ["https://cdn.example.com/a.png", "http://cdn.example.com/a.png"])
    def test_urls_pass_through(self, mock_s3, url):
        assert r2.resolve_url(url) == url
        mock_s3.generate_presigned_url.assert_not_called()


class TestClientSingleton:
    def test_client_is_reused(self, mock_s3):
        r2.generate_presigned_url("a")
        r2.generate_presigned_url("b")
        assert r2._build_client.call_count == 1

    def test_reset_forces_rebuild(self, mock_s3):
        r2.head_bucket()
        r2.reset_client()
        r2.head_bucket()
        assert r2._build_client.call_count == 2


class TestIsConfigured:
    def test_requires_all_credentials(self):
        with patch("modelmagic.utils.r2.settings") as mock_settings:
            mock_settings.r2_account_id = "acct"
            mock_settings.r2_access_key_id = "key"
            mock_settings.r2_secret_access_key = ""
            mock_settings.r2_bucket_name = "bucket"
            assert not r2.is_configured()
            mock_settings.r2_secret_access_key = "secret"
            assert r2.is_configured()

    def test_head_bucket_uses_configured_bucket(self, mock_s3):
        r2.head_bucket()
        mock_s3.head_bucket.assert_called_once_with(Bucket=settings.r2_bucket_name)


class TestDeleteObject:
    def test_deletes_key_from_bucket(self, mock_s3):
        r2.delete_object("projects/p-1/generated/abc-shot.png")

        mock_s3.delete_object.assert_called_once_with(
            Bucket=settings.r2_bucket_name, Key="projects/p-1/generated/abc-shot.png"
        )

    def test_client_error_propagates(self, mock_s3):
        mock_s3.delete_object.side_effect = _client_error("AccessDenied", "DeleteObject")
        with pytest.raises(ClientError):
            r2.delete_object("projects/p-1/generated/abc-shot.png")
