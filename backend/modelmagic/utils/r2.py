"""Cloudflare R2 client wrapper, S3-compatible object storage for project assets.

Clients upload straight to R2 with a presigned PUT; the API only hands out
URLs. Keys follow:
    projects/{project_id}/reference/{uuid}-{file_name}
    projects/{project_id}/generated/{uuid}-{file_name}
"""

from __future__ import annotations

import re
import uuid
from typing import Any

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import ClientError

from modelmagic.config import settings

logger = structlog.get_logger()

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _build_client() -> Any:
    """Create an S3 client pointed at Cloudflare R2."""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{settings.r2_account_id}.r2.cloudflarestorage.com",
        aws_access_key_id=settings.r2_access_key_id,
        aws_secret_access_key=settings.r2_secret_access_key,
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


_client: Any = None


def _get_client() -> Any:
    """Lazy-init singleton client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = _build_client()
    return _client


def reset_client() -> None:
    """Reset the singleton client (for testing)."""
    global _client  # noqa: PLW0603
    _client = None


def is_configured() -> bool:
    return bool(
        settings.r2_account_id
        and settings.r2_access_key_id
        and settings.r2_secret_access_key
        and settings.r2_bucket_name
    )


def build_file_key(project_id: uuid.UUID | str, kind: str, file_name: str) -> str:
    """Storage key for a project asset; the file name is sanitised and prefixed with a uuid."""
    safe_name = _UNSAFE_KEY_CHARS.sub("_", file_name).strip("._") or "file"
    return f"projects/{project_id}/{kind.lower()}/{uuid.uuid4().hex}-{safe_name}"


def generate_presigned_upload_url(key: str, content_type: str) -> str:
    """Pre-signed PUT URL; the uploader must send the same Content-Type."""
    client = _get_client()
    try:
        url: str = client.generate_presigned_url(
            "put_object",
            Params={"Bucket": settings.r2_bucket_name, "Key": key, "ContentType": content_type},
            ExpiresIn=settings.presigned_url_expiry_seconds,
        )
    except ClientError as e:
        logger.error("r2_presign_upload_failed", key=key, error=str(e))
        raise
    logger.info("r2_presign_upload", key=key, content_type=content_type)
    return url


def generate_presigned_url(key: str) -> str:
    """Generate a pre-signed GET URL for downloading an object.

    URL expires after `settings.presigned_url_expiry_seconds` (default 1 hour).
    """
    client = _get_client()
    try:
        url: str = client.generate_presigned_url(
            "get_object",
            Params={"Bucket": settings.r2_bucket_name, "Key": key},
            ExpiresIn=settings.presigned_url_expiry_seconds,
        )
    except ClientError as e:
        logger.error("r2_presign_failed", key=key, error=str(e))
        raise
    return url


def delete_object(key: str) -> None:
    """Delete a single object from R2."""
    _get_client().delete_object(Bucket=settings.r2_bucket_name, Key=key)
    logger.info("r2_delete", key=key)


def resolve_url(key_or_url: str) -> str:
    """Convert an R2 storage key to a presigned URL; pass through existing URLs."""
    if key_or_url.startswith(("http://", "https://")):
        return key_or_url
    return generate_presigned_url(key_or_url)


def head_bucket() -> None:
    """Raise if the bucket is unreachable (used by the health probe)."""
    _get_client().head_bucket(Bucket=settings.r2_bucket_name)
