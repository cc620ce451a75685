"""Media store helpers on Google Cloud Storage."""

from urllib.parse import unquote, urlparse

import structlog
from google.cloud import storage as gcs_storage

from featur.config import get_settings

logger = structlog.get_logger("featur.storage")


def get_storage_client():
    return gcs_storage.Client(project=get_settings().GCP_PROJECT_ID or None)


def get_bucket():
    client = get_storage_client()
    return client.bucket(get_settings().GCS_BUCKET_NAME)


def public_url_for(bucket_name: str, path: str) -> str:
    base = get_settings().MEDIA_PUBLIC_BASE_URL.rstrip("/")
    return f"{base}/{bucket_name}/{path}"


def upload_media(path: str, data: bytes, content_type: str = "image/jpeg") -> str:
    """Upload a blob and return the durable URL it can be fetched from."""
    if not path:
        raise ValueError("Storage path must not be empty")

    bucket = get_bucket()
    blob = bucket.blob(path)
    blob.upload_from_string(data, content_type=content_type)

    logger.info("media_uploaded", path=path, size=len(data), content_type=content_type)
    return public_url_for(bucket.name, path)


def path_from_url(url: str) -> str:
    """Recover the object path from a URL produced by ``upload_media``."""
    parsed = urlparse(url)
    if parsed.scheme == "gs":
        return unquote(parsed.path.lstrip("/"))

    parts = unquote(parsed.path).lstrip("/").split("/", 1)
    if len(parts) != 2 or not parts[1]:
        raise ValueError(f"Not a media URL: {url!r}")
    return parts[1]


def delete_media(url: str) -> None:
    """Delete the blob behind a media URL."""
    path = path_from_url(url)
    bucket = get_bucket()
    bucket.blob(path).delete()
    logger.info("media_deleted", path=path)