"""
Image uploads for avatars and post pictures.
Local disk under the public uploads directory in development, AWS S3 when
USE_S3_STORAGE is enabled.
"""
import logging
import random
import string
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from config import Settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}

MAX_IMAGE_SIZE = 5 * 1024 * 1024  # 5 MB


class UploadRejected(Exception):
    pass


def validate_image(content_type: Optional[str], size: int) -> None:
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise UploadRejected("Invalid file type")
    if size > MAX_IMAGE_SIZE:
        raise UploadRejected(f"File too large (max {MAX_IMAGE_SIZE // (1024 * 1024)}MB)")


def unique_filename(original: str, prefix: str = "avatar") -> str:
    ext = original.rsplit(".", 1)[-1] if "." in original else "bin"
    suffix = "".join(random.choice(string.ascii_lowercase + string.digits) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}.{ext}"


class BlobStore(ABC):
    @abstractmethod
    def put(self, filename: str, data: bytes, content_type: str) -> str:
        """Store the bytes and return the public URL."""
        pass


class LocalBlobStore(BlobStore):
    def __init__(self, upload_dir: Path, url_prefix: str = "/uploads"):
        self.upload_dir = Path(upload_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def put(self, filename: str, data: bytes, content_type: str) -> str:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        name = unique_filename(filename)
        (self.upload_dir / name).write_bytes(data)
        logger.info(f"Stored upload locally as {name}")
        return f"{self.url_prefix}/{name}"


class S3BlobStore(BlobStore):
    def __init__(self, bucket: str, region: str, custom_domain: Optional[str] = None):
        self.bucket = bucket
        self.region = region
        self.custom_domain = custom_domain
        self._s3_client = None

    @property
    def s3_client(self):
        """Lazy initialization of the S3 client."""
        if self._s3_client is None:
            import boto3
            self._s3_client = boto3.client("s3", region_name=self.region)
        return self._s3_client

    def url_for(self, key: str) -> str:
        if self.custom_domain:
            return f"https://{self.custom_domain}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def put(self, filename: str, data: bytes, content_type: str) -> str:
        key = f"uploads/{unique_filename(filename)}"
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="max-age=86400",
            )
        except Exception as e:
            logger.exception(f"S3 upload failed for {key}: {e}")
            raise
        return self.url_for(key)


def create_blob_store(settings: Settings) -> BlobStore:
    if settings.use_s3:
        return S3BlobStore(settings.s3_bucket, settings.s3_region, settings.s3_custom_domain)
    return LocalBlobStore(settings.upload_dir)
