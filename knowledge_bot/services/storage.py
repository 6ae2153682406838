"""S3 compatible object storage for uploaded blobs."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

import boto3
from botocore.client import Config
from starlette.concurrency import run_in_threadpool

from knowledge_bot.core.settings import AppSettings, get_app_settings

logger = logging.getLogger(__name__)


class ObjectStorage:
    """Thin async wrapper around a boto3 S3 client bound to one bucket."""

    def __init__(self, client, bucket: str, public_base_url: Optional[str] = None) -> None:
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ObjectStorage":
        client = boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_ACCESS_SECRET,
            config=Config(signature_version="s3v4"),
        )
        base = settings.S3_PUBLIC_URL or (
            f"{settings.S3_ENDPOINT_URL.rstrip('/')}/{settings.AWS_BUCKET_NAME}"
            if settings.S3_ENDPOINT_URL
            else f"https://{settings.AWS_BUCKET_NAME}.s3.{settings.AWS_REGION}.amazonaws.com"
        )
        return cls(client, settings.AWS_BUCKET_NAME, public_base_url=base)

    def url_for(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return f"s3://{self.bucket}/{key}"

    async def put_object(self, key: str, body: bytes, content_type: Optional[str] = None) -> str:
        """Store bytes under `key` and return the public URL."""
        extra = {"ContentType": content_type} if content_type else {}
        await run_in_threadpool(self.client.put_object, Bucket=self.bucket, Key=key, Body=body, **extra)
        logger.info("Stored object %s (%d bytes) in bucket %s", key, len(body), self.bucket)
        return self.url_for(key)

    async def delete_object(self, key: str) -> None:
        await run_in_threadpool(self.client.delete_object, Bucket=self.bucket, Key=key)
        logger.info("Deleted object %s from bucket %s", key, self.bucket)


@lru_cache(maxsize=1)
def _default_storage() -> ObjectStorage:
    return ObjectStorage.from_settings(get_app_settings())


# PUBLIC_INTERFACE
def get_object_storage() -> ObjectStorage:
    """FastAPI dependency returning the process-wide object storage client."""
    return _default_storage()
