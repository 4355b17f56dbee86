import logging

import boto3
from botocore.config import Config

from app.config import settings

logger = logging.getLogger(__name__)


class StorageService:
    @staticmethod
    def is_configured() -> bool:
        return bool(
            settings.s3_endpoint_url
            and settings.s3_access_key
            and settings.s3_secret_key
        )

    @staticmethod
    def _get_client():  # type: ignore[return]
        if not StorageService.is_configured():
            raise RuntimeError(
                "S3 storage is not configured. "
                "Set S3_ENDPOINT_URL, S3_ACCESS_KEY, and S3_SECRET_KEY."
            )
        return boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            region_name=settings.s3_region,
            config=Config(signature_version="s3v4"),
        )

    @staticmethod
    def generate_download_url(storage_key: str) -> str:
        client = StorageService._get_client()
        url: str = client.generate_presigned_url(
            "get_object",
            Params={
                "Bucket": settings.s3_bucket_name,
                "Key": storage_key,
            },
            ExpiresIn=settings.s3_presigned_url_expiry,
        )
        return url

    @staticmethod
    def resolve_locator(storage_key: str) -> str:
        """Presigned URL when storage is wired, otherwise the raw key."""
        if not StorageService.is_configured():
            logger.debug("Storage not configured; returning raw key %s", storage_key)
            return storage_key
        return StorageService.generate_download_url(storage_key)


storage = StorageService()
