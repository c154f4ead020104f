# expense_api/services/storage.py
import boto3
from botocore.config import Config
from expense_api.config import settings
import structlog

logger = structlog.get_logger()


class R2Client:
    """S3-compatible blob store holding receipt files."""

    def __init__(self, bucket: str = None, s3=None):
        self.s3 = s3 or boto3.client(
            "s3",
            endpoint_url=settings.R2_ENDPOINT_URL or None,
            aws_access_key_id=settings.R2_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY or None,
            config=Config(signature_version="s3v4"),
            region_name="auto",
        )
        self.bucket = bucket or settings.R2_BUCKET_NAME

    def put(self, key: str, file_bytes: bytes, content_type: str) -> str:
        self.s3.put_object(
            Bucket=self.bucket, Key=key, Body=file_bytes, ContentType=content_type
        )
        logger.info("blob_uploaded", key=key, size=len(file_bytes))
        return key

    def signed_url(self, key: str, ttl_seconds: int) -> str:
        """Read-only URL for exactly one object; expiry is enforced by the store."""
        return self.s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=ttl_seconds,
        )

    def delete(self, key: str):
        self.s3.delete_object(Bucket=self.bucket, Key=key)
        logger.info("blob_deleted", key=key)


r2_client = R2Client()
