import boto3
from video_pipeline.config import settings
from video_pipeline.constants import CONTENT_TYPES
from typing import Optional

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


class S3Service:
    def __init__(self):
        self._s3_client: Optional[object] = None
        self.bucket_name = settings.s3_bucket_name
        self.cloudfront_domain = settings.cloudfront_domain

    @property
    def s3_client(self):
        """Lazy-initialize S3 client on first access."""
        if self._s3_client is None:
            self._s3_client = boto3.client(
                "s3",
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
                region_name=settings.aws_region,
            )
        return self._s3_client

    def public_url(self, key: str) -> str:
        if self.cloudfront_domain:
            return f"{self.cloudfront_domain.rstrip('/')}/{key}"
        return f"https://{self.bucket_name}.s3.{settings.aws_region}.amazonaws.com/{key}"

    def upload_media(self, media_data: bytes, key: str, content_type: str, cache_control: Optional[str] = None) -> str:
        """
        Upload media to S3 and return its public URL.

        Args:
            media_data: Binary media data
            key: S3 key (path) for the object
            content_type: MIME type (e.g., "image/png", "audio/mpeg")
            cache_control: Optional Cache-Control header stored with the object

        Returns:
            CloudFront URL if configured, otherwise S3 URL
        """
        put_kwargs = {
            "Bucket": self.bucket_name,
            "Key": key,
            "Body": media_data,
            "ContentType": content_type,
        }
        if cache_control:
            put_kwargs["CacheControl"] = cache_control
        if settings.s3_public_read:
            put_kwargs["ACL"] = "public-read"

        self.s3_client.put_object(**put_kwargs)
        return self.public_url(key)

    def asset_key(self, project_id: str, asset_id: str, kind: str) -> str:
        _, extension = CONTENT_TYPES[kind]
        return f"projects/{project_id}/{kind}/{asset_id}.{extension}"

    def upload_asset(self, media_data: bytes, project_id: str, asset_id: str, kind: str) -> str:
        """Store one generation attempt. Every attempt has its own asset id, so objects never change."""
        content_type, _ = CONTENT_TYPES[kind]
        return self.upload_media(
            media_data,
            self.asset_key(project_id, asset_id, kind),
            content_type,
            cache_control=IMMUTABLE_CACHE_CONTROL,
        )


# Singleton instance
s3_service = S3Service()
