from __future__ import annotations

import json
import logging
from io import BytesIO

from minio import Minio

from .config import settings

logger = logging.getLogger(__name__)


class MinIOClient:
    def __init__(self):
        self.client = Minio(
            settings.minio_endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            secure=settings.minio_secure,
        )
        self.bucket_faces = settings.minio_bucket_faces

    async def setup_buckets(self):
        """Create the face image bucket with an anonymous read policy"""
        if not self.client.bucket_exists(self.bucket_faces):
            self.client.make_bucket(self.bucket_faces)
            logger.info(f"Created MinIO bucket: {self.bucket_faces}")

        # Face images are served to the dashboard through plain public URLs
        policy = {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {"AWS": ["*"]},
                    "Action": ["s3:GetObject"],
                    "Resource": [f"arn:aws:s3:::{self.bucket_faces}/*"],
                }
            ],
        }
        self.client.set_bucket_policy(self.bucket_faces, json.dumps(policy))
        logger.info(f"Set public read policy on {self.bucket_faces}")

    def upload_image(
        self,
        bucket: str,
        object_name: str,
        data: bytes,
        content_type: str = "image/jpeg",
    ) -> str:
        """Upload image data to MinIO bucket, overwriting any previous object"""
        try:
            self.client.put_object(
                bucket,
                object_name,
                BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
            return self.public_url(bucket, object_name)
        except Exception as e:
            logger.error(f"Failed to upload image {object_name}: {e}")
            raise

    def public_url(self, bucket: str, object_name: str) -> str:
        if settings.minio_public_url:
            base = settings.minio_public_url.rstrip("/")
        else:
            scheme = "https" if settings.minio_secure else "http"
            base = f"{scheme}://{settings.minio_endpoint}"
        return f"{base}/{bucket}/{object_name}"


# Global MinIO client instance
minio_client = MinIOClient()
