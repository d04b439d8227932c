"""
S3 adapter for object storage.

Works against AWS S3 or any S3-compatible endpoint (for example
Cloudflare R2) when an endpoint URL is configured.
"""

import logging
from typing import Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError, BotoCoreError

from .base import ObjectStorage
from ..errors import StorageError

logger = logging.getLogger("commentary_worker")


class S3ObjectStorage(ObjectStorage):
    """S3 implementation of object storage"""

    def __init__(
        self,
        bucket: str,
        region: str = "auto",
        endpoint_url: Optional[str] = None,
        public_url_base: Optional[str] = None
    ):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url or None
        self.public_url_base = (public_url_base or "").rstrip("/")
        self.s3 = None

    def connect(self):
        """Initialize S3 client"""
        try:
            self.s3 = boto3.client('s3', region_name=self.region, endpoint_url=self.endpoint_url)
            logger.info(f"S3 storage connected to bucket: {self.bucket}")
        except Exception as e:
            logger.error(f"Failed to connect to S3: {e}")
            raise

    def put_bytes(self, key: str, data: bytes, content_type: str, public: bool = False) -> str:
        extra = {'ACL': 'public-read'} if public else {}
        try:
            self.s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type, **extra)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Error storing {key}: {e}") from e
        logger.debug(f"Stored {len(data)} bytes at s3://{self.bucket}/{key}")
        return key

    def upload_file(self, key: str, local_path: str, content_type: str, public: bool = False) -> str:
        extra = {'ContentType': content_type}
        if public:
            extra['ACL'] = 'public-read'
        try:
            self.s3.upload_file(local_path, self.bucket, key, ExtraArgs=extra)
        except (ClientError, BotoCoreError, S3UploadFailedError) as e:
            raise StorageError(f"Error uploading {local_path} to {key}: {e}") from e
        except OSError as e:
            raise StorageError(f"Error reading {local_path}: {e}") from e
        logger.debug(f"Uploaded {local_path} to s3://{self.bucket}/{key}")
        return key

    def get_bytes(self, key: str) -> bytes:
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=key)
            return response['Body'].read()
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Error reading {key}: {e}") from e

    def download_file(self, key: str, local_path: str) -> str:
        try:
            self.s3.download_file(self.bucket, key, local_path)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Error downloading {key}: {e}") from e
        except OSError as e:
            raise StorageError(f"Error writing {local_path}: {e}") from e
        return local_path

    def signed_url(self, key: str, ttl_sec: int) -> str:
        try:
            return self.s3.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket, 'Key': key},
                ExpiresIn=ttl_sec
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Error signing URL for {key}: {e}") from e

    def public_url(self, key: str) -> str:
        if self.public_url_base:
            return f"{self.public_url_base}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def close(self):
        """Close S3 connection"""
        self.s3 = None
        logger.info("S3 storage connection closed")
