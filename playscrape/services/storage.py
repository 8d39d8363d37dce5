"""Image storage backends: a local directory or an S3 bucket.

Both only need "get by key" and "put by key"; keys are image file names.
"""

import logging
from pathlib import Path

import boto3
from botocore.exceptions import ClientError

from playscrape.schemas.options import S3Options, ScrapeOptions

logger = logging.getLogger(__name__)


class LocalImageStorage:
    """Images written to a directory (the working directory when unset)."""

    def __init__(self, image_dir: str | None = None):
        self.image_dir = Path(image_dir) if image_dir else Path(".")

    def path_for(self, key: str) -> Path:
        return self.image_dir / key

    def get(self, key: str) -> bytes | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)


class S3ImageStorage:
    """Images stored as objects under an optional key prefix."""

    def __init__(self, s3: S3Options, client=None):
        if not s3.bucket:
            raise ValueError("S3 bucket not specified.")
        self.s3 = s3
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("s3")
        return self._client

    def get(self, key: str) -> bytes | None:
        object_key = self.s3.key_for(key)
        try:
            obj = self.client.get_object(Bucket=self.s3.bucket, Key=object_key)
        except ClientError as e:
            logger.debug(f"Image not in S3: s3://{self.s3.bucket}/{object_key} ({e})")
            return None
        return obj["Body"].read()

    def put(self, key: str, data: bytes, content_type: str) -> None:
        object_key = self.s3.key_for(key)
        params = {
            "Bucket": self.s3.bucket,
            "Key": object_key,
            "Body": data,
            "ContentType": content_type,
        }
        if self.s3.acl:
            params["ACL"] = self.s3.acl
        self.client.put_object(**params)


def get_image_storage(options: ScrapeOptions) -> LocalImageStorage | S3ImageStorage:
    if options.download_to == "s3":
        if options.s3 is None:
            raise ValueError("S3 storage selected but no s3 options given.")
        return S3ImageStorage(options.s3)
    return LocalImageStorage(options.image_dir)
