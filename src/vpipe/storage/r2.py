"""S3-compatible object store (Cloudflare R2) backed by boto3."""

from __future__ import annotations

import logging
from typing import BinaryIO

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from vpipe.core.exceptions import NotFoundError, StoreError
from vpipe.storage.base import ObjectStore

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


class R2ObjectStore(ObjectStore):
    def __init__(self, client, bucket: str, public_base_url: str, signed_url_expires: int = 3600):
        if not bucket:
            raise StoreError("Object store bucket is not configured (VPIPE_R2_BUCKET)")
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.signed_url_expires = signed_url_expires

    @classmethod
    def from_config(cls, config) -> R2ObjectStore:
        client = boto3.client(
            "s3",
            endpoint_url=config.r2_endpoint or None,
            aws_access_key_id=config.r2_access_key or None,
            aws_secret_access_key=config.r2_secret_key or None,
            region_name=config.r2_region,
        )
        return cls(client, config.r2_bucket, config.r2_public_url, config.signed_url_expires)

    def get(self, key: str) -> BinaryIO:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                raise NotFoundError(f"Object not found: {key}") from e
            raise StoreError(f"get {key} failed: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"get {key} failed: {e}") from e
        return resp["Body"]

    def put(self, key: str, data: bytes | BinaryIO, content_type: str) -> str:
        try:
            if isinstance(data, (bytes, bytearray)):
                self.client.put_object(
                    Bucket=self.bucket, Key=key, Body=bytes(data), ContentType=content_type
                )
            else:
                self.client.upload_fileobj(
                    Fileobj=data,
                    Bucket=self.bucket,
                    Key=key,
                    ExtraArgs={"ContentType": content_type},
                )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"put {key} failed: {e}") from e
        logger.debug("Uploaded %s (%s)", key, content_type)
        return self.public_url(key)

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return
            raise StoreError(f"delete {key} failed: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"delete {key} failed: {e}") from e

    def public_url(self, key: str) -> str:
        if not self.public_base_url:
            raise StoreError("Public base URL is not configured (VPIPE_R2_PUBLIC_URL)")
        return f"{self.public_base_url}/{key}"

    def signed_url(self, key: str, expires_in: int | None = None) -> str:
        try:
            return self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in or self.signed_url_expires,
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"presign {key} failed: {e}") from e
