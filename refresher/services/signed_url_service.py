"""Signed URL service (S3 presigned links).

Keeps AWS/S3 logic out of the refresh core, which only sees the
SignedUrlProvider protocol.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Protocol

import boto3
from botocore.exceptions import ClientError

from refresher.models.storage import S3Location, SignedUrl

if TYPE_CHECKING:
    from refresher.config import RefresherConfig

logger = logging.getLogger(__name__)


class SignedUrlProvider(Protocol):
    """Object-storage capability that mints time-limited read URLs."""

    async def mint_url(self, storage_path: str, validity_window: timedelta) -> str: ...


def create_s3_client(config: "RefresherConfig") -> Any:
    """Create an S3 client (LocalStack for local dev).

    Returns:
        Boto3 S3 client configured for LocalStack or AWS.
    """
    if config.localstack_endpoint:
        logger.info("Using LocalStack S3 at %s", config.localstack_endpoint)
        return boto3.client(
            "s3",
            endpoint_url=config.localstack_endpoint,
            region_name=config.aws_region,
            aws_access_key_id="test",
            aws_secret_access_key="test",
        )

    logger.info("Using AWS S3 in region %s", config.aws_region)
    return boto3.client(
        "s3",
        region_name=config.aws_region,
        aws_access_key_id=config.aws_access_key_id,
        aws_secret_access_key=config.aws_secret_access_key,
        aws_session_token=config.aws_session_token,
    )


class S3SignedUrlProvider:
    def __init__(
        self,
        *,
        bucket: str,
        s3_client: Any,
        verify_exists: bool = True,
    ) -> None:
        self._bucket = bucket
        self._s3 = s3_client
        self._verify_exists = verify_exists

    @classmethod
    def from_config(cls, config: "RefresherConfig") -> "S3SignedUrlProvider":
        return cls(
            bucket=config.storage_bucket,
            s3_client=create_s3_client(config),
            verify_exists=config.verify_object_exists,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    def presign_get_object(self, *, location: S3Location, expires_in_seconds: int) -> SignedUrl:
        # boto3 does not validate expires-in; we do a light guard.
        if expires_in_seconds <= 0:
            expires_in_seconds = 60

        url = self._s3.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": location.bucket, "Key": location.key},
            ExpiresIn=expires_in_seconds,
        )

        logger.debug(
            "Generated presigned URL (bucket=%s key=%s ttl=%s)",
            location.bucket,
            location.key,
            expires_in_seconds,
        )
        return SignedUrl(url=url, expires_in_seconds=expires_in_seconds)

    def object_exists(self, location: S3Location) -> bool:
        try:
            self._s3.head_object(Bucket=location.bucket, Key=location.key)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    async def mint_url(self, storage_path: str, validity_window: timedelta) -> str:
        """Mint a presigned GET URL for an object in the configured bucket.

        Raises:
            FileNotFoundError: If verification is on and the object is missing.
            botocore.exceptions.ClientError: On permission or service errors.
        """
        location = S3Location(bucket=self._bucket, key=storage_path)

        # boto3 calls block; keep them off the event loop.
        if self._verify_exists:
            exists = await asyncio.to_thread(self.object_exists, location)
            if not exists:
                raise FileNotFoundError(
                    f"s3://{location.bucket}/{location.key} does not exist"
                )

        signed = await asyncio.to_thread(
            self.presign_get_object,
            location=location,
            expires_in_seconds=int(validity_window.total_seconds()),
        )
        return signed.url
