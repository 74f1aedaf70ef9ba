"""Publish API references to S3-compatible object storage."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Optional, Protocol

import boto3
from botocore.config import Config

from apidecl.reference.document import Reference

if TYPE_CHECKING:
    from apidecl.runtime.options import AWSOptions

logger = logging.getLogger(__name__)


class ReferencePublisher(Protocol):
    async def publish(self, reference: Reference) -> str:
        """Store the reference; return the key it was written under."""
        ...


def reference_key(reference: Reference) -> str:
    return f"{reference.service_name}/{reference.api_version}/api.json"


class S3ReferencePublisher:
    """Writes <service>/<version>/api.json into a bucket. Works with S3, MinIO, LocalStack."""

    def __init__(self, bucket: str, aws: Optional["AWSOptions"] = None, client: Any = None):
        self.bucket = bucket
        self.aws = aws
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            client_kwargs: dict[str, Any] = {
                "service_name": "s3",
                "config": Config(signature_version="s3v4"),
            }
            if self.aws is not None:
                client_kwargs["region_name"] = self.aws.region
                if self.aws.endpoint_url:
                    client_kwargs["endpoint_url"] = self.aws.endpoint_url
                if self.aws.access_key_id and self.aws.secret_access_key:
                    client_kwargs["aws_access_key_id"] = self.aws.access_key_id
                    client_kwargs["aws_secret_access_key"] = self.aws.secret_access_key
            self._client = boto3.client(**client_kwargs)
        return self._client

    async def publish(self, reference: Reference) -> str:
        key = reference_key(reference)
        body = reference.to_json().encode("utf-8")
        # boto3 is blocking; keep the event loop free
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType="application/json",
        )
        logger.info("reference written to s3://%s/%s", self.bucket, key, extra={"bucket": self.bucket, "key": key})
        return key
