"""S3 object storage and CloudFront CDN clients (boto3).

boto3 is blocking, so every call is pushed to a worker thread.
"""

import asyncio
import time
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from sitedeploy.config import settings
from sitedeploy.models.source import RemoteObject
from sitedeploy.utils.logging import get_logger

logger = get_logger(__name__)


class S3ObjectStorage:
    """Bucket listing, upload and delete for the publisher."""

    def __init__(self, client: Any | None = None, region: str | None = None):
        self.s3_client = client or boto3.client(
            "s3",
            region_name=region or settings.aws_region,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )

    async def list_objects(self, bucket: str, prefix: str) -> list[RemoteObject]:
        return await asyncio.to_thread(self._list_sync, bucket, prefix)

    def _list_sync(self, bucket: str, prefix: str) -> list[RemoteObject]:
        key_prefix = f"{prefix}/" if prefix else ""
        paginator = self.s3_client.get_paginator("list_objects_v2")
        objects = []
        for page in paginator.paginate(Bucket=bucket, Prefix=key_prefix):
            for item in page.get("Contents", []):
                objects.append(
                    RemoteObject(path=item["Key"], content_hash=item["ETag"].strip('"'))
                )
        return objects

    async def put(
        self, bucket: str, path: str, body: bytes, content_type: str | None = None
    ) -> None:
        kwargs: dict[str, Any] = {"Bucket": bucket, "Key": path, "Body": body}
        if content_type:
            kwargs["ContentType"] = content_type
        try:
            await asyncio.to_thread(self.s3_client.put_object, **kwargs)
        except ClientError as e:
            logger.error("s3.put_failed", bucket=bucket, key=path, error=str(e))
            raise

    async def delete(self, bucket: str, path: str) -> None:
        try:
            await asyncio.to_thread(self.s3_client.delete_object, Bucket=bucket, Key=path)
        except ClientError as e:
            logger.error("s3.delete_failed", bucket=bucket, key=path, error=str(e))
            raise


class CloudFrontCDN:
    """Finds the distribution serving a bucket and invalidates it."""

    def __init__(self, client: Any | None = None):
        self.cf_client = client or boto3.client(
            "cloudfront",
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )

    async def find_distribution(self, bucket: str) -> str | None:
        return await asyncio.to_thread(self._find_distribution_sync, bucket)

    def _find_distribution_sync(self, bucket: str) -> str | None:
        # Matches REST (bucket.s3.<region>.amazonaws.com) and website
        # (bucket.s3-website-<region>.amazonaws.com) origins
        origin_prefixes = (f"{bucket}.s3.", f"{bucket}.s3-website")
        paginator = self.cf_client.get_paginator("list_distributions")
        for page in paginator.paginate():
            for dist in page.get("DistributionList", {}).get("Items", []):
                for origin in dist.get("Origins", {}).get("Items", []):
                    if origin.get("DomainName", "").startswith(origin_prefixes):
                        return dist["Id"]
        return None

    async def invalidate(self, distribution_id: str, paths: str = "/*") -> str:
        response = await asyncio.to_thread(
            self.cf_client.create_invalidation,
            DistributionId=distribution_id,
            InvalidationBatch={
                "Paths": {"Quantity": 1, "Items": [paths]},
                "CallerReference": f"sitedeploy-{time.time_ns()}",
            },
        )
        return response["Invalidation"]["Id"]
