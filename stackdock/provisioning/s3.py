"""S3 artifact store backed by boto3.

Content hashes are recorded as object metadata so the next publish can skip
unchanged files without downloading them.
"""

import asyncio
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from stackdock.errors import PublishError
from stackdock.provisioning.base import HASH_METADATA_KEY, ArtifactStore

logger = logging.getLogger(__name__)

_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}
_DELETE_BATCH = 1000


class S3ArtifactStore(ArtifactStore):
    """ArtifactStore over S3. Credentials come from boto3's standard chain."""

    def __init__(self, region, session=None, s3=None):
        self.region = region
        session = session or boto3.session.Session(region_name=region)
        self.s3 = s3 or session.client("s3", region_name=region)

    async def _call(self, op, **kwargs):
        try:
            return await asyncio.to_thread(getattr(self.s3, op), **kwargs)
        except (ClientError, BotoCoreError) as e:
            bucket = kwargs.get("Bucket")
            raise PublishError(f"{op} failed: {e}", f"s3://{bucket}" if bucket else None) from e

    async def exists(self, bucket) -> bool:
        try:
            await asyncio.to_thread(self.s3.head_bucket, Bucket=bucket)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _MISSING_BUCKET_CODES:
                return False
            if code in ("403", "AccessDenied"):
                raise PublishError("Bucket exists but is not accessible with the current credentials", f"s3://{bucket}") from e
            raise PublishError(f"Could not check bucket: {e}", f"s3://{bucket}") from e
        except BotoCoreError as e:
            raise PublishError(f"Artifact store unreachable: {e}", f"s3://{bucket}") from e
        return True

    async def create(self, bucket, region):
        kwargs = {"Bucket": bucket}
        # us-east-1 rejects an explicit LocationConstraint
        if region and region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
        try:
            await asyncio.to_thread(self.s3.create_bucket, **kwargs)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "BucketAlreadyOwnedByYou":
                return
            raise PublishError(f"Could not create bucket: {e}", f"s3://{bucket}") from e
        except BotoCoreError as e:
            raise PublishError(f"Artifact store unreachable: {e}", f"s3://{bucket}") from e

    async def list_hashes(self, bucket, prefix="") -> dict[str, str | None]:
        paginator = self.s3.get_paginator("list_objects_v2")

        def _keys():
            keys = []
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
            return keys

        try:
            keys = await asyncio.to_thread(_keys)
        except (ClientError, BotoCoreError) as e:
            raise PublishError(f"Could not list objects: {e}", f"s3://{bucket}/{prefix}") from e

        hashes = {}
        for key in keys:
            head = await self._call("head_object", Bucket=bucket, Key=key)
            hashes[key] = head.get("Metadata", {}).get(HASH_METADATA_KEY)
        return hashes

    async def upload(self, bucket, key, path, content_hash):
        await self._call(
            "upload_file",
            Filename=str(path),
            Bucket=bucket,
            Key=key,
            ExtraArgs={"Metadata": {HASH_METADATA_KEY: content_hash}},
        )

    async def delete(self, bucket, keys):
        keys = list(keys)
        for i in range(0, len(keys), _DELETE_BATCH):
            batch = keys[i : i + _DELETE_BATCH]
            resp = await self._call(
                "delete_objects",
                Bucket=bucket,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
            )
            errors = resp.get("Errors", [])
            if errors:
                failed = ", ".join(err.get("Key", "?") for err in errors)
                raise PublishError(f"Could not delete {len(errors)} object(s): {failed}", f"s3://{bucket}")
