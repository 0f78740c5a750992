"""Collaborator interfaces consumed by the orchestration core.

The deploy and teardown logic only talks to these abstractions; the boto3
implementations live in ``cloudformation.py`` and ``s3.py`` and tests supply
in-memory fakes.
"""

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

HASH_METADATA_KEY = "content-sha256"

DURABLE_RESOURCE_TYPES = frozenset(
    {
        "AWS::RDS::DBInstance",
        "AWS::RDS::DBCluster",
        "AWS::S3::Bucket",
        "AWS::DynamoDB::Table",
        "AWS::EFS::FileSystem",
    }
)


class ControlPlane(ABC):
    """Asynchronous provisioning service that owns stack state."""

    @abstractmethod
    async def known_regions(self) -> set[str]:
        """Region names the control plane accepts."""

    @abstractmethod
    async def validate_artifact(self, artifact):
        """Remote structural validation. Returns a ValidationResult."""

    @abstractmethod
    async def create_or_update_stack(self, request):
        """Create the stack if absent, otherwise update it. Returns a SubmitResult."""

    @abstractmethod
    async def describe_stack(self, stack):
        """Return a StackDescription for a stack name or id. Absent stacks are ABSENT, not errors."""

    @abstractmethod
    async def delete_stack(self, stack):
        """Request deletion. Returns once the request is accepted."""

    @abstractmethod
    async def list_durable_resources(self, stack):
        """StackResources holding durable data, including those in nested stacks."""

    @abstractmethod
    async def failure_reason(self, stack) -> str | None:
        """Root-cause message from the most recent failed operation, if any."""


class ArtifactStore(ABC):
    """Object storage for templates and code payloads.

    Subclasses implement the primitives; ``sync_mirror`` builds the
    content-hash mirrored sync on top of them.
    """

    @abstractmethod
    async def exists(self, bucket) -> bool: ...

    @abstractmethod
    async def create(self, bucket, region): ...

    @abstractmethod
    async def list_hashes(self, bucket, prefix="") -> dict[str, str | None]:
        """Map key -> recorded content hash (None if unrecorded) for keys under prefix."""

    @abstractmethod
    async def upload(self, bucket, key, path, content_hash): ...

    @abstractmethod
    async def delete(self, bucket, keys): ...

    async def ensure_location(self, bucket, region, dry_run=False) -> bool:
        """Create the bucket if absent. Returns True if it was created."""
        if await self.exists(bucket):
            logger.info(f"Bucket {bucket} already exists")
            return False
        if dry_run:
            logger.info(f"[dry-run] create bucket {bucket} in {region}")
            return True
        logger.info(f"Creating bucket {bucket}")
        await self.create(bucket, region)
        return True

    async def sync_mirror(self, source_set, bucket, prefix="", dry_run=False, known_empty=False) -> list[str]:
        """Mirror source_set (Artifacts keyed by logical_name) under bucket/prefix.

        Uploads artifacts whose content hash differs from the recorded one,
        deletes keys under prefix that are not in source_set. Returns the list
        of changed keys, uploads first, in source order. known_empty skips the
        listing (a bucket that does not exist yet in a dry run).
        """
        wanted = {f"{prefix}{a.logical_name}": a for a in source_set}
        existing = {} if known_empty else await self.list_hashes(bucket, prefix)

        to_upload = [key for key, a in wanted.items() if existing.get(key) != a.content_hash]
        to_delete = sorted(key for key in existing if key not in wanted)

        for key in to_upload:
            artifact = wanted[key]
            if dry_run:
                logger.info(f"[dry-run] upload {artifact.source_path} -> s3://{bucket}/{key}")
                continue
            logger.info(f"  upload: {artifact.source_path} -> s3://{bucket}/{key}")
            await self.upload(bucket, key, artifact.source_path, artifact.content_hash)

        if to_delete:
            if dry_run:
                for key in to_delete:
                    logger.info(f"[dry-run] delete s3://{bucket}/{key}")
            else:
                for key in to_delete:
                    logger.info(f"  delete: s3://{bucket}/{key}")
                await self.delete(bucket, to_delete)

        unchanged = len(wanted) - len(to_upload)
        logger.debug(f"s3://{bucket}/{prefix}: {len(to_upload)} uploaded, {len(to_delete)} deleted, {unchanged} unchanged")
        return to_upload + to_delete

    async def put_if_changed(self, artifact, bucket, key, dry_run=False, known_empty=False) -> bool:
        """Upload one artifact unless the recorded hash at key already matches. Returns True if transferred."""
        recorded = None if known_empty else (await self.list_hashes(bucket, key)).get(key)
        if recorded == artifact.content_hash:
            return False
        if dry_run:
            logger.info(f"[dry-run] upload {artifact.source_path} -> s3://{bucket}/{key}")
            return True
        logger.info(f"  upload: {artifact.source_path} -> s3://{bucket}/{key}")
        await self.upload(bucket, key, artifact.source_path, artifact.content_hash)
        return True
