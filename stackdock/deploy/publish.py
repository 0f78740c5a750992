"""Artifact Publisher: make validated artifacts reachable by the control plane.

Layout in the templates bucket: the composition at the bucket root, component
templates under ``templates/``. Code payloads mirror to the root of the code
bucket.
"""

import logging
from dataclasses import dataclass, field

from stackdock.artifacts import COMPONENT, COMPOSITION, collect_code_payloads
from stackdock.config.types import StackContext
from stackdock.errors import PublishError, ValidationError

logger = logging.getLogger(__name__)

TEMPLATES_PREFIX = "templates/"


def object_url(bucket, key, region) -> str:
    """HTTPS URL for an object, in the form CloudFormation accepts as TemplateURL."""
    if region == "us-east-1":
        return f"https://{bucket}.s3.amazonaws.com/{key}"
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


@dataclass
class PublishResult:
    template_url: str = ""
    templates_changed: list[str] = field(default_factory=list)
    code_changed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> list[str]:
        return self.templates_changed + self.code_changed


async def publish_artifacts(ctx: StackContext, templates, store, report=None, dry_run=False) -> PublishResult:
    """Publish templates and code payloads for ctx.

    Args:
        templates: template Artifacts (composition + components).
        store: ArtifactStore.
        report: ValidationReport for templates; publishing refuses if it failed.
        dry_run: compute and log the diff without transferring.
    """
    if report is not None and not report.passed:
        raise ValidationError(
            f"Refusing to publish: {report.error_count} validation error(s)",
            report,
            ", ".join(report.failed_artifacts),
        )

    if ctx.templates_bucket == ctx.code_bucket:
        raise PublishError(
            f"{ctx.project.templates_bucket_key} and {ctx.project.code_bucket_key} must name different buckets; the code mirror would delete templates",
            ctx.templates_bucket,
        )

    compositions = [a for a in templates if a.kind == COMPOSITION]
    components = [a for a in templates if a.kind == COMPONENT]
    if len(compositions) != 1:
        raise PublishError(f"Expected exactly one composition template, found {len(compositions)}", ctx.project.composition)
    composition = compositions[0]

    result = PublishResult()
    region = ctx.region

    try:
        bucket = ctx.templates_bucket
        logger.info(f"Uploading templates to bucket: {bucket}")
        created = await store.ensure_location(bucket, region, dry_run=dry_run)
        fresh = created and dry_run
        result.templates_changed = await store.sync_mirror(components, bucket, TEMPLATES_PREFIX, dry_run=dry_run, known_empty=fresh)
        if await store.put_if_changed(composition, bucket, composition.logical_name, dry_run=dry_run, known_empty=fresh):
            result.templates_changed.append(composition.logical_name)
        result.template_url = object_url(bucket, composition.logical_name, region)
        logger.info(f"Templates: {len(result.templates_changed)} changed")

        bucket = ctx.code_bucket
        logger.info(f"Uploading code payloads to bucket: {bucket}")
        created = await store.ensure_location(bucket, region, dry_run=dry_run)
        payloads = collect_code_payloads(ctx.project.code_path)
        if payloads is None:
            warning = f"Code directory {ctx.project.code_dir} not found. Skipping upload."
            logger.warning(warning)
            result.warnings.append(warning)
        else:
            result.code_changed = await store.sync_mirror(payloads, bucket, "", dry_run=dry_run, known_empty=created and dry_run)
            logger.info(f"Code payloads: {len(result.code_changed)} changed")
    except OSError as e:
        raise PublishError(f"Could not read artifact for upload: {e}", getattr(e, "filename", None)) from e

    return result
