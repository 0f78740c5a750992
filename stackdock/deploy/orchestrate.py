"""Deploy orchestration: run_deploy, run_teardown, deploy, teardown."""

import asyncio
import json
import logging
from dataclasses import dataclass, field

import yaml

from stackdock.artifacts import collect_templates
from stackdock.config.project import load_project_config
from stackdock.config.resolver import normalize_environment, resolve_environment
from stackdock.config.types import StackContext
from stackdock.deploy.outputs import OutputReport, report_outputs
from stackdock.deploy.params import DeployParams
from stackdock.deploy.publish import PublishResult, publish_artifacts
from stackdock.deploy.secrets import SecretBroker, make_secret_provider
from stackdock.errors import ConcurrentDeploymentError, DeploymentFailureError, TeardownBlockedError, ValidationError
from stackdock.logging_setup import AUDIT_LOGGER
from stackdock.provisioning.base import ArtifactStore, ControlPlane
from stackdock.provisioning.cloudformation import CloudFormationControlPlane
from stackdock.provisioning.s3 import S3ArtifactStore
from stackdock.provisioning.types import (
    DELETE_TERMINAL_STATES,
    DEPLOY_TERMINAL_STATES,
    NOOP,
    DeploymentRequest,
    StackDescription,
    StackState,
)
from stackdock.validate.graph import build_component_graph, topological_order
from stackdock.validate.lint import cfn_lint_enabled
from stackdock.validate.template import load_template
from stackdock.validate.validator import validate_artifacts

logger = logging.getLogger(__name__)
audit = logging.getLogger(AUDIT_LOGGER)

DRY_RUN = "DRY_RUN"


@dataclass
class DeployOutcome:
    """What a deploy invocation did and where the stack ended up."""

    stack_name: str
    state: StackState
    stack_id: str = ""
    operation: str = ""
    published: PublishResult = field(default_factory=PublishResult)
    outputs: OutputReport | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == StackState.COMPLETE or self.operation == DRY_RUN


async def wait_for_state(control_plane: ControlPlane, stack, terminal_states, interval=10.0) -> StackDescription:
    """Poll describe_stack at a fixed interval until a terminal state is reached.

    There is no local timeout: the control plane bounds the operation.
    Cancelling the awaiting task ends local observation only.
    """
    last_status = None
    while True:
        desc = await control_plane.describe_stack(stack)
        status = desc.status or desc.state.value
        if status != last_status:
            logger.info(f"  {desc.stack_name}: {status}")
            last_status = status
        if desc.state in terminal_states:
            return desc
        await asyncio.sleep(interval)


def build_request(ctx: StackContext, template_url, secrets) -> DeploymentRequest:
    """Merge the parameter set, secret values and fixed tags into one request."""
    parameters = dict(ctx.parameters)
    parameters.update(secrets)
    return DeploymentRequest(
        stack_name=ctx.stack_name,
        environment=ctx.environment.name,
        template_url=template_url,
        parameters=parameters,
        tags=ctx.tags,
    )


def check_submittable(current: StackDescription):
    """Raise if the stack cannot take a create-or-update right now."""
    if current.state.busy:
        raise ConcurrentDeploymentError(
            f"Stack is {current.status or current.state.value}; another operation is in flight. Wait for it to finish, then re-run.",
            current.stack_name,
        )
    if current.status == "ROLLBACK_COMPLETE":
        raise DeploymentFailureError(
            "Stack was rolled back after a failed create and cannot be updated. Run cleanup, then deploy again.",
            current.stack_id or current.stack_name,
            status=current.status,
            reason=current.reason,
        )


async def _raise_terminal_failure(control_plane, desc: StackDescription, operation):
    reason = await control_plane.failure_reason(desc.stack_id or desc.stack_name) or desc.reason
    raise DeploymentFailureError(
        f"Stack {operation} ended in {desc.status or desc.state.value}: {reason or 'no reason reported'}. Manual remediation required.",
        desc.stack_id or desc.stack_name,
        status=desc.status,
        reason=reason,
    )


async def run_deploy(
    ctx: StackContext,
    control_plane: ControlPlane,
    store: ArtifactStore,
    secret_provider,
    dry_run=False,
    poll_interval=None,
) -> DeployOutcome:
    """Shared deploy orchestration.

    Validate -> concurrency pre-check -> publish -> secrets -> submit -> poll
    -> outputs. Raises a StackdockError subclass on any blocking failure.
    """
    interval = ctx.project.poll_interval if poll_interval is None else poll_interval
    logger.info(f"Starting deployment for environment: {ctx.environment.name} in region: {ctx.region}")
    logger.info(f"Stack: {ctx.stack_name}")

    # Step 1: Validate every template
    templates = collect_templates(ctx.project.project_dir, ctx.project.composition, ctx.project.templates_dir, ctx.templates_bucket)
    report = await validate_artifacts(templates, control_plane, cfn_lint_enabled(ctx.project.lint.cfn_lint))
    if not report.passed:
        raise ValidationError(
            f"Template validation failed with {report.error_count} error(s)",
            report,
            ", ".join(report.failed_artifacts),
        )
    logger.info(f"Validation: 0 errors, {report.warning_count} warning(s)")

    # Step 2: Fail fast if another operation owns the stack
    current = await control_plane.describe_stack(ctx.stack_name)
    check_submittable(current)

    # Step 3: Publish templates and code payloads
    published = await publish_artifacts(ctx, templates, store, report, dry_run=dry_run)

    # Step 4: Secrets, in memory only
    secrets = await SecretBroker(secret_provider).acquire(ctx.project.secret_parameters)

    # Step 5: Submit
    request = build_request(ctx, published.template_url, secrets)
    del secrets
    if dry_run:
        logger.info(f"[dry-run] create-or-update stack {ctx.stack_name} ({'update' if current.exists else 'create'})")
        logger.info(f"[dry-run] request: {json.dumps(request.describe(ctx.project.secret_parameters), indent=2)}")
        return DeployOutcome(ctx.stack_name, current.state, current.stack_id, DRY_RUN, published)

    logger.info(f"Deploying stack: {ctx.stack_name}")
    submitted = await control_plane.create_or_update_stack(request)

    if submitted.operation == NOOP:
        logger.info(f"No changes to deploy. Stack {ctx.stack_name} is up to date.")
        final = await control_plane.describe_stack(submitted.stack_id or ctx.stack_name)
    else:
        logger.info(f"{submitted.operation.capitalize()} submitted (stack id {submitted.stack_id}). Polling every {interval:g}s...")
        final = await wait_for_state(control_plane, submitted.stack_id, DEPLOY_TERMINAL_STATES, interval)

    if final.state != StackState.COMPLETE:
        await _raise_terminal_failure(control_plane, final, submitted.operation.lower())
    logger.info("Stack deployment completed successfully")

    # Step 6: Outputs (soft failure)
    outputs = await report_outputs(control_plane, final.stack_id or ctx.stack_name)

    return DeployOutcome(ctx.stack_name, final.state, final.stack_id, submitted.operation, published, outputs)


def component_deletion_order(project) -> list[str]:
    """Reverse creation order of the composition's components, for display.

    Empty if the composition cannot be read; the control plane resolves the
    actual order from the deployed stack.
    """
    try:
        composition = load_template(project.composition_path.read_text(encoding="utf-8"))
        return list(reversed(topological_order(build_component_graph(composition))))
    except (OSError, ValueError, yaml.YAMLError, AttributeError) as e:
        logger.debug(f"Could not derive component order: {e}")
        return []


async def run_teardown(
    ctx: StackContext,
    control_plane: ControlPlane,
    confirm=None,
    assume_yes=False,
    force_delete_data=False,
    dry_run=False,
    poll_interval=None,
) -> StackDescription:
    """Gated stack deletion.

    Args:
        confirm: async callable(stack_name) -> bool for interactive confirmation.
        assume_yes: confirmation given up front (--yes).
        force_delete_data: acknowledgment that durable stores will be destroyed.
    """
    interval = ctx.project.poll_interval if poll_interval is None else poll_interval
    stack = ctx.stack_name

    current = await control_plane.describe_stack(stack)
    if not current.exists:
        logger.info(f"Stack {stack} does not exist. Nothing to delete.")
        return current
    if current.state.busy:
        raise TeardownBlockedError(
            f"Stack is {current.status or current.state.value}; cleanup is only allowed from a stable state. Wait and re-run.",
            stack,
        )

    # Gate 1: durable data
    durable = await control_plane.list_durable_resources(current.stack_id or stack)
    if durable:
        logger.warning(f"Stack {stack} holds {len(durable)} durable store(s):")
        for r in durable:
            logger.warning(f"  {r.resource_type} {r.logical_id} ({r.physical_id})")
        if not force_delete_data:
            audit.info(f"AUDIT stack={stack} gate=force-delete-data decision=denied resources={len(durable)}")
            raise TeardownBlockedError(
                "Deleting this stack destroys durable data. Re-run with --force-delete-data to acknowledge.",
                stack,
            )
        audit.info(f"AUDIT stack={stack} gate=force-delete-data decision=granted source=flag resources={len(durable)}")

    # Gate 2: destructive-action confirmation
    if assume_yes:
        audit.info(f"AUDIT stack={stack} gate=confirm decision=granted source=flag")
    elif confirm is not None:
        if not await confirm(stack):
            audit.info(f"AUDIT stack={stack} gate=confirm decision=denied source=prompt")
            raise TeardownBlockedError("Deletion not confirmed", stack)
        audit.info(f"AUDIT stack={stack} gate=confirm decision=granted source=prompt")
    else:
        audit.info(f"AUDIT stack={stack} gate=confirm decision=denied source=none")
        raise TeardownBlockedError("Deletion requires confirmation: pass --yes or run in a terminal", stack)

    order = component_deletion_order(ctx.project)
    if order:
        logger.info(f"Components will be deleted in order: {', '.join(order)}")

    if dry_run:
        logger.info(f"[dry-run] delete stack {stack} ({current.stack_id})")
        return current

    logger.info(f"Deleting stack: {stack}")
    await control_plane.delete_stack(current.stack_id or stack)
    final = await wait_for_state(control_plane, current.stack_id or stack, DELETE_TERMINAL_STATES, interval)
    if final.state == StackState.FAILED:
        await _raise_terminal_failure(control_plane, final, "delete")
    logger.info(f"Stack {stack} deleted.")
    return final


async def deploy(params: DeployParams, control_plane=None, store=None, secret_provider=None) -> DeployOutcome:
    """Deploy entry point: resolve the environment, build clients, run."""
    project = load_project_config(params.project_dir)
    # Environment name is checked before any client is built
    env_name = normalize_environment(params.environment)
    control_plane = control_plane or CloudFormationControlPlane(params.region)
    store = store or S3ArtifactStore(params.region)
    ctx = await resolve_environment(project, env_name, params.region, params.stack_name, control_plane)
    secret_provider = secret_provider or make_secret_provider(params.secret_provider, project.project, env_name, params.region)
    return await run_deploy(ctx, control_plane, store, secret_provider, params.dry_run, params.poll_interval)


async def teardown(params: DeployParams, control_plane=None, confirm=None) -> StackDescription:
    """Cleanup entry point."""
    project = load_project_config(params.project_dir)
    env_name = normalize_environment(params.environment)
    control_plane = control_plane or CloudFormationControlPlane(params.region)
    ctx = await resolve_environment(project, env_name, params.region, params.stack_name, control_plane)
    return await run_teardown(
        ctx,
        control_plane,
        confirm=confirm,
        assume_yes=params.assume_yes,
        force_delete_data=params.force_delete_data,
        dry_run=params.dry_run,
        poll_interval=params.poll_interval,
    )
