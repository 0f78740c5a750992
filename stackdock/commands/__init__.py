"""CLI command handlers. The only place errors become exit codes."""

import asyncio
import logging
import sys

from stackdock.config.project import load_project_config
from stackdock.config.resolver import default_stack_name, normalize_environment
from stackdock.errors import StackdockError, ValidationError
from stackdock.provisioning.cloudformation import CloudFormationControlPlane
from stackdock.provisioning.s3 import S3ArtifactStore
from stackdock.validate.validator import log_report

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def make_control_plane(region):
    return CloudFormationControlPlane(region)


def make_artifact_store(region):
    return S3ArtifactStore(region)


def log_error(e: StackdockError):
    """Log a StackdockError the way every handler reports it."""
    if isinstance(e, ValidationError) and e.report is not None:
        log_report(e.report)
    logger.error(f"Error: {e.message}")
    if e.identifier:
        logger.error(f"  affected: {e.identifier}")


def run_command(coro, on_interrupt=None):
    """Run coro to completion; exit 1 on StackdockError, 130 on Ctrl-C.

    on_interrupt returns an extra hint line, computed only when needed.
    """
    try:
        return asyncio.run(coro)
    except StackdockError as e:
        log_error(e)
        sys.exit(EXIT_FAILURE)
    except KeyboardInterrupt:
        logger.info("")
        logger.info("Interrupted. Local polling stopped; no cancel was sent to the control plane.")
        if on_interrupt:
            logger.info(on_interrupt())
        sys.exit(EXIT_INTERRUPTED)


def inspect_hint(params) -> str:
    """How to look at the stack after an interrupted poll."""
    stack_name = params.stack_name
    if not stack_name:
        try:
            project = load_project_config(params.project_dir)
            stack_name = default_stack_name(project, normalize_environment(params.environment))
        except StackdockError:
            stack_name = "<stack-name>"
    return f"Inspect the stack with: aws cloudformation describe-stacks --stack-name {stack_name} --region {params.region}"


def add_project_dir_argument(parser):
    parser.add_argument(
        "--project-dir",
        default=".",
        help="Project directory containing stackdock.yaml, main.yaml and parameters/ (default: .)",
    )
