"""Validate command: check every template and parameter file without deploying."""

import logging
import os
import sys

from stackdock import commands
from stackdock.config.project import load_project_config
from stackdock.validate.validator import log_report, validate_project

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"


def handle_validate(args):
    """Handle the validate command."""
    report = commands.run_command(_handle_validate(args))
    if not report.passed:
        sys.exit(commands.EXIT_FAILURE)


async def _handle_validate(args):
    project = load_project_config(args.project_dir)
    control_plane = None
    if not args.offline:
        region = args.region or os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION") or DEFAULT_REGION
        control_plane = commands.make_control_plane(region)

    logger.info(f"Validating project: {project.project_dir}")
    logger.info("")
    report = await validate_project(project, control_plane)
    log_report(report)
    return report


def register_validate_command(subparsers):
    """Register the validate subcommand."""
    parser = subparsers.add_parser("validate", help="Validate templates and parameter files")
    commands.add_project_dir_argument(parser)
    parser.add_argument("--offline", action="store_true", help="Skip control-plane template validation")
    parser.add_argument("--region", default=None, help="Region for control-plane validation (default: $AWS_REGION or us-east-1)")
    parser.set_defaults(func=handle_validate)
