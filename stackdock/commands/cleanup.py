"""Cleanup command: gated deletion of one environment's stack."""

import asyncio
import logging
import sys

from stackdock import commands
from stackdock.config.resolver import normalize_environment
from stackdock.deploy.orchestrate import teardown
from stackdock.deploy.params import DeployParams

logger = logging.getLogger(__name__)


async def confirm_by_name(stack_name) -> bool:
    """Ask the operator to type the stack name."""
    logger.warning(f"WARNING: This will delete stack {stack_name} and every resource it owns.")
    try:
        answer = await asyncio.to_thread(input, f"Type the stack name ({stack_name}) to confirm: ")
    except EOFError:
        return False
    return answer.strip() == stack_name


def handle_cleanup(args):
    """Handle the cleanup command."""
    params = DeployParams(
        environment=args.environment,
        region=args.region,
        stack_name=args.stack_name,
        project_dir=args.project_dir,
        poll_interval=args.poll_interval,
        dry_run=args.dry_run,
        assume_yes=args.yes,
        force_delete_data=args.force_delete_data,
    )
    commands.run_command(_handle_cleanup(params), on_interrupt=lambda: commands.inspect_hint(params))


async def _handle_cleanup(params: DeployParams):
    normalize_environment(params.environment)
    control_plane = commands.make_control_plane(params.region)
    confirm = confirm_by_name if sys.stdin.isatty() else None
    return await teardown(params, control_plane=control_plane, confirm=confirm)


def register_cleanup_command(subparsers):
    """Register the cleanup subcommand."""
    parser = subparsers.add_parser("cleanup", help="Delete an environment's stack")
    parser.add_argument("environment", help="Target environment (dev, staging, prod)")
    parser.add_argument("region", help="AWS region (e.g. us-east-1)")
    parser.add_argument("stack_name", nargs="?", default=None, help="Stack name (default: <project>-<environment>)")
    commands.add_project_dir_argument(parser)
    parser.add_argument("--yes", "-y", action="store_true", help="Skip the interactive confirmation")
    parser.add_argument(
        "--force-delete-data",
        action="store_true",
        help="Allow deleting stacks that hold databases, buckets, tables or file systems",
    )
    parser.add_argument("--poll-interval", type=float, default=None, help="Seconds between status polls (default: 10)")
    parser.add_argument("--dry-run", action="store_true", help="Print actions without executing")
    parser.set_defaults(func=handle_cleanup)
