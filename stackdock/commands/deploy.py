"""Deploy command: validate, publish and deploy one environment's stack."""

import logging

from stackdock import commands
from stackdock.config.resolver import normalize_environment
from stackdock.deploy.orchestrate import deploy
from stackdock.deploy.outputs import OUTPUTS_UNAVAILABLE
from stackdock.deploy.params import DeployParams
from stackdock.deploy.secrets import PROVIDERS

logger = logging.getLogger(__name__)


def handle_deploy(args):
    """Handle the deploy command."""
    params = DeployParams(
        environment=args.environment,
        region=args.region,
        stack_name=args.stack_name,
        project_dir=args.project_dir,
        secret_provider=args.secret_provider,
        poll_interval=args.poll_interval,
        dry_run=args.dry_run,
    )
    outcome = commands.run_command(_handle_deploy(params), on_interrupt=lambda: commands.inspect_hint(params))
    if outcome.outputs is not None and outcome.outputs.code == OUTPUTS_UNAVAILABLE:
        logger.info("Deployment succeeded; outputs could not be displayed.")


async def _handle_deploy(params: DeployParams):
    # Reject a bad environment before any client exists
    normalize_environment(params.environment)
    control_plane = commands.make_control_plane(params.region)
    store = commands.make_artifact_store(params.region)
    outcome = await deploy(params, control_plane=control_plane, store=store)
    if params.dry_run:
        logger.info("")
        logger.info("Dry run complete. Nothing was transferred or submitted.")
    return outcome


def register_deploy_command(subparsers):
    """Register the deploy subcommand."""
    parser = subparsers.add_parser("deploy", help="Deploy a stack to an environment")
    parser.add_argument("environment", help="Target environment (dev, staging, prod)")
    parser.add_argument("region", help="AWS region (e.g. us-east-1)")
    parser.add_argument("stack_name", nargs="?", default=None, help="Stack name (default: <project>-<environment>)")
    commands.add_project_dir_argument(parser)
    parser.add_argument(
        "--secret-provider",
        choices=PROVIDERS,
        default="prompt",
        help="Where secret parameters come from (default: prompt)",
    )
    parser.add_argument("--poll-interval", type=float, default=None, help="Seconds between status polls (default: 10)")
    parser.add_argument("--dry-run", action="store_true", help="Print actions without executing")
    parser.set_defaults(func=handle_deploy)
