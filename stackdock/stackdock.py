#!/usr/bin/env python3
"""stackdock: CLI entrypoint."""

import argparse

from stackdock.commands.cleanup import register_cleanup_command
from stackdock.commands.deploy import register_deploy_command
from stackdock.commands.validate import register_validate_command
from stackdock.logging_setup import setup_cli_logging


def main(argv=None):
    parser = argparse.ArgumentParser(description="Multi-environment CloudFormation stack deployment")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_deploy_command(subparsers)
    register_validate_command(subparsers)
    register_cleanup_command(subparsers)

    args = parser.parse_args(argv)
    setup_cli_logging(verbose=args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
