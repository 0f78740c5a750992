"""Deploy library: publishing, secrets, orchestration, outputs."""

from stackdock.deploy.params import DeployParams
from stackdock.deploy.publish import PublishResult, publish_artifacts
from stackdock.deploy.secrets import SecretBroker, SecretProvider, make_secret_provider
from stackdock.deploy.outputs import OUTPUTS_UNAVAILABLE, OutputReport, report_outputs
from stackdock.deploy.orchestrate import (
    DeployOutcome,
    run_deploy,
    run_teardown,
    deploy,
    teardown,
)

__all__ = [
    "DeployParams",
    "PublishResult",
    "publish_artifacts",
    "SecretBroker",
    "SecretProvider",
    "make_secret_provider",
    "OUTPUTS_UNAVAILABLE",
    "OutputReport",
    "report_outputs",
    "DeployOutcome",
    "run_deploy",
    "run_teardown",
    "deploy",
    "teardown",
]
