"""Control-plane and artifact-store clients: interfaces, boto3 implementations, shell helper."""

from stackdock.provisioning.base import DURABLE_RESOURCE_TYPES, ArtifactStore, ControlPlane
from stackdock.provisioning.cloudformation import CloudFormationControlPlane
from stackdock.provisioning.s3 import S3ArtifactStore
from stackdock.provisioning.shell import run_shell_cmd
from stackdock.provisioning.types import (
    DeploymentRequest,
    StackDescription,
    StackOutput,
    StackResource,
    StackState,
    SubmitResult,
    state_from_status,
)

__all__ = [
    "ArtifactStore",
    "ControlPlane",
    "DURABLE_RESOURCE_TYPES",
    "CloudFormationControlPlane",
    "S3ArtifactStore",
    "run_shell_cmd",
    "DeploymentRequest",
    "StackDescription",
    "StackOutput",
    "StackResource",
    "StackState",
    "SubmitResult",
    "state_from_status",
]
