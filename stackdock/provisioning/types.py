"""Shared data types for control-plane and artifact-store clients."""

from dataclasses import dataclass, field
from enum import Enum


class StackState(Enum):
    """Orchestrator view of a stack's lifecycle. Driven by the control plane."""

    ABSENT = "ABSENT"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"
    ROLLED_BACK = "ROLLED_BACK"
    DELETE_IN_PROGRESS = "DELETE_IN_PROGRESS"
    DELETED = "DELETED"

    @property
    def busy(self) -> bool:
        return self in (StackState.IN_PROGRESS, StackState.DELETE_IN_PROGRESS)


DEPLOY_TERMINAL_STATES = frozenset({StackState.COMPLETE, StackState.FAILED, StackState.ROLLED_BACK})
DELETE_TERMINAL_STATES = frozenset({StackState.DELETED, StackState.FAILED, StackState.ABSENT})

# Raw CloudFormation status -> StackState. Anything ending in _IN_PROGRESS that
# is not listed maps to IN_PROGRESS.
_STATUS_MAP = {
    "CREATE_COMPLETE": StackState.COMPLETE,
    "UPDATE_COMPLETE": StackState.COMPLETE,
    "IMPORT_COMPLETE": StackState.COMPLETE,
    "CREATE_FAILED": StackState.FAILED,
    "UPDATE_FAILED": StackState.FAILED,
    "DELETE_FAILED": StackState.FAILED,
    "ROLLBACK_FAILED": StackState.FAILED,
    "UPDATE_ROLLBACK_FAILED": StackState.FAILED,
    "IMPORT_ROLLBACK_FAILED": StackState.FAILED,
    "ROLLBACK_COMPLETE": StackState.ROLLED_BACK,
    "UPDATE_ROLLBACK_COMPLETE": StackState.ROLLED_BACK,
    "IMPORT_ROLLBACK_COMPLETE": StackState.ROLLED_BACK,
    "DELETE_IN_PROGRESS": StackState.DELETE_IN_PROGRESS,
    "DELETE_COMPLETE": StackState.DELETED,
}


def state_from_status(status) -> StackState:
    """Map a raw CloudFormation stack status to a StackState."""
    if not status:
        return StackState.ABSENT
    if status in _STATUS_MAP:
        return _STATUS_MAP[status]
    if status.endswith("_IN_PROGRESS"):
        return StackState.IN_PROGRESS
    raise ValueError(f"Unknown stack status: {status}")


@dataclass
class StackOutput:
    key: str
    value: str
    description: str = ""


@dataclass
class StackDescription:
    """Snapshot of a stack as reported by the control plane."""

    stack_name: str
    state: StackState
    stack_id: str = ""
    status: str = ""
    reason: str = ""
    outputs: list[StackOutput] = field(default_factory=list)

    @property
    def exists(self) -> bool:
        return self.state not in (StackState.ABSENT, StackState.DELETED)


@dataclass(frozen=True)
class DeploymentRequest:
    """A single composed create-or-update request. Built once per invocation."""

    stack_name: str
    environment: str
    template_url: str
    parameters: dict[str, str]
    capabilities: tuple[str, ...] = ("CAPABILITY_IAM", "CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND")
    tags: dict[str, str] = field(default_factory=dict)

    def describe(self, secret_keys=()) -> dict:
        """Loggable view of the request with secret values masked."""
        params = {k: ("***" if k in secret_keys else v) for k, v in self.parameters.items()}
        return {
            "stack_name": self.stack_name,
            "environment": self.environment,
            "template_url": self.template_url,
            "parameters": params,
            "capabilities": list(self.capabilities),
            "tags": dict(self.tags),
        }


CREATE = "CREATE"
UPDATE = "UPDATE"
NOOP = "NOOP"


@dataclass
class SubmitResult:
    """Outcome of create_or_update_stack. operation is CREATE, UPDATE or NOOP."""

    stack_id: str
    operation: str


@dataclass
class StackResource:
    logical_id: str
    resource_type: str
    physical_id: str = ""
    stack_name: str = ""
