"""Deploy parameters dataclass."""

from dataclasses import dataclass


@dataclass
class DeployParams:
    """Everything a deploy or cleanup invocation needs from the caller."""

    environment: str
    region: str
    stack_name: str | None = None
    project_dir: str = "."
    secret_provider: str = "prompt"
    poll_interval: float | None = None  # None: use the project setting
    dry_run: bool = False
    assume_yes: bool = False  # cleanup confirmation gate
    force_delete_data: bool = False  # cleanup durable-store gate
