"""Error taxonomy for stackdock operations.

Library code raises these; only the CLI handlers in ``stackdock.commands``
turn them into log lines and exit codes.
"""


class StackdockError(Exception):
    """Base class. ``identifier`` names the affected artifact or stack."""

    def __init__(self, message: str, identifier: str | None = None):
        super().__init__(message)
        self.message = message
        self.identifier = identifier

    def __str__(self) -> str:
        if self.identifier:
            return f"{self.message} [{self.identifier}]"
        return self.message


class InvalidInputError(StackdockError):
    """Bad environment, region or argument. Raised before any side effect."""


class ParameterFileError(StackdockError):
    """Missing or malformed per-environment parameter file."""


class ValidationError(StackdockError):
    """One or more artifacts failed validation. Carries the full report."""

    def __init__(self, message: str, report=None, identifier: str | None = None):
        super().__init__(message, identifier)
        self.report = report


class PublishError(StackdockError):
    """Artifact store unreachable or sync failure."""


class SecretUnavailableError(StackdockError):
    """A secret parameter could not be retrieved from its provider."""


class ConcurrentDeploymentError(StackdockError):
    """Another operation is in flight on the same stack."""


class DeploymentFailureError(StackdockError):
    """Stack reached FAILED or ROLLED_BACK. Needs manual remediation."""

    def __init__(self, message: str, identifier: str | None = None, status: str | None = None, reason: str | None = None):
        super().__init__(message, identifier)
        self.status = status
        self.reason = reason


class TeardownBlockedError(StackdockError):
    """Deletion refused: stack busy, or a required gate was not satisfied."""
