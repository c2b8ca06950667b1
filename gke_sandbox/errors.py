"""Exception hierarchy for gke-sandbox.

Every fatal condition in the create/delete workflows raises a subclass of
``SandboxError``; the CLI turns them into exit code 1. Recoverable problems
never raise, they come back as failed step results.
"""

from __future__ import annotations


class SandboxError(Exception):
    """Base class for user-facing failures."""


class ConfigError(SandboxError):
    """Invalid or incomplete configuration."""


class PrerequisiteError(SandboxError):
    """Local tooling, credentials or project access are not usable."""


class ProvisioningError(SandboxError):
    """A required provisioning step failed and the pipeline must stop."""


class SandboxNotFoundError(SandboxError):
    """The requested sandbox does not exist."""


class CloudError(SandboxError):
    """Error returned by the cloud provider.

    The message is the provider's own error text.
    """

    def __init__(self, message: str, *, operation: str = "") -> None:
        self.operation = operation
        super().__init__(f"{operation}: {message}" if operation else message)
