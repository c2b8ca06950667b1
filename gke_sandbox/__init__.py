"""gke-sandbox: short-lived admin VMs for reaching private GKE clusters.

Example:
    from gke_sandbox.cloud.gcp import GCPCloudClient
    from gke_sandbox.config import get_config
    from gke_sandbox.provisioning import CreatePipeline, CreateRequest

    report = CreatePipeline(GCPCloudClient(), get_config()).run(
        CreateRequest(cluster="prod-east", user="jdoe")
    )
    print(report.sandbox.internal_ip)
"""

__version__ = "1.2.0"

from gke_sandbox.config import SandboxConfig, get_config
from gke_sandbox.errors import (
    CloudError,
    ConfigError,
    PrerequisiteError,
    ProvisioningError,
    SandboxError,
    SandboxNotFoundError,
)
from gke_sandbox.types import (
    Cancelled,
    DeleteCancelled,
    Deleted,
    NotFound,
    Outcome,
    ProvisionReport,
    Readiness,
    Sandbox,
    Selected,
    StepResult,
)

__all__ = [
    # Config
    "SandboxConfig",
    "get_config",
    # Errors
    "SandboxError",
    "CloudError",
    "ConfigError",
    "PrerequisiteError",
    "ProvisioningError",
    "SandboxNotFoundError",
    # Results
    "Sandbox",
    "ProvisionReport",
    "StepResult",
    "Outcome",
    "Readiness",
    # Selection / deletion ADTs
    "Selected",
    "Cancelled",
    "NotFound",
    "Deleted",
    "DeleteCancelled",
    # Version
    "__version__",
]
