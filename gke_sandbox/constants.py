"""Centralized constants for gke-sandbox.

All magic strings, label keys, remote paths and polling limits live here so
provisioning, selection and deletion agree on them.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# Instance Labels
# =============================================================================


class SandboxLabel(StrEnum):
    """Compute Engine label keys stamped on every sandbox."""

    OWNER = "owner"
    CLUSTER = "cluster"
    TYPE = "type"
    CREATED = "created"


SANDBOX_TYPE: Final = "sandbox"


# =============================================================================
# Compute Engine Instance States
# =============================================================================


class InstanceState(StrEnum):
    """GCE instance status values."""

    PROVISIONING = "PROVISIONING"
    STAGING = "STAGING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    SUSPENDED = "SUSPENDED"
    TERMINATED = "TERMINATED"


# =============================================================================
# Identity
# =============================================================================

SERVICE_ACCOUNT_PREFIX: Final = "gke-sandbox-"
SERVICE_ACCOUNT_DOMAIN: Final = "iam.gserviceaccount.com"
INSTANCE_SCOPE: Final = "https://www.googleapis.com/auth/cloud-platform"

DEFAULT_REQUIRED_ROLES: Final = (
    "roles/container.developer",
    "roles/container.clusterViewer",
    "roles/logging.logWriter",
    "roles/monitoring.metricWriter",
)


# =============================================================================
# Firewall / IAP
# =============================================================================

IAP_RULE_PREFIX: Final = "allow-ssh-ingress-from-iap-"
IAP_SOURCE_RANGE: Final = "35.235.240.0/20"
IAP_RULE_PRIORITY: Final = 1000
SSH_PORT: Final = "22"


# =============================================================================
# Guest Paths
# =============================================================================

READINESS_MARKER: Final = "/var/run/sandbox-ready"
STARTUP_LOG: Final = "/var/log/sandbox-init.log"
STARTUP_SCRIPT_KEY: Final = "startup-script"


# =============================================================================
# Polling
# =============================================================================

RUNNING_POLL_INTERVAL: Final = 10.0
RUNNING_POLL_TIMEOUT: Final = 180.0
READINESS_POLL_INTERVAL: Final = 15.0
READINESS_POLL_ATTEMPTS: Final = 12
IAM_SETTLE_SECONDS: Final = 30.0


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_ZONE: Final = "us-central1-a"
DEFAULT_VM_SIZE: Final = "e2-standard-2"
DEFAULT_IMAGE_FAMILY: Final = "debian-12"
DEFAULT_IMAGE_PROJECT: Final = "debian-cloud"
