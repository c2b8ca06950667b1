"""Typed records shared by the provisioning, selection and deletion code.

Cloud describe/list results are turned into these records at the client
boundary, so nothing downstream parses delimited text.

Results that callers branch on are small ADTs meant for pattern matching:

    match selector.select_one(project, user):
        case Selected(entry=entry):
            ...
        case Cancelled():
            ...
        case NotFound():
            ...
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType

from gke_sandbox.constants import (
    IAP_RULE_PRIORITY,
    IAP_SOURCE_RANGE,
    SANDBOX_TYPE,
    SSH_PORT,
    InstanceState,
    SandboxLabel,
)

# =============================================================================
# Instances
# =============================================================================


@dataclass(frozen=True, slots=True)
class SandboxLabels:
    """Label set stamped on a sandbox at creation time."""

    owner: str
    cluster: str
    created: str
    type: str = SANDBOX_TYPE

    def to_dict(self) -> dict[str, str]:
        return {
            SandboxLabel.OWNER: self.owner,
            SandboxLabel.CLUSTER: self.cluster,
            SandboxLabel.TYPE: self.type,
            SandboxLabel.CREATED: self.created,
        }


@dataclass(frozen=True, slots=True)
class InstanceSpec:
    """Everything needed to insert one sandbox VM."""

    name: str
    machine_type: str
    subnet: str
    region: str
    image_family: str
    image_project: str
    service_account: str
    scopes: tuple[str, ...]
    labels: SandboxLabels
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class InstanceRecord:
    """Describe/list view of a Compute Engine instance."""

    name: str
    zone: str
    status: str
    labels: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    internal_ip: str | None = None
    network: str = ""
    subnet: str = ""
    machine_type: str = ""
    created_at: str = ""

    @property
    def is_running(self) -> bool:
        return self.status == InstanceState.RUNNING

    @property
    def owner(self) -> str:
        return self.labels.get(SandboxLabel.OWNER, "")

    @property
    def cluster(self) -> str:
        return self.labels.get(SandboxLabel.CLUSTER, "")

    def is_sandbox_of(self, user: str) -> bool:
        return (
            self.labels.get(SandboxLabel.OWNER) == user
            and self.labels.get(SandboxLabel.TYPE) == SANDBOX_TYPE
        )


@dataclass(frozen=True, slots=True)
class Sandbox:
    """A provisioned sandbox as seen by the create pipeline."""

    name: str
    zone: str
    project: str
    network: str
    subnet: str
    machine_type: str
    service_account: str
    labels: SandboxLabels
    internal_ip: str | None = None
    status: str = ""
    reused: bool = False


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of a command executed through the IAP tunnel."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def message(self) -> str:
        return self.stderr.strip() or self.stdout.strip() or f"exit code {self.returncode}"


# =============================================================================
# Identity
# =============================================================================


@dataclass(frozen=True, slots=True)
class Identity:
    """Per-operator service account."""

    account_id: str
    email: str
    display_name: str = ""

    @property
    def member(self) -> str:
        return f"serviceAccount:{self.email}"


# =============================================================================
# Firewall
# =============================================================================


@dataclass(frozen=True, slots=True)
class FirewallSpec:
    """Ingress rule allowing SSH from the IAP relay range."""

    name: str
    network: str
    description: str = ""
    protocol: str = "tcp"
    ports: tuple[str, ...] = (SSH_PORT,)
    source_ranges: tuple[str, ...] = (IAP_SOURCE_RANGE,)
    direction: str = "INGRESS"
    priority: int = IAP_RULE_PRIORITY


@dataclass(frozen=True, slots=True)
class FirewallRecord:
    name: str
    network: str = ""


# =============================================================================
# Networking
# =============================================================================


@dataclass(frozen=True, slots=True)
class Peering:
    """One direction of a VPC peering, as listed on ``network``."""

    name: str
    network: str
    peer_network: str
    state: str

    @property
    def is_active(self) -> bool:
        return self.state == "ACTIVE"


@dataclass(frozen=True, slots=True)
class CidrBlock:
    cidr: str
    display_name: str = ""


@dataclass(frozen=True, slots=True)
class AuthorizedNetworks:
    """Control-plane allow-list of a GKE cluster."""

    enabled: bool = False
    blocks: tuple[CidrBlock, ...] = ()

    @property
    def cidrs(self) -> tuple[str, ...]:
        return tuple(b.cidr for b in self.blocks)


@dataclass(frozen=True, slots=True)
class ClusterInfo:
    """Subset of a GKE cluster description the pipeline relies on."""

    name: str
    region: str
    network: str
    subnet: str
    authorized_networks: AuthorizedNetworks = AuthorizedNetworks()


@dataclass(frozen=True, slots=True)
class Topology:
    """Where a sandbox lands and how it reaches the cluster."""

    cluster: ClusterInfo
    network: str
    subnet: str
    external: bool = False


# =============================================================================
# Step Results
# =============================================================================


class Outcome(StrEnum):
    CREATED = "created"
    REUSED = "reused"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class StepResult[T]:
    """Result of one idempotent pipeline step."""

    step: str
    outcome: Outcome
    value: T | None = None
    detail: str = ""


class Readiness(StrEnum):
    """Terminal states of the VM lifecycle."""

    READY = "ready"
    DEGRADED = "degraded"


@dataclass(frozen=True, slots=True)
class ProvisionReport:
    """Everything ``create`` did, in order."""

    sandbox: Sandbox
    topology: Topology
    identity: Identity
    readiness: Readiness
    steps: tuple[StepResult, ...] = ()

    def step(self, name: str) -> StepResult | None:
        return next((s for s in self.steps if s.step == name), None)


# =============================================================================
# Selection / Deletion ADTs
# =============================================================================


@dataclass(frozen=True, slots=True)
class SelectionEntry:
    name: str
    zone: str
    cluster: str = ""


@dataclass(frozen=True, slots=True)
class Selected:
    entry: SelectionEntry


@dataclass(frozen=True, slots=True)
class Cancelled:
    pass


@dataclass(frozen=True, slots=True)
class NotFound:
    project: str
    user: str


type Selection = Selected | Cancelled | NotFound


@dataclass(frozen=True, slots=True)
class Deleted:
    name: str
    zone: str
    firewall_removed: bool | None = None


@dataclass(frozen=True, slots=True)
class DeleteCancelled:
    name: str = ""


type DeleteResult = Deleted | DeleteCancelled
