"""Capability the provisioning core needs from the cloud.

Implementations translate provider objects into the records from
``gke_sandbox.types`` and raise ``CloudError`` with the provider's message on
any failed call. Lookups return ``None`` when the resource does not exist.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol

from gke_sandbox.types import (
    AuthorizedNetworks,
    ClusterInfo,
    CommandResult,
    FirewallRecord,
    FirewallSpec,
    Identity,
    InstanceRecord,
    InstanceSpec,
    Peering,
)


class CloudResourceClient(Protocol):
    # Prerequisites
    def active_account(self) -> str | None: ...

    def project_exists(self, project: str) -> bool: ...

    def tunnel_available(self) -> bool: ...

    # Instances
    def get_instance(self, project: str, zone: str, name: str) -> InstanceRecord | None: ...

    def list_instances(
        self, project: str, labels: Mapping[str, str],
    ) -> list[InstanceRecord]: ...

    def create_instance(self, project: str, zone: str, spec: InstanceSpec) -> None: ...

    def delete_instance(self, project: str, zone: str, name: str) -> None: ...

    # Firewall rules
    def get_firewall(self, project: str, name: str) -> FirewallRecord | None: ...

    def create_firewall(self, project: str, spec: FirewallSpec) -> None: ...

    def delete_firewall(self, project: str, name: str) -> None: ...

    # Service accounts
    def get_service_account(self, project: str, email: str) -> Identity | None: ...

    def create_service_account(
        self, project: str, account_id: str, display_name: str, description: str,
    ) -> Identity: ...

    def add_project_role(self, project: str, member: str, role: str) -> None: ...

    # Networks
    def network_exists(self, project: str, network: str) -> bool: ...

    def subnet_exists(self, project: str, region: str, subnet: str) -> bool: ...

    def list_peerings(self, project: str, network: str) -> list[Peering]: ...

    def create_peering(
        self, project: str, name: str, network: str, peer_network: str,
    ) -> None: ...

    # GKE
    def get_cluster(self, project: str, region: str, name: str) -> ClusterInfo | None: ...

    def update_authorized_networks(
        self, project: str, region: str, name: str, networks: AuthorizedNetworks,
    ) -> None: ...

    # IAP tunnel
    def run_command(
        self, project: str, zone: str, instance: str, command: str,
    ) -> CommandResult: ...

    def copy_file(
        self, project: str, zone: str, instance: str, local_path: Path, remote_path: str,
    ) -> CommandResult: ...

    def ssh_command(self, project: str, zone: str, instance: str) -> Sequence[str]: ...
