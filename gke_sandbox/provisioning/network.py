"""Cluster network topology, VPC peering and control-plane allow-list.

A sandbox normally lands on the cluster's own network and subnet. With an
external VPC it lands elsewhere, and two extra things are needed before it can
reach the control plane: peering in both directions between the two networks,
and the sandbox's /32 in the cluster's master authorized networks.
"""

from __future__ import annotations

import ipaddress

from loguru import logger

from gke_sandbox.cloud.protocol import CloudResourceClient
from gke_sandbox.errors import CloudError, ProvisioningError
from gke_sandbox.naming import peering_name
from gke_sandbox.types import (
    AuthorizedNetworks,
    CidrBlock,
    ClusterInfo,
    Outcome,
    Peering,
    StepResult,
    Topology,
)

log = logger.bind(component="network")


def to_host_cidr(address: str) -> str:
    """Express a single IPv4 address as a /32 block."""
    try:
        ip = ipaddress.IPv4Address(address.strip())
    except ipaddress.AddressValueError as e:
        raise ValueError(f"Not an IPv4 address: {address!r}") from e
    return f"{ip}/32"


def merge_cidrs(
    current: AuthorizedNetworks, cidr: str, display_name: str = "",
) -> AuthorizedNetworks | None:
    """Union ``cidr`` into ``current``.

    Returns the full list to submit (the update replaces the whole config, so
    it is never a delta), or None when ``cidr`` is already present.
    """
    if cidr in current.cidrs:
        return None
    return AuthorizedNetworks(
        enabled=True,
        blocks=(*current.blocks, CidrBlock(cidr=cidr, display_name=display_name)),
    )


def has_active_peering(peerings: list[Peering], peer_network: str) -> bool:
    return any(p.is_active and p.peer_network == peer_network for p in peerings)


class NetworkTopologyResolver:
    def __init__(self, client: CloudResourceClient) -> None:
        self._client = client

    # -------------------------------------------------------------------------
    # Topology
    # -------------------------------------------------------------------------

    def describe_cluster(self, cluster: str, region: str, project: str) -> ClusterInfo:
        log.info("Verifying cluster exists...")
        info = self._client.get_cluster(project, region, cluster)
        if info is None or not info.network or not info.subnet:
            raise ProvisioningError(
                f"Cluster '{cluster}' not found in region '{region}' "
                "or failed to get network details"
            )
        log.debug("Cluster network: {net}, subnet: {sub}", net=info.network, sub=info.subnet)
        return info

    def resolve(
        self,
        cluster: str,
        region: str,
        project: str,
        vpc: str | None = None,
        subnet: str | None = None,
    ) -> Topology:
        """Find the network/subnet a sandbox for ``cluster`` should use."""
        info = self.describe_cluster(cluster, region, project)

        if not vpc:
            log.info("Using cluster's VPC for VM")
            return Topology(cluster=info, network=info.network, subnet=info.subnet)

        if not subnet:
            raise ProvisioningError("--subnet is required when --vpc is specified")

        log.info(
            "External VPC mode: VM will be created on VPC {vpc}, subnet {sub}",
            vpc=vpc, sub=subnet,
        )
        if not self._client.network_exists(project, vpc):
            raise ProvisioningError(f"External VPC '{vpc}' not found")
        if not self._client.subnet_exists(project, region, subnet):
            raise ProvisioningError(f"External subnet '{subnet}' not found in region '{region}'")

        return Topology(cluster=info, network=vpc, subnet=subnet, external=True)

    # -------------------------------------------------------------------------
    # Peering
    # -------------------------------------------------------------------------

    def ensure_bidirectional_peering(
        self, network_a: str, network_b: str, project: str,
    ) -> list[StepResult[Peering]]:
        """Make sure ACTIVE peerings exist in both directions.

        Each direction is checked and created on its own; an existing
        direction is never touched.
        """
        log.info(
            "Checking VPC peering between '{a}' and '{b}'...", a=network_a, b=network_b,
        )
        results = [
            self._ensure_peering(network_a, network_b, project),
            self._ensure_peering(network_b, network_a, project),
        ]
        log.info("VPC peering fully configured (bidirectional)")
        return results

    def _ensure_peering(self, network: str, peer: str, project: str) -> StepResult[Peering]:
        try:
            existing = self._client.list_peerings(project, network)
        except CloudError as e:
            raise ProvisioningError(f"Failed to list peerings on '{network}': {e}") from e

        name = peering_name(network, peer)
        if has_active_peering(existing, peer):
            log.info("Peering {a} -> {b} already ACTIVE", a=network, b=peer)
            active = next(p for p in existing if p.is_active and p.peer_network == peer)
            return StepResult(f"peering:{network}", Outcome.REUSED, active)

        log.info("Creating VPC peering from '{a}' to '{b}'...", a=network, b=peer)
        try:
            self._client.create_peering(project, name, network, peer)
        except CloudError as e:
            raise ProvisioningError(
                f"Failed to create VPC peering from '{network}' to '{peer}': {e}"
            ) from e

        return StepResult(
            f"peering:{network}",
            Outcome.CREATED,
            Peering(name=name, network=network, peer_network=peer, state="ACTIVE"),
        )

    # -------------------------------------------------------------------------
    # Master authorized networks
    # -------------------------------------------------------------------------

    def merge_authorized_cidr(
        self,
        cluster: str,
        region: str,
        project: str,
        address: str,
        display_name: str = "",
    ) -> StepResult[AuthorizedNetworks]:
        cidr = to_host_cidr(address)
        log.info("Adding {cidr} to cluster's master_authorized_networks...", cidr=cidr)

        info = self._client.get_cluster(project, region, cluster)
        if info is None:
            raise ProvisioningError(f"Cluster '{cluster}' not found in region '{region}'")

        current = info.authorized_networks
        log.debug(
            "Master authorized networks enabled={enabled} cidrs={cidrs}",
            enabled=current.enabled, cidrs=",".join(current.cidrs),
        )

        merged = merge_cidrs(current, cidr, display_name)
        if merged is None:
            log.info("VM IP already authorized")
            return StepResult("authorized-networks", Outcome.REUSED, current)

        if not current.enabled:
            log.info("Enabling master_authorized_networks and adding {cidr}...", cidr=cidr)

        try:
            self._client.update_authorized_networks(project, region, cluster, merged)
        except CloudError as e:
            raise ProvisioningError(f"Failed to update master_authorized_networks: {e}") from e

        log.info("VM IP added to master_authorized_networks")
        return StepResult("authorized-networks", Outcome.UPDATED, merged)
