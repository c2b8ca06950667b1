"""Google Cloud implementation of ``CloudResourceClient``.

Uses the sync Google Cloud client libraries (Compute Engine, GKE, IAM,
Resource Manager) for every control-plane call and shells out to ``gcloud``
for the IAP tunnel. Provider objects are converted to typed records at this
boundary; provider errors become ``CloudError`` carrying the provider text.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

from google.api_core import exceptions as gcp_exceptions
from loguru import logger

from gke_sandbox.cloud import tunnel
from gke_sandbox.errors import CloudError
from gke_sandbox.retry import PollSuccess, poll
from gke_sandbox.types import (
    AuthorizedNetworks,
    CidrBlock,
    ClusterInfo,
    CommandResult,
    FirewallRecord,
    FirewallSpec,
    Identity,
    InstanceRecord,
    InstanceSpec,
    Peering,
)

log = logger.bind(component="gcp")

OPERATION_TIMEOUT = 600
CLUSTER_OPERATION_INTERVAL = 5.0
CLUSTER_OPERATION_ATTEMPTS = 180


class GCPCloudClient:
    """Stateless wrapper around the Google Cloud sync clients.

    Clients are created on first use so commands that never touch a given API
    (``show`` never needs IAM) do not pay for its initialization.
    """

    def __init__(self, operation_timeout: int = OPERATION_TIMEOUT) -> None:
        self._timeout = operation_timeout
        self._clients: dict[str, Any] = {}

    def _client(self, key: str, factory: Callable[[], Any]) -> Any:
        if key not in self._clients:
            self._clients[key] = factory()
        return self._clients[key]

    @property
    def _instances(self) -> Any:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]
        return self._client("instances", compute_v1.InstancesClient)

    @property
    def _firewalls(self) -> Any:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]
        return self._client("firewalls", compute_v1.FirewallsClient)

    @property
    def _networks(self) -> Any:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]
        return self._client("networks", compute_v1.NetworksClient)

    @property
    def _subnetworks(self) -> Any:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]
        return self._client("subnetworks", compute_v1.SubnetworksClient)

    @property
    def _clusters(self) -> Any:
        from google.cloud import container_v1  # type: ignore[reportMissingImports]
        return self._client("clusters", container_v1.ClusterManagerClient)

    @property
    def _iam(self) -> Any:
        from google.cloud import iam_admin_v1  # type: ignore[reportMissingImports]
        return self._client("iam", iam_admin_v1.IAMClient)

    @property
    def _projects(self) -> Any:
        from google.cloud import resourcemanager_v3  # type: ignore[reportMissingImports]
        return self._client("projects", resourcemanager_v3.ProjectsClient)

    def _wait(self, operation: object, what: str) -> None:
        result = getattr(operation, "result", None)
        if not callable(result):
            return
        try:
            result(timeout=self._timeout)
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation=what) from e
        except TimeoutError as e:
            raise CloudError(f"timed out after {self._timeout}s", operation=what) from e

    # -------------------------------------------------------------------------
    # Prerequisites
    # -------------------------------------------------------------------------

    def active_account(self) -> str | None:
        import google.auth  # type: ignore[reportMissingImports]
        from google.auth import exceptions as auth_exceptions  # type: ignore[reportMissingImports]
        from google.auth.transport.requests import Request  # type: ignore[reportMissingImports]

        try:
            credentials, _ = google.auth.default()
            credentials.refresh(Request())
        except auth_exceptions.GoogleAuthError as e:
            log.debug("No usable application default credentials: {err}", err=e)
            return None

        return (
            getattr(credentials, "service_account_email", None)
            or getattr(credentials, "account", None)
            or "application-default"
        )

    def project_exists(self, project: str) -> bool:
        try:
            self._projects.get_project(name=f"projects/{project}")
        except (gcp_exceptions.NotFound, gcp_exceptions.PermissionDenied):
            return False
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="describe project") from e
        return True

    def tunnel_available(self) -> bool:
        return tunnel.gcloud_available()

    # -------------------------------------------------------------------------
    # Instances
    # -------------------------------------------------------------------------

    def get_instance(self, project: str, zone: str, name: str) -> InstanceRecord | None:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        try:
            inst = self._instances.get(
                request=compute_v1.GetInstanceRequest(project=project, zone=zone, instance=name),
            )
        except gcp_exceptions.NotFound:
            return None
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="describe instance") from e
        return instance_to_record(inst)

    def list_instances(self, project: str, labels: Mapping[str, str]) -> list[InstanceRecord]:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        request = compute_v1.AggregatedListInstancesRequest(
            project=project,
            filter=label_filter(labels),
        )
        try:
            pager = self._instances.aggregated_list(request=request)
            records = [
                instance_to_record(inst)
                for _, scoped in pager
                for inst in getattr(scoped, "instances", None) or ()
            ]
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="list instances") from e
        return sorted(records, key=lambda r: (r.zone, r.name))

    def create_instance(self, project: str, zone: str, spec: InstanceSpec) -> None:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        disk = compute_v1.AttachedDisk(
            auto_delete=True,
            boot=True,
            initialize_params=compute_v1.AttachedDiskInitializeParams(
                source_image=(
                    f"projects/{spec.image_project}/global/images/family/{spec.image_family}"
                ),
            ),
        )

        # No access_configs: the sandbox gets no external address.
        network_interface = compute_v1.NetworkInterface(
            subnetwork=f"regions/{spec.region}/subnetworks/{spec.subnet}",
        )

        instance = compute_v1.Instance(
            name=spec.name,
            machine_type=f"zones/{zone}/machineTypes/{spec.machine_type}",
            disks=[disk],
            network_interfaces=[network_interface],
            service_accounts=[
                compute_v1.ServiceAccount(email=spec.service_account, scopes=list(spec.scopes)),
            ],
            labels=spec.labels.to_dict(),
            metadata=compute_v1.Metadata(
                items=[compute_v1.Items(key=k, value=v) for k, v in spec.metadata.items()],
            ),
        )

        try:
            operation = self._instances.insert(
                request=compute_v1.InsertInstanceRequest(
                    project=project, zone=zone, instance_resource=instance,
                ),
            )
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="create instance") from e
        self._wait(operation, "create instance")

    def delete_instance(self, project: str, zone: str, name: str) -> None:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        try:
            operation = self._instances.delete(
                request=compute_v1.DeleteInstanceRequest(project=project, zone=zone, instance=name),
            )
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="delete instance") from e
        self._wait(operation, "delete instance")

    # -------------------------------------------------------------------------
    # Firewall rules
    # -------------------------------------------------------------------------

    def get_firewall(self, project: str, name: str) -> FirewallRecord | None:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        try:
            rule = self._firewalls.get(
                request=compute_v1.GetFirewallRequest(project=project, firewall=name),
            )
        except gcp_exceptions.NotFound:
            return None
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="describe firewall rule") from e
        return FirewallRecord(name=rule.name, network=basename(getattr(rule, "network", "")))

    def create_firewall(self, project: str, spec: FirewallSpec) -> None:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        firewall = compute_v1.Firewall(
            name=spec.name,
            network=f"global/networks/{spec.network}",
            direction=spec.direction,
            priority=spec.priority,
            source_ranges=list(spec.source_ranges),
            allowed=[compute_v1.Allowed(I_p_protocol=spec.protocol, ports=list(spec.ports))],
            description=spec.description,
        )
        try:
            operation = self._firewalls.insert(
                request=compute_v1.InsertFirewallRequest(
                    project=project, firewall_resource=firewall,
                ),
            )
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="create firewall rule") from e
        self._wait(operation, "create firewall rule")

    def delete_firewall(self, project: str, name: str) -> None:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        try:
            operation = self._firewalls.delete(
                request=compute_v1.DeleteFirewallRequest(project=project, firewall=name),
            )
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="delete firewall rule") from e
        self._wait(operation, "delete firewall rule")

    # -------------------------------------------------------------------------
    # Service accounts
    # -------------------------------------------------------------------------

    def get_service_account(self, project: str, email: str) -> Identity | None:
        from google.cloud import iam_admin_v1  # type: ignore[reportMissingImports]

        try:
            sa = self._iam.get_service_account(
                request=iam_admin_v1.GetServiceAccountRequest(
                    name=f"projects/{project}/serviceAccounts/{email}",
                ),
            )
        except gcp_exceptions.NotFound:
            return None
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="describe service account") from e
        return Identity(
            account_id=sa.email.split("@", 1)[0],
            email=sa.email,
            display_name=sa.display_name,
        )

    def create_service_account(
        self, project: str, account_id: str, display_name: str, description: str,
    ) -> Identity:
        from google.cloud import iam_admin_v1  # type: ignore[reportMissingImports]

        request = iam_admin_v1.CreateServiceAccountRequest(
            name=f"projects/{project}",
            account_id=account_id,
            service_account=iam_admin_v1.ServiceAccount(
                display_name=display_name,
                description=description,
            ),
        )
        try:
            sa = self._iam.create_service_account(request=request)
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="create service account") from e
        return Identity(account_id=account_id, email=sa.email, display_name=sa.display_name)

    def add_project_role(self, project: str, member: str, role: str) -> None:
        resource = f"projects/{project}"
        try:
            policy = self._projects.get_iam_policy(request={"resource": resource})
            if not add_binding(policy, role, member):
                log.debug("{member} already bound to {role}", member=member, role=role)
                return
            self._projects.set_iam_policy(request={"resource": resource, "policy": policy})
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation=f"grant {role}") from e

    # -------------------------------------------------------------------------
    # Networks
    # -------------------------------------------------------------------------

    def network_exists(self, project: str, network: str) -> bool:
        return self._get_network(project, network) is not None

    def subnet_exists(self, project: str, region: str, subnet: str) -> bool:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        try:
            self._subnetworks.get(
                request=compute_v1.GetSubnetworkRequest(
                    project=project, region=region, subnetwork=subnet,
                ),
            )
        except gcp_exceptions.NotFound:
            return False
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="describe subnet") from e
        return True

    def _get_network(self, project: str, network: str) -> Any | None:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        try:
            return self._networks.get(
                request=compute_v1.GetNetworkRequest(project=project, network=network),
            )
        except gcp_exceptions.NotFound:
            return None
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="describe network") from e

    def list_peerings(self, project: str, network: str) -> list[Peering]:
        net = self._get_network(project, network)
        if net is None:
            raise CloudError(f"network '{network}' not found", operation="list peerings")
        return [
            Peering(
                name=p.name,
                network=network,
                peer_network=basename(p.network),
                state=str(p.state),
            )
            for p in getattr(net, "peerings", None) or ()
        ]

    def create_peering(self, project: str, name: str, network: str, peer_network: str) -> None:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        request = compute_v1.AddPeeringNetworkRequest(
            project=project,
            network=network,
            networks_add_peering_request_resource=compute_v1.NetworksAddPeeringRequest(
                network_peering=compute_v1.NetworkPeering(
                    name=name,
                    network=f"projects/{project}/global/networks/{peer_network}",
                    exchange_subnet_routes=True,
                ),
            ),
        )
        try:
            operation = self._networks.add_peering(request=request)
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="create peering") from e
        self._wait(operation, "create peering")

    # -------------------------------------------------------------------------
    # GKE
    # -------------------------------------------------------------------------

    def get_cluster(self, project: str, region: str, name: str) -> ClusterInfo | None:
        try:
            cluster = self._clusters.get_cluster(
                name=f"projects/{project}/locations/{region}/clusters/{name}",
            )
        except gcp_exceptions.NotFound:
            return None
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="describe cluster") from e
        return cluster_to_info(cluster, region)

    def update_authorized_networks(
        self, project: str, region: str, name: str, networks: AuthorizedNetworks,
    ) -> None:
        from google.cloud import container_v1  # type: ignore[reportMissingImports]

        config = container_v1.MasterAuthorizedNetworksConfig(
            enabled=networks.enabled,
            cidr_blocks=[
                container_v1.MasterAuthorizedNetworksConfig.CidrBlock(
                    display_name=block.display_name,
                    cidr_block=block.cidr,
                )
                for block in networks.blocks
            ],
        )
        cluster_name = f"projects/{project}/locations/{region}/clusters/{name}"
        try:
            operation = self._clusters.update_cluster(
                request=container_v1.UpdateClusterRequest(
                    name=cluster_name,
                    update=container_v1.ClusterUpdate(
                        desired_master_authorized_networks_config=config,
                    ),
                ),
            )
        except gcp_exceptions.GoogleAPIError as e:
            raise CloudError(_error_text(e), operation="update cluster") from e
        self._wait_cluster_operation(project, region, operation.name)

    def _wait_cluster_operation(self, project: str, region: str, op_name: str) -> None:
        from google.cloud import container_v1  # type: ignore[reportMissingImports]

        name = f"projects/{project}/locations/{region}/operations/{op_name}"
        done = container_v1.Operation.Status.DONE

        def _probe() -> Any:
            try:
                return self._clusters.get_operation(name=name)
            except gcp_exceptions.GoogleAPIError as e:
                raise CloudError(_error_text(e), operation="update cluster") from e

        match poll(
            _probe,
            interval=CLUSTER_OPERATION_INTERVAL,
            max_attempts=CLUSTER_OPERATION_ATTEMPTS,
            until=lambda op: op.status == done,
            description="cluster update",
        ):
            case PollSuccess(value=op):
                error = getattr(op, "error", None)
                if error is not None and getattr(error, "message", ""):
                    raise CloudError(error.message, operation="update cluster")
            case _:
                raise CloudError("operation did not finish", operation="update cluster")

    # -------------------------------------------------------------------------
    # IAP tunnel
    # -------------------------------------------------------------------------

    def run_command(self, project: str, zone: str, instance: str, command: str) -> CommandResult:
        return tunnel.ssh_run(instance, zone, project, command)

    def copy_file(
        self, project: str, zone: str, instance: str, local_path: Path, remote_path: str,
    ) -> CommandResult:
        return tunnel.scp_upload(local_path, instance, remote_path, zone, project)

    def ssh_command(self, project: str, zone: str, instance: str) -> Sequence[str]:
        return tunnel.ssh_command(instance, zone, project)


# =============================================================================
# Pure helper functions (no GCP API calls)
# =============================================================================


def basename(url: str) -> str:
    """Last path segment of a resource URL ('.../networks/default' -> 'default')."""
    return url.rstrip("/").rsplit("/", 1)[-1] if url else ""


def label_filter(labels: Mapping[str, str]) -> str:
    """Compute API filter matching every label exactly."""
    return " AND ".join(f'(labels.{k} = "{v}")' for k, v in sorted(labels.items()))


def instance_to_record(inst: object) -> InstanceRecord:
    """Build an ``InstanceRecord`` from a compute_v1 Instance."""
    interfaces = list(getattr(inst, "network_interfaces", None) or ())
    primary = interfaces[0] if interfaces else None
    return InstanceRecord(
        name=getattr(inst, "name", ""),
        zone=basename(getattr(inst, "zone", "")),
        status=str(getattr(inst, "status", "")),
        labels=dict(getattr(inst, "labels", None) or {}),
        internal_ip=(getattr(primary, "network_i_p", None) or None) if primary else None,
        network=basename(getattr(primary, "network", "")) if primary else "",
        subnet=basename(getattr(primary, "subnetwork", "")) if primary else "",
        machine_type=basename(getattr(inst, "machine_type", "")),
        created_at=getattr(inst, "creation_timestamp", ""),
    )


def cluster_to_info(cluster: object, region: str) -> ClusterInfo:
    """Build a ``ClusterInfo`` from a container_v1 Cluster."""
    man = getattr(cluster, "master_authorized_networks_config", None)
    blocks = tuple(
        CidrBlock(cidr=b.cidr_block, display_name=getattr(b, "display_name", ""))
        for b in (getattr(man, "cidr_blocks", None) or ())
    )
    return ClusterInfo(
        name=getattr(cluster, "name", ""),
        region=region,
        network=basename(getattr(cluster, "network", "")),
        subnet=basename(getattr(cluster, "subnetwork", "")),
        authorized_networks=AuthorizedNetworks(
            enabled=bool(getattr(man, "enabled", False)),
            blocks=blocks,
        ),
    )


def add_binding(policy: Any, role: str, member: str) -> bool:
    """Add ``member`` to the unconditional binding for ``role``.

    Returns False when the member was already bound.
    """
    for binding in policy.bindings:
        if binding.role == role and not binding.HasField("condition"):
            if member in binding.members:
                return False
            binding.members.append(member)
            return True
    policy.bindings.add(role=role, members=[member])
    return True


def _error_text(e: Exception) -> str:
    message = getattr(e, "message", None)
    return str(message) if message else str(e)
