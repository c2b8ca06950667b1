import pytest

from gke_sandbox.errors import CloudError, ProvisioningError
from gke_sandbox.provisioning.network import (
    NetworkTopologyResolver,
    has_active_peering,
    merge_cidrs,
    to_host_cidr,
)
from gke_sandbox.types import AuthorizedNetworks, CidrBlock, Outcome, Peering
from tests.fakes import FakeCloudClient

pytestmark = [pytest.mark.unit]

OFFICE = CidrBlock(cidr="203.0.113.0/24", display_name="office")


class TestToHostCidr:
    def test_single_address(self):
        assert to_host_cidr("10.10.0.5") == "10.10.0.5/32"

    def test_strips_whitespace(self):
        assert to_host_cidr(" 10.10.0.5\n") == "10.10.0.5/32"

    @pytest.mark.parametrize("bad", ["", "10.0.0", "10.0.0.0/24", "fe80::1", "host"])
    def test_rejects_non_ipv4(self, bad: str):
        with pytest.raises(ValueError):
            to_host_cidr(bad)


class TestMergeCidrs:
    def test_adds_to_empty_and_enables(self):
        merged = merge_cidrs(AuthorizedNetworks(), "10.10.0.5/32", "sbx")
        assert merged == AuthorizedNetworks(
            enabled=True, blocks=(CidrBlock(cidr="10.10.0.5/32", display_name="sbx"),),
        )

    def test_keeps_existing_blocks_and_names(self):
        current = AuthorizedNetworks(enabled=True, blocks=(OFFICE,))
        merged = merge_cidrs(current, "10.10.0.5/32")
        assert merged is not None
        assert merged.blocks[0] == OFFICE
        assert merged.cidrs == ("203.0.113.0/24", "10.10.0.5/32")

    def test_present_is_a_no_op(self):
        current = AuthorizedNetworks(enabled=True, blocks=(OFFICE,))
        assert merge_cidrs(current, "203.0.113.0/24") is None

    @pytest.mark.parametrize("existing", [(), ("203.0.113.0/24",), ("10.10.0.5/32", "192.0.2.1/32")])
    def test_result_is_union(self, existing: tuple[str, ...]):
        current = AuthorizedNetworks(enabled=bool(existing), blocks=tuple(CidrBlock(c) for c in existing))
        merged = merge_cidrs(current, "10.10.0.5/32") or current
        assert set(merged.cidrs) == set(existing) | {"10.10.0.5/32"}
        assert len(merged.cidrs) == len(set(merged.cidrs))


class TestHasActivePeering:
    def test_active_to_peer(self):
        peerings = [Peering("p", "a", "b", "ACTIVE")]
        assert has_active_peering(peerings, "b")

    def test_inactive_does_not_count(self):
        assert not has_active_peering([Peering("p", "a", "b", "INACTIVE")], "b")

    def test_other_peer_does_not_count(self):
        assert not has_active_peering([Peering("p", "a", "c", "ACTIVE")], "b")


class TestResolve:
    def test_cluster_network(self, client: FakeCloudClient):
        topology = NetworkTopologyResolver(client).resolve("prod", "us-central1", "proj")
        assert (topology.network, topology.subnet, topology.external) == (
            "cluster-vpc", "cluster-subnet", False,
        )

    def test_missing_cluster_is_fatal(self, client: FakeCloudClient):
        with pytest.raises(ProvisioningError, match="Cluster 'nope' not found"):
            NetworkTopologyResolver(client).resolve("nope", "us-central1", "proj")

    def test_external_vpc(self, client: FakeCloudClient):
        client.networks.add("tools-vpc")
        client.subnets.add(("us-central1", "tools-subnet"))
        topology = NetworkTopologyResolver(client).resolve(
            "prod", "us-central1", "proj", vpc="tools-vpc", subnet="tools-subnet",
        )
        assert topology.external
        assert topology.network == "tools-vpc"
        assert topology.cluster.network == "cluster-vpc"

    def test_external_vpc_missing(self, client: FakeCloudClient):
        with pytest.raises(ProvisioningError, match="External VPC 'tools-vpc' not found"):
            NetworkTopologyResolver(client).resolve(
                "prod", "us-central1", "proj", vpc="tools-vpc", subnet="tools-subnet",
            )

    def test_external_subnet_missing(self, client: FakeCloudClient):
        client.networks.add("tools-vpc")
        with pytest.raises(ProvisioningError, match="subnet 'tools-subnet' not found"):
            NetworkTopologyResolver(client).resolve(
                "prod", "us-central1", "proj", vpc="tools-vpc", subnet="tools-subnet",
            )

    def test_vpc_without_subnet(self, client: FakeCloudClient):
        with pytest.raises(ProvisioningError, match="--subnet is required"):
            NetworkTopologyResolver(client).resolve("prod", "us-central1", "proj", vpc="tools-vpc")


class TestBidirectionalPeering:
    def test_creates_both_directions(self, client: FakeCloudClient):
        results = NetworkTopologyResolver(client).ensure_bidirectional_peering(
            "tools-vpc", "cluster-vpc", "proj",
        )
        assert [r.outcome for r in results] == [Outcome.CREATED, Outcome.CREATED]
        assert [p.name for p in client.peerings["tools-vpc"]] == ["peer-tools-vpc-to-cluster-vpc"]
        assert [p.name for p in client.peerings["cluster-vpc"]] == ["peer-cluster-vpc-to-tools-vpc"]

    def test_creates_only_missing_direction(self, client: FakeCloudClient):
        client.peerings["tools-vpc"] = [
            Peering("existing", "tools-vpc", "cluster-vpc", "ACTIVE"),
        ]
        results = NetworkTopologyResolver(client).ensure_bidirectional_peering(
            "tools-vpc", "cluster-vpc", "proj",
        )
        assert [r.outcome for r in results] == [Outcome.REUSED, Outcome.CREATED]
        assert client.mutations == ["create_peering"]
        assert results[0].value is not None and results[0].value.name == "existing"

    def test_inactive_direction_is_recreated(self, client: FakeCloudClient):
        client.peerings["tools-vpc"] = [Peering("old", "tools-vpc", "cluster-vpc", "INACTIVE")]
        client.peerings["cluster-vpc"] = [Peering("back", "cluster-vpc", "tools-vpc", "ACTIVE")]
        results = NetworkTopologyResolver(client).ensure_bidirectional_peering(
            "tools-vpc", "cluster-vpc", "proj",
        )
        assert [r.outcome for r in results] == [Outcome.CREATED, Outcome.REUSED]

    def test_idempotent(self, client: FakeCloudClient):
        resolver = NetworkTopologyResolver(client)
        resolver.ensure_bidirectional_peering("tools-vpc", "cluster-vpc", "proj")
        before = list(client.mutations)
        results = resolver.ensure_bidirectional_peering("tools-vpc", "cluster-vpc", "proj")
        assert all(r.outcome is Outcome.REUSED for r in results)
        assert client.mutations == before

    def test_create_failure_is_fatal(self, client: FakeCloudClient):
        client.fail["create_peering"] = CloudError("peering quota exceeded")
        with pytest.raises(ProvisioningError, match="peering quota exceeded"):
            NetworkTopologyResolver(client).ensure_bidirectional_peering(
                "tools-vpc", "cluster-vpc", "proj",
            )


class TestMergeAuthorizedCidr:
    def test_enables_and_adds(self, client: FakeCloudClient):
        result = NetworkTopologyResolver(client).merge_authorized_cidr(
            "prod", "us-central1", "proj", "10.10.0.5", display_name="sbx-jdoe",
        )
        assert result.outcome is Outcome.UPDATED
        networks = client.clusters[("us-central1", "prod")].authorized_networks
        assert networks.enabled
        assert networks.blocks == (CidrBlock("10.10.0.5/32", "sbx-jdoe"),)

    def test_submits_full_union(self, client: FakeCloudClient):
        client.add_cluster(authorized=AuthorizedNetworks(enabled=True, blocks=(OFFICE,)))
        NetworkTopologyResolver(client).merge_authorized_cidr(
            "prod", "us-central1", "proj", "10.10.0.5",
        )
        networks = client.clusters[("us-central1", "prod")].authorized_networks
        assert networks.cidrs == ("203.0.113.0/24", "10.10.0.5/32")
        assert networks.blocks[0].display_name == "office"

    def test_already_present(self, client: FakeCloudClient):
        client.add_cluster(
            authorized=AuthorizedNetworks(enabled=True, blocks=(CidrBlock("10.10.0.5/32"),)),
        )
        result = NetworkTopologyResolver(client).merge_authorized_cidr(
            "prod", "us-central1", "proj", "10.10.0.5",
        )
        assert result.outcome is Outcome.REUSED
        assert client.mutations == []

    def test_update_failure_is_fatal(self, client: FakeCloudClient):
        client.fail["update_authorized_networks"] = CloudError("cluster is busy")
        with pytest.raises(ProvisioningError, match="cluster is busy"):
            NetworkTopologyResolver(client).merge_authorized_cidr(
                "prod", "us-central1", "proj", "10.10.0.5",
            )
