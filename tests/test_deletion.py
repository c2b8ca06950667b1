import pytest

from gke_sandbox.deletion import SandboxDeleter, confirmed
from gke_sandbox.errors import CloudError, SandboxNotFoundError
from gke_sandbox.provisioning.firewall import FirewallProvisioner
from gke_sandbox.selection import SandboxSelector
from gke_sandbox.types import DeleteCancelled, Deleted, FirewallRecord
from tests.fakes import FakeCloudClient, FakeTerminal

pytestmark = [pytest.mark.unit]

RULE = "allow-ssh-ingress-from-iap-cluster-vpc"
ZONE = "us-central1-a"


def make_deleter(client: FakeCloudClient, terminal: FakeTerminal) -> SandboxDeleter:
    return SandboxDeleter(
        client, terminal, SandboxSelector(client, terminal), FirewallProvisioner(client),
    )


class TestConfirmed:
    @pytest.mark.parametrize("answer", ["yes", "YES", "Yes", "yEs", " yes \n"])
    def test_yes_in_any_case(self, answer: str):
        assert confirmed(answer)

    @pytest.mark.parametrize("answer", ["y", "sure", "", "no", "yes please", "yess", None])
    def test_anything_else_is_no(self, answer: str | None):
        assert not confirmed(answer)


class TestDelete:
    def test_deletes_named_vm_after_yes(self, client: FakeCloudClient):
        client.add_instance("sbx-a")
        terminal = FakeTerminal(["yes"])

        result = make_deleter(client, terminal).delete("sbx-a", "proj", ZONE, "jdoe")

        assert result == Deleted(name="sbx-a", zone=ZONE, firewall_removed=None)
        assert "sbx-a" not in client.instances
        assert terminal.headers == ["VM Details"]
        assert terminal.tables[0][1][0][0] == "sbx-a"
        assert "You are about to delete VM: sbx-a" in terminal.warnings

    @pytest.mark.parametrize("answer", ["y", "sure", ""])
    def test_anything_but_yes_cancels(self, client: FakeCloudClient, answer: str):
        client.add_instance("sbx-a")

        result = make_deleter(client, FakeTerminal([answer])).delete("sbx-a", "proj", ZONE, "jdoe")

        assert result == DeleteCancelled(name="sbx-a")
        assert "sbx-a" in client.instances
        assert client.mutations == []

    def test_missing_vm(self, client: FakeCloudClient, terminal: FakeTerminal):
        with pytest.raises(SandboxNotFoundError, match="VM 'ghost' not found in zone"):
            make_deleter(client, terminal).delete("ghost", "proj", ZONE, "jdoe")
        assert terminal.prompts == []

    def test_no_sandboxes_to_choose_from(self, client: FakeCloudClient, terminal: FakeTerminal):
        with pytest.raises(SandboxNotFoundError, match="No sandbox VMs found for user 'jdoe'"):
            make_deleter(client, terminal).delete(None, "proj", ZONE, "jdoe")

    def test_cancelled_menu(self, client: FakeCloudClient):
        client.add_instance("sbx-a", "us-central1-a")
        client.add_instance("sbx-b", "us-central1-b")

        result = make_deleter(client, FakeTerminal(["0"])).delete(None, "proj", ZONE, "jdoe")

        assert result == DeleteCancelled()
        assert client.mutations == []

    def test_delete_failure_stops_before_firewall(self, client: FakeCloudClient):
        client.add_instance("sbx-a")
        client.firewalls[RULE] = FirewallRecord(name=RULE, network="cluster-vpc")
        client.fail["delete_instance"] = CloudError("instance is locked")
        terminal = FakeTerminal(["yes", "yes"])

        with pytest.raises(CloudError, match="instance is locked"):
            make_deleter(client, terminal).delete("sbx-a", "proj", ZONE, "jdoe")

        assert RULE in client.firewalls
        assert len(terminal.prompts) == 1


class TestFirewallCleanup:
    def test_menu_selection_then_keep_rule(self, client: FakeCloudClient, log_messages):
        client.add_instance("sbx-a", "us-central1-a", cluster="prod")
        client.add_instance("sbx-b", "us-central1-b", cluster="stage")
        client.add_instance("sbx-c", "us-central1-c")
        client.firewalls[RULE] = FirewallRecord(name=RULE, network="cluster-vpc")
        terminal = FakeTerminal(["2", "yes", "no"])

        result = make_deleter(client, terminal).delete(None, "proj", ZONE, "jdoe")

        assert result == Deleted(name="sbx-b", zone="us-central1-b", firewall_removed=False)
        assert sorted(client.instances) == ["sbx-a", "sbx-c"]
        assert RULE in client.firewalls
        assert any("may still depend on it" in w for w in terminal.warnings)
        assert any("can still use it" in m for m in log_messages)

    def test_remove_rule_on_yes(self, client: FakeCloudClient):
        client.add_instance("sbx-a")
        client.firewalls[RULE] = FirewallRecord(name=RULE, network="cluster-vpc")

        result = make_deleter(client, FakeTerminal(["yes", "YES"])).delete(
            "sbx-a", "proj", ZONE, "jdoe",
        )

        assert result.firewall_removed is True
        assert client.firewalls == {}
        assert client.mutations == ["delete_instance", "delete_firewall"]

    def test_no_rule_means_no_second_prompt(self, client: FakeCloudClient):
        client.add_instance("sbx-a")
        terminal = FakeTerminal(["yes"])

        make_deleter(client, terminal).delete("sbx-a", "proj", ZONE, "jdoe")

        assert len(terminal.prompts) == 1

    def test_rule_removal_failure_is_a_warning(self, client: FakeCloudClient, log_messages):
        client.add_instance("sbx-a")
        client.firewalls[RULE] = FirewallRecord(name=RULE, network="cluster-vpc")
        client.fail["delete_firewall"] = CloudError("resource in use")

        result = make_deleter(client, FakeTerminal(["yes", "yes"])).delete(
            "sbx-a", "proj", ZONE, "jdoe",
        )

        assert result == Deleted(name="sbx-a", zone=ZONE, firewall_removed=False)
        assert any(m.startswith("WARNING Failed to delete IAP firewall rule") for m in log_messages)
