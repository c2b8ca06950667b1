"""Shared IAP SSH ingress rule, one per network."""

from __future__ import annotations

from loguru import logger

from gke_sandbox.cloud.protocol import CloudResourceClient
from gke_sandbox.errors import CloudError, ProvisioningError
from gke_sandbox.naming import firewall_rule_name
from gke_sandbox.types import FirewallRecord, FirewallSpec, Outcome, StepResult

log = logger.bind(component="firewall")


class FirewallProvisioner:
    """Creates, finds and removes ``allow-ssh-ingress-from-iap-<network>``.

    The rule is shared by every sandbox on the network, so nothing here ties
    its lifetime to a single VM.
    """

    def __init__(self, client: CloudResourceClient) -> None:
        self._client = client

    def find_ingress_rule(self, project: str, network: str) -> FirewallRecord | None:
        return self._client.get_firewall(project, firewall_rule_name(network))

    def ensure_ingress_rule(self, project: str, network: str) -> StepResult[FirewallRecord]:
        name = firewall_rule_name(network)

        if (existing := self._client.get_firewall(project, name)) is not None:
            log.debug("IAP firewall rule {name} already exists", name=name)
            return StepResult("firewall", Outcome.REUSED, existing)

        log.info("Creating IAP firewall rule for network '{network}'...", network=network)
        spec = FirewallSpec(
            name=name,
            network=network,
            description=f"Allow SSH via IAP for sandbox VMs in {network}",
        )
        try:
            self._client.create_firewall(project, spec)
        except CloudError as e:
            raise ProvisioningError(f"Failed to create IAP firewall rule {name}: {e}") from e

        return StepResult("firewall", Outcome.CREATED, FirewallRecord(name=name, network=network))

    def remove_ingress_rule(self, project: str, network: str) -> None:
        name = firewall_rule_name(network)
        log.info("Deleting IAP firewall rule: {name}...", name=name)
        self._client.delete_firewall(project, name)
