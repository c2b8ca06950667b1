"""Guarded sandbox deletion.

A VM is only deleted after an explicit ``yes``. The network's IAP firewall
rule is shared by every sandbox on that network, so it is offered for removal
separately, with its own confirmation, and only after the VM is gone.
"""

from __future__ import annotations

import re

from loguru import logger

from gke_sandbox.cloud.protocol import CloudResourceClient
from gke_sandbox.errors import CloudError, SandboxNotFoundError
from gke_sandbox.naming import firewall_rule_name
from gke_sandbox.provisioning.firewall import FirewallProvisioner
from gke_sandbox.selection import SandboxSelector
from gke_sandbox.terminal import Terminal
from gke_sandbox.types import (
    Cancelled,
    DeleteCancelled,
    Deleted,
    DeleteResult,
    InstanceRecord,
    NotFound,
    Selected,
)

log = logger.bind(component="deletion")

_YES = re.compile(r"^yes$", re.IGNORECASE)


def confirmed(answer: str | None) -> bool:
    return answer is not None and bool(_YES.match(answer.strip()))


def instance_rows(record: InstanceRecord) -> list[list[str]]:
    labels = ",".join(f"{k}={v}" for k, v in sorted(record.labels.items()))
    return [[
        record.name,
        record.zone,
        record.machine_type,
        record.internal_ip or "-",
        record.created_at,
        labels,
    ]]


INSTANCE_COLUMNS = ("NAME", "ZONE", "MACHINE_TYPE", "INTERNAL_IP", "CREATED", "LABELS")


class SandboxDeleter:
    def __init__(
        self,
        client: CloudResourceClient,
        terminal: Terminal,
        selector: SandboxSelector,
        firewall: FirewallProvisioner,
    ) -> None:
        self._client = client
        self._terminal = terminal
        self._selector = selector
        self._firewall = firewall

    def delete(self, name: str | None, project: str, zone: str, user: str) -> DeleteResult:
        match self._selector.resolve(name, zone, project, user):
            case Selected(entry=entry):
                name, zone = entry.name, entry.zone
            case Cancelled():
                return DeleteCancelled()
            case NotFound():
                raise SandboxNotFoundError(
                    f"No sandbox VMs found for user '{user}' in project '{project}'"
                )

        log.info("Checking if VM '{name}' exists...", name=name)
        record = self._client.get_instance(project, zone, name)
        if record is None:
            raise SandboxNotFoundError(
                f"VM '{name}' not found in zone '{zone}' of project '{project}'"
            )

        self._terminal.header("VM Details")
        self._terminal.table(INSTANCE_COLUMNS, instance_rows(record))
        self._terminal.line()
        self._terminal.warn(f"You are about to delete VM: {name}")
        self._terminal.warn(f"Project: {project}")
        self._terminal.warn(f"Zone: {zone}")
        self._terminal.line()

        answer = self._terminal.ask(
            "Are you sure you want to delete this VM? ([green]yes[/green]/[red]no[/red]):"
        )
        if not confirmed(answer):
            log.info("Deletion cancelled by user.")
            return DeleteCancelled(name=name)

        log.info("Deleting sandbox VM: {name} (this takes ~90 seconds)...", name=name)
        self._client.delete_instance(project, zone, name)
        log.info("VM deleted successfully!")

        removed = self._offer_firewall_cleanup(project, record.network) if record.network else None
        return Deleted(name=name, zone=zone, firewall_removed=removed)

    def _offer_firewall_cleanup(self, project: str, network: str) -> bool | None:
        """Ask about the shared IAP rule. None when there is no rule to remove."""
        if self._firewall.find_ingress_rule(project, network) is None:
            return None

        rule = firewall_rule_name(network)
        self._terminal.line()
        self._terminal.warn(f"Found IAP firewall rule: {rule}")
        self._terminal.warn(f"This rule allows SSH access via IAP for network: {network}")
        self._terminal.warn("Other sandboxes on this network may still depend on it.")
        self._terminal.line()

        answer = self._terminal.ask(
            "Do you want to delete this IAP firewall rule? ([green]yes[/green]/[red]no[/red]):"
        )
        if not confirmed(answer):
            log.info(
                "IAP firewall rule kept. Other VMs in network '{network}' can still use it.",
                network=network,
            )
            return False

        try:
            self._firewall.remove_ingress_rule(project, network)
        except CloudError as e:
            log.warning("Failed to delete IAP firewall rule {rule}: {err}", rule=rule, err=e)
            log.warning("You may need to delete it manually or check permissions")
            return False

        log.info("IAP firewall rule deleted successfully!")
        return True
