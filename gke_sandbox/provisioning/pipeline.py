"""The ``create`` orchestrator.

Runs the provisioning steps in dependency order and collects a
``StepResult`` from each. Every step is idempotent, so a failed run can be
repeated as-is: whatever the previous run already made is found and reused.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from loguru import logger

from gke_sandbox.cloud.protocol import CloudResourceClient
from gke_sandbox.config import SandboxConfig
from gke_sandbox.constants import STARTUP_SCRIPT_KEY
from gke_sandbox.errors import ConfigError, ProvisioningError
from gke_sandbox.naming import creation_date, default_vm_name, sanitize_label
from gke_sandbox.provisioning.configure import PostProvisionConfigurator
from gke_sandbox.provisioning.firewall import FirewallProvisioner
from gke_sandbox.provisioning.identity import IdentityProvisioner
from gke_sandbox.provisioning.lifecycle import PollSettings, VMLifecycleManager, VMRequest
from gke_sandbox.provisioning.network import NetworkTopologyResolver
from gke_sandbox.provisioning.prerequisites import PrerequisiteChecker
from gke_sandbox.types import ProvisionReport, SandboxLabels, StepResult

log = logger.bind(component="pipeline")

DEFAULT_STARTUP_SCRIPT = Path(__file__).parent.parent / "resources" / "vm-startup.sh"


@dataclass(frozen=True, slots=True)
class CreateRequest:
    cluster: str
    user: str
    name: str | None = None
    vpc: str | None = None
    subnet: str | None = None


def load_startup_script(path: str | None = None) -> str:
    script = Path(path).expanduser() if path else DEFAULT_STARTUP_SCRIPT
    try:
        return script.read_text()
    except OSError as e:
        raise ConfigError(f"Cannot read startup script {script}: {e}") from e


def build_metadata(config: SandboxConfig) -> MappingProxyType[str, str]:
    """Instance metadata: configured extras plus the startup script."""
    return MappingProxyType({
        **config.metadata,
        STARTUP_SCRIPT_KEY: load_startup_script(config.startup_script),
    })


class CreatePipeline:
    def __init__(
        self,
        client: CloudResourceClient,
        config: SandboxConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._config = config
        self.prerequisites = PrerequisiteChecker(client)
        self.network = NetworkTopologyResolver(client)
        self.identity = IdentityProvisioner(
            client,
            config.required_roles,
            settle_seconds=config.iam_settle_seconds,
            sleep=sleep,
        )
        self.firewall = FirewallProvisioner(client)
        self.lifecycle = VMLifecycleManager(
            client,
            PollSettings(
                running_interval=config.running_poll_interval,
                running_timeout=config.running_poll_timeout,
                readiness_interval=config.readiness_poll_interval,
                readiness_attempts=config.readiness_poll_attempts,
            ),
            sleep=sleep,
        )
        self.configurator = PostProvisionConfigurator(
            client,
            ssh_key=config.resolved_ssh_key(),
            git_user_name=config.git_user_name,
            git_user_email=config.git_user_email,
        )

    def run(self, request: CreateRequest) -> ProvisionReport:
        config = self._config
        project = config.require_project()
        region = config.region
        name = request.name or default_vm_name(request.user, request.cluster)
        steps: list[StepResult] = []

        log.info("Checking prerequisites...")
        self.prerequisites.check(project)

        topology = self.network.resolve(
            request.cluster, region, project, vpc=request.vpc, subnet=request.subnet,
        )

        log.info("Setting up service account...")
        identity_step = self.identity.ensure_identity(project, request.user)
        steps.append(identity_step)
        identity = identity_step.value
        assert identity is not None

        log.info("Setting up IAP firewall rule...")
        steps.append(self.firewall.ensure_ingress_rule(project, topology.network))

        vm_request = VMRequest(
            name=name,
            project=project,
            zone=config.zone,
            region=region,
            network=topology.network,
            subnet=topology.subnet,
            machine_type=config.vm_size,
            image_family=config.image_family,
            image_project=config.image_project,
            identity=identity,
            labels=SandboxLabels(
                owner=sanitize_label(request.user),
                cluster=sanitize_label(request.cluster),
                created=creation_date(),
            ),
            metadata=build_metadata(config),
        )
        log.info("Creating VM {name}...", name=name)
        instance_step = self.lifecycle.ensure_running(vm_request)
        steps.append(instance_step)
        sandbox = instance_step.value
        assert sandbox is not None

        if sandbox.internal_ip is None:
            sandbox = self.lifecycle.refresh(sandbox)

        if topology.external:
            if not sandbox.internal_ip:
                raise ProvisioningError(f"Failed to get internal IP for VM '{name}'")
            log.info("Configuring external VPC access...")
            steps.extend(self.network.ensure_bidirectional_peering(
                topology.network, topology.cluster.network, project,
            ))
            steps.append(self.network.merge_authorized_cidr(
                request.cluster, region, project, sandbox.internal_ip, display_name=name,
            ))
        elif not sandbox.internal_ip:
            log.warning("Could not determine internal IP of VM '{name}'", name=name)

        readiness = self.lifecycle.await_ready(sandbox)
        steps.extend(self.configurator.configure(sandbox, request.cluster, region, readiness))

        log.info("Sandbox {name} provisioned ({readiness})", name=name, readiness=readiness)
        return ProvisionReport(
            sandbox=sandbox,
            topology=topology,
            identity=identity,
            readiness=readiness,
            steps=tuple(steps),
        )
