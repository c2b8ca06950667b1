"""Sandbox VM lifecycle.

State machine over one instance name::

    Absent -> Creating -> Running -> ReadinessPending -> Ready
                                                      -> DegradedReady

An instance that already exists enters at Running. Both waits are bounded and
never fail the run: a VM that is slow to reach RUNNING is reported and the
pipeline carries on, and a VM whose startup script has not finished ends in
DegradedReady so configuration steps are skipped instead of attempted blindly.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from loguru import logger

from gke_sandbox.cloud.protocol import CloudResourceClient
from gke_sandbox.constants import INSTANCE_SCOPE, READINESS_MARKER, STARTUP_LOG
from gke_sandbox.errors import CloudError, ProvisioningError
from gke_sandbox.retry import PollSuccess, PollTimedOut, attempts_for, poll
from gke_sandbox.types import (
    Identity,
    InstanceRecord,
    InstanceSpec,
    Outcome,
    Readiness,
    Sandbox,
    SandboxLabels,
    StepResult,
)

log = logger.bind(component="lifecycle")


@dataclass(frozen=True, slots=True)
class VMRequest:
    """What the operator asked for."""

    name: str
    project: str
    zone: str
    region: str
    network: str
    subnet: str
    machine_type: str
    image_family: str
    image_project: str
    identity: Identity
    labels: SandboxLabels
    metadata: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def to_spec(self) -> InstanceSpec:
        return InstanceSpec(
            name=self.name,
            machine_type=self.machine_type,
            subnet=self.subnet,
            region=self.region,
            image_family=self.image_family,
            image_project=self.image_project,
            service_account=self.identity.email,
            scopes=(INSTANCE_SCOPE,),
            labels=self.labels,
            metadata=self.metadata,
        )


@dataclass(frozen=True, slots=True)
class PollSettings:
    running_interval: float
    running_timeout: float
    readiness_interval: float
    readiness_attempts: int


class VMLifecycleManager:
    def __init__(
        self,
        client: CloudResourceClient,
        settings: PollSettings,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._settings = settings
        self._sleep = sleep

    def ensure_running(self, request: VMRequest) -> StepResult[Sandbox]:
        """Create the instance (or adopt an existing one) and wait for RUNNING."""
        existing = self._client.get_instance(request.project, request.zone, request.name)
        if existing is not None:
            log.warning("VM '{name}' already exists, skipping creation", name=request.name)
            self._warn_divergence(request, existing)
            return StepResult(
                "instance", Outcome.REUSED, _sandbox(request, existing, reused=True),
            )

        log.info("Creating VM (this takes ~90 seconds)...")
        try:
            self._client.create_instance(request.project, request.zone, request.to_spec())
        except CloudError as e:
            raise ProvisioningError(
                f"Failed to create VM '{request.name}': {e} (check quota/permission issues)"
            ) from e

        log.info("VM created. Waiting for VM to be in RUNNING state...")
        record, detail = self._await_running(request)
        return StepResult("instance", Outcome.CREATED, _sandbox(request, record), detail)

    def _await_running(self, request: VMRequest) -> tuple[InstanceRecord | None, str]:
        interval = self._settings.running_interval
        timeout = self._settings.running_timeout

        def _progress(attempt: int, _total: int) -> None:
            log.info(
                "Waiting for VM to start... {elapsed:.0f}s / {total:.0f}s",
                elapsed=(attempt - 1) * interval, total=timeout,
            )

        match poll(
            lambda: self._client.get_instance(request.project, request.zone, request.name),
            interval=interval,
            max_attempts=attempts_for(timeout, interval),
            until=lambda inst: inst is not None and inst.is_running,
            description=f"{request.name} RUNNING",
            on_attempt=_progress,
            sleep=self._sleep,
        ):
            case PollSuccess(value=record):
                log.info("VM is running")
                return record, ""
            case PollTimedOut(last=record):
                log.warning(
                    "VM did not reach RUNNING state after {t:.0f}s, continuing", t=timeout,
                )
                return record, f"not RUNNING after {timeout:.0f}s"

    def _warn_divergence(self, request: VMRequest, existing: InstanceRecord) -> None:
        if existing.zone and existing.zone != request.zone:
            log.warning(
                "Existing VM is in zone {actual}, not {wanted}",
                actual=existing.zone, wanted=request.zone,
            )
        if existing.machine_type and existing.machine_type != request.machine_type:
            log.warning(
                "Existing VM is a {actual}, not the requested {wanted}; it will not be resized",
                actual=existing.machine_type, wanted=request.machine_type,
            )
        if existing.owner and existing.owner != request.labels.owner:
            log.warning("Existing VM is owned by {owner}", owner=existing.owner)

    def refresh(self, sandbox: Sandbox) -> Sandbox:
        """Re-describe the instance to pick up its internal IP and status."""
        record = self._client.get_instance(sandbox.project, sandbox.zone, sandbox.name)
        if record is None:
            raise ProvisioningError(f"VM '{sandbox.name}' disappeared during provisioning")
        return _with_record(sandbox, record)

    def await_ready(self, sandbox: Sandbox) -> Readiness:
        """Poll for the startup script's readiness marker through the tunnel."""
        log.info("Checking if startup script has completed...")
        attempts = self._settings.readiness_attempts

        def _progress(attempt: int, total: int) -> None:
            log.info("Waiting for startup script... check {n}/{total}", n=attempt, total=total)

        match poll(
            lambda: self._client.run_command(
                sandbox.project, sandbox.zone, sandbox.name, f"test -f {READINESS_MARKER}",
            ).ok,
            interval=self._settings.readiness_interval,
            max_attempts=attempts,
            description=f"{sandbox.name} readiness marker",
            on_attempt=_progress,
            sleep=self._sleep,
        ):
            case PollSuccess():
                log.debug("VM is ready")
                return Readiness.READY
            case PollTimedOut():
                log.warning("VM may not be fully initialized. Tools might still be installing.")
                log.warning(
                    "Check startup script logs with: gcloud compute ssh {name} --zone={zone} "
                    "--project={project} --tunnel-through-iap --command='sudo cat {path}'",
                    name=sandbox.name, zone=sandbox.zone, project=sandbox.project,
                    path=STARTUP_LOG,
                )
                return Readiness.DEGRADED


def _sandbox(request: VMRequest, record: InstanceRecord | None, reused: bool = False) -> Sandbox:
    sandbox = Sandbox(
        name=request.name,
        zone=request.zone,
        project=request.project,
        network=request.network,
        subnet=request.subnet,
        machine_type=request.machine_type,
        service_account=request.identity.email,
        labels=request.labels,
        reused=reused,
    )
    return _with_record(sandbox, record) if record is not None else sandbox


def _with_record(sandbox: Sandbox, record: InstanceRecord) -> Sandbox:
    return replace(
        sandbox,
        internal_ip=record.internal_ip or sandbox.internal_ip,
        status=record.status,
        machine_type=record.machine_type or sandbox.machine_type,
    )
