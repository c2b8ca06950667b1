"""In-VM configuration once the startup script has finished.

Every sub-step here is best effort: a failure is logged with the manual
command to run and the next step still runs.
"""

from __future__ import annotations

import shlex
from pathlib import Path

from loguru import logger

from gke_sandbox.cloud.protocol import CloudResourceClient
from gke_sandbox.types import Outcome, Readiness, Sandbox, StepResult

log = logger.bind(component="configure")


def kubeconfig_command(cluster: str, region: str, project: str) -> str:
    return (
        f"gcloud container clusters get-credentials {shlex.quote(cluster)} "
        f"--region={shlex.quote(region)} --project={shlex.quote(project)} --internal-ip"
    )


def ssh_key_commands(remote_path: str) -> str:
    key = shlex.quote(remote_path)
    pub = shlex.quote(f"{remote_path}.pub")
    return f"chmod 600 {key} && ssh-keygen -y -f {key} > {pub}"


def git_identity_commands(name: str, email: str) -> str:
    return (
        f"git config --global user.name {shlex.quote(name)} && "
        f"git config --global user.email {shlex.quote(email)}"
    )


class PostProvisionConfigurator:
    def __init__(
        self,
        client: CloudResourceClient,
        *,
        ssh_key: Path | None = None,
        git_user_name: str | None = None,
        git_user_email: str | None = None,
    ) -> None:
        self._client = client
        self._ssh_key = ssh_key
        self._git_user_name = git_user_name
        self._git_user_email = git_user_email

    def configure(
        self, sandbox: Sandbox, cluster: str, region: str, readiness: Readiness,
    ) -> list[StepResult[None]]:
        if readiness is not Readiness.READY:
            return self._skip_all(sandbox, cluster, region)

        results = [self.configure_kubeconfig(sandbox, cluster, region)]
        if self._ssh_key is not None:
            results.append(self.install_ssh_key(sandbox))
        return results

    def _skip_all(self, sandbox: Sandbox, cluster: str, region: str) -> list[StepResult[None]]:
        log.warning("Skipping kubeconfig setup - VM not fully ready")
        log.warning(
            "Run manually after VM is ready: {cmd}",
            cmd=kubeconfig_command(cluster, region, sandbox.project),
        )
        results = [StepResult[None]("kubeconfig", Outcome.SKIPPED, detail="VM not ready")]
        if self._ssh_key is not None:
            log.warning("Skipping SSH key setup - VM not fully ready")
            results.append(StepResult[None]("ssh-key", Outcome.SKIPPED, detail="VM not ready"))
        return results

    # -------------------------------------------------------------------------
    # kubeconfig
    # -------------------------------------------------------------------------

    def configure_kubeconfig(self, sandbox: Sandbox, cluster: str, region: str) -> StepResult[None]:
        log.info("Configuring kubectl access...")
        command = kubeconfig_command(cluster, region, sandbox.project)
        result = self._client.run_command(sandbox.project, sandbox.zone, sandbox.name, command)
        if not result.ok:
            log.warning("Failed to configure kubeconfig: {err}", err=result.message)
            log.warning("Run manually: {cmd}", cmd=command)
            return StepResult("kubeconfig", Outcome.FAILED, detail=result.message)

        log.info("kubectl configured for cluster '{cluster}'", cluster=cluster)
        return StepResult("kubeconfig", Outcome.UPDATED)

    # -------------------------------------------------------------------------
    # SSH key and git identity
    # -------------------------------------------------------------------------

    def install_ssh_key(self, sandbox: Sandbox) -> StepResult[None]:
        key = self._ssh_key
        assert key is not None
        if not key.is_file():
            log.warning("SSH key not found at {path}, skipping", path=key)
            return StepResult("ssh-key", Outcome.SKIPPED, detail=f"{key} not found")

        log.info("Setting up SSH key for git access...")
        remote_path = f".ssh/{key.name}"

        copied = self._client.copy_file(
            sandbox.project, sandbox.zone, sandbox.name, key, remote_path,
        )
        if not copied.ok:
            log.warning("Failed to copy SSH key: {err}", err=copied.message)
            return StepResult("ssh-key", Outcome.FAILED, detail=copied.message)

        command = ssh_key_commands(remote_path)
        if self._git_user_name and self._git_user_email:
            command = f"{command} && {git_identity_commands(self._git_user_name, self._git_user_email)}"

        result = self._client.run_command(sandbox.project, sandbox.zone, sandbox.name, command)
        if not result.ok:
            log.warning("Failed to configure SSH key: {err}", err=result.message)
            return StepResult("ssh-key", Outcome.FAILED, detail=result.message)

        log.info("SSH key installed at ~/{path}", path=remote_path)
        return StepResult("ssh-key", Outcome.UPDATED)
