"""SSH and SCP through Identity-Aware Proxy.

Sandboxes have no external address, so every remote operation goes through
``gcloud compute ssh|scp --tunnel-through-iap``. There is no client-library
equivalent for the IAP TCP relay.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

from loguru import logger

from gke_sandbox.types import CommandResult

log = logger.bind(component="tunnel")

GCLOUD = "gcloud"
DEFAULT_TIMEOUT = 120


def gcloud_available() -> bool:
    return shutil.which(GCLOUD) is not None


def ssh_command(
    instance: str,
    zone: str,
    project: str,
    command: str | None = None,
) -> list[str]:
    """Build the IAP ssh invocation, optionally running ``command`` remotely."""
    cmd = [
        GCLOUD, "compute", "ssh", instance,
        f"--zone={zone}",
        f"--project={project}",
        "--tunnel-through-iap",
    ]
    if command is not None:
        cmd.extend([f"--command={command}", "--quiet"])
    return cmd


def scp_command(
    local_path: Path,
    instance: str,
    remote_path: str,
    zone: str,
    project: str,
) -> list[str]:
    return [
        GCLOUD, "compute", "scp", str(local_path),
        f"{instance}:{remote_path}",
        f"--zone={zone}",
        f"--project={project}",
        "--tunnel-through-iap",
        "--quiet",
    ]


def _run(cmd: list[str], timeout: int) -> CommandResult:
    preview = " ".join(cmd)
    log.debug("exec: {cmd}", cmd=preview[:160])
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        log.debug("exec timed out after {t}s", t=timeout)
        return CommandResult(returncode=124, stderr=f"timed out after {timeout}s")
    except OSError as e:
        return CommandResult(returncode=127, stderr=str(e))
    log.debug("exec: exit_code={code}", code=result.returncode)
    return CommandResult(
        returncode=result.returncode,
        stdout=result.stdout,
        stderr=result.stderr,
    )


def ssh_run(
    instance: str,
    zone: str,
    project: str,
    command: str,
    timeout: int = DEFAULT_TIMEOUT,
) -> CommandResult:
    """Run ``command`` on the instance and capture its output."""
    return _run(ssh_command(instance, zone, project, command), timeout)


def scp_upload(
    local_path: Path,
    instance: str,
    remote_path: str,
    zone: str,
    project: str,
    timeout: int = DEFAULT_TIMEOUT,
) -> CommandResult:
    """Copy a local file to the instance (``remote_path`` is relative to $HOME)."""
    return _run(scp_command(local_path, instance, remote_path, zone, project), timeout)
