"""Per-operator service account used by sandbox VMs."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence

from loguru import logger

from gke_sandbox.cloud.protocol import CloudResourceClient
from gke_sandbox.errors import CloudError, ProvisioningError
from gke_sandbox.naming import service_account_email, service_account_id
from gke_sandbox.types import Identity, Outcome, StepResult

log = logger.bind(component="identity")


class IdentityProvisioner:
    """Ensures one service account per operator per project.

    An existing account is returned untouched: roles are only granted right
    after creation. A failed grant is logged and skipped, leaving the account
    possibly under-privileged.
    """

    def __init__(
        self,
        client: CloudResourceClient,
        roles: Sequence[str],
        *,
        settle_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._roles = tuple(roles)
        self._settle = settle_seconds
        self._sleep = sleep

    def ensure_identity(self, project: str, user: str) -> StepResult[Identity]:
        account_id = service_account_id(user)
        email = service_account_email(account_id, project)

        existing = self._client.get_service_account(project, email)
        if existing is not None:
            log.debug("Service account {email} already exists", email=email)
            return StepResult("identity", Outcome.REUSED, existing)

        log.info("Creating service account: {email}", email=email)
        try:
            identity = self._client.create_service_account(
                project,
                account_id,
                display_name=f"GKE Sandbox SA for {user}",
                description=f"Service account for {user}'s sandbox VMs",
            )
        except CloudError as e:
            raise ProvisioningError(f"Failed to create service account {email}: {e}") from e

        failed = self._grant_roles(project, identity)

        if self._settle > 0:
            log.info("Waiting {s:.0f}s for IAM propagation...", s=self._settle)
            self._sleep(self._settle)

        detail = f"{len(failed)} role grant(s) failed: {', '.join(failed)}" if failed else ""
        return StepResult("identity", Outcome.CREATED, identity, detail)

    def _grant_roles(self, project: str, identity: Identity) -> list[str]:
        log.info("Granting GKE permissions...")
        failed: list[str] = []
        for role in self._roles:
            log.debug("Granting {role}...", role=role)
            try:
                self._client.add_project_role(project, identity.member, role)
            except CloudError as e:
                log.warning("Failed to grant {role}: {err}", role=role, err=e)
                failed.append(role)
        return failed
