"""Pre-flight checks run before any mutating call."""

from __future__ import annotations

from loguru import logger

from gke_sandbox.cloud.protocol import CloudResourceClient
from gke_sandbox.errors import PrerequisiteError

log = logger.bind(component="prerequisites")


class PrerequisiteChecker:
    def __init__(self, client: CloudResourceClient) -> None:
        self._client = client

    def check(self, project: str) -> str:
        """Verify tooling, credentials and project access.

        Returns the active account. Raises ``PrerequisiteError`` otherwise.
        """
        if not self._client.tunnel_available():
            raise PrerequisiteError(
                "gcloud CLI is not installed "
                "(install from https://cloud.google.com/sdk/docs/install)"
            )

        account = self._client.active_account()
        if not account:
            raise PrerequisiteError(
                "Not authenticated with Google Cloud "
                "(run: gcloud auth login && gcloud auth application-default login)"
            )

        if not self._client.project_exists(project):
            raise PrerequisiteError(
                f"Project '{project}' not found or not accessible "
                "(check the project ID or run: gcloud config set project <project-id>)"
            )

        log.debug("Prerequisites check passed for {account}", account=account)
        return account
