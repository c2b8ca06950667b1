"""Cloud access layer.

NOTE: Only the protocol is imported at package level. For the Google Cloud
implementation, import explicitly:

    from gke_sandbox.cloud.gcp import GCPCloudClient
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .gcp import GCPCloudClient

from .protocol import CloudResourceClient

__all__ = [
    "CloudResourceClient",
    "GCPCloudClient",
]
