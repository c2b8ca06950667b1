"""Idempotent provisioning steps and the ``create`` pipeline that runs them."""

from __future__ import annotations

from .configure import PostProvisionConfigurator
from .firewall import FirewallProvisioner
from .identity import IdentityProvisioner
from .lifecycle import PollSettings, VMLifecycleManager, VMRequest
from .network import NetworkTopologyResolver, merge_cidrs, to_host_cidr
from .pipeline import CreatePipeline, CreateRequest
from .prerequisites import PrerequisiteChecker

__all__ = [
    "CreatePipeline",
    "CreateRequest",
    "FirewallProvisioner",
    "IdentityProvisioner",
    "NetworkTopologyResolver",
    "PollSettings",
    "PostProvisionConfigurator",
    "PrerequisiteChecker",
    "VMLifecycleManager",
    "VMRequest",
    "merge_cidrs",
    "to_host_cidr",
]
