"""Deterministic resource names.

Every resource this tool creates is named from its inputs, so "does it already
exist" is a single lookup and re-running a command finds what the previous run
made.
"""

from __future__ import annotations

import datetime as dt
import hashlib
import re

from gke_sandbox.constants import (
    IAP_RULE_PREFIX,
    SERVICE_ACCOUNT_DOMAIN,
    SERVICE_ACCOUNT_PREFIX,
)
from gke_sandbox.errors import ConfigError

_LABEL_INVALID = re.compile(r"[^a-z0-9_-]+")
_NAME_INVALID = re.compile(r"[^a-z0-9-]+")

SA_ID_MAX = 30
SA_HASH_LEN = 6
LABEL_MAX = 63
INSTANCE_NAME_MAX = 63


def sanitize_label(value: str) -> str:
    """Coerce ``value`` into a valid GCE label value (lowercase, [a-z0-9_-], <=63)."""
    return _LABEL_INVALID.sub("-", value.lower())[:LABEL_MAX]


def _slug(value: str) -> str:
    return _NAME_INVALID.sub("-", value.lower()).strip("-")


def service_account_id(user: str) -> str:
    """Service account ID for ``user``.

    GCP SA ID constraints:
    - 6-30 characters
    - lowercase letters, digits, hyphens only
    - must start with a letter
    - must not end with a hyphen

    Convention: gke-sandbox-{user}. Longer IDs are cut and suffixed with a
    hash of the full user name, so distinct users never share an account.
    """
    slug = _slug(user)
    if not slug:
        raise ConfigError(f"Cannot derive a service account ID from user '{user}'")
    account_id = f"{SERVICE_ACCOUNT_PREFIX}{slug}"
    if len(account_id) <= SA_ID_MAX:
        return account_id
    digest = hashlib.sha256(user.encode()).hexdigest()[:SA_HASH_LEN]
    head = account_id[:SA_ID_MAX - SA_HASH_LEN - 1].rstrip("-")
    return f"{head}-{digest}"


def service_account_email(account_id: str, project: str) -> str:
    return f"{account_id}@{project}.{SERVICE_ACCOUNT_DOMAIN}"


def firewall_rule_name(network: str) -> str:
    return f"{IAP_RULE_PREFIX}{network}"


def peering_name(from_network: str, to_network: str) -> str:
    return f"peer-{from_network}-to-{to_network}"


def default_vm_name(user: str, cluster: str, now: dt.datetime | None = None) -> str:
    """``sbx-<user>-<cluster>-<HHMM>``, normalised to a valid instance name."""
    stamp = (now or dt.datetime.now()).strftime("%H%M")
    name = f"sbx-{_slug(user)}-{_slug(cluster)}"
    return f"{name[:INSTANCE_NAME_MAX - 5].rstrip('-')}-{stamp}"


def creation_date(now: dt.datetime | None = None) -> str:
    return (now or dt.datetime.now()).strftime("%Y%m%d")
