"""Service-account access scope aliases.

Configuration may name scopes by their short alias (as gcloud does) or by
full URI. The compute API always returns full URIs, so desired and actual
scopes are compared in short form.
"""

from __future__ import annotations

from types import MappingProxyType

SCOPE_ALIASES: MappingProxyType[str, str] = MappingProxyType(
    {
        "storage-ro": "https://www.googleapis.com/auth/devstorage.read_only",
        "storage-rw": "https://www.googleapis.com/auth/devstorage.read_write",
        "compute-ro": "https://www.googleapis.com/auth/compute.read_only",
        "compute-rw": "https://www.googleapis.com/auth/compute",
        "monitoring": "https://www.googleapis.com/auth/monitoring",
        "monitoring-write": "https://www.googleapis.com/auth/monitoring.write",
        "logging-write": "https://www.googleapis.com/auth/logging.write",
    }
)

_ALIASES_BY_URI: MappingProxyType[str, str] = MappingProxyType(
    {uri: alias for alias, uri in SCOPE_ALIASES.items()}
)


def expand_scope_alias(scope: str) -> str:
    """Return the full URI for an alias; anything else passes through."""
    return SCOPE_ALIASES.get(scope, scope)


def shorten_scope(scope: str) -> str:
    """Return the alias for a known URI; anything else passes through."""
    return _ALIASES_BY_URI.get(scope, scope)
