"""Enforcement process: OS ports, interval callbacks and block statistics."""

from blockwarden.enforcement.adapter import EnforcementAdapter
from blockwarden.enforcement.ports import (
    EnforcementPort,
    HostsFileEnforcementPort,
    InMemoryEnforcementPort,
)
from blockwarden.enforcement.statistics import apply_block

__all__ = [
    "EnforcementAdapter",
    "EnforcementPort",
    "HostsFileEnforcementPort",
    "InMemoryEnforcementPort",
    "apply_block",
]
