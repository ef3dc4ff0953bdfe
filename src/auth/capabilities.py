"""Declarative role -> capability table and the single capability check."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict, FrozenSet, Mapping

import yaml

from src.core.config import get_settings


CAP_CREATE_JOB = "create_job"
CAP_VIEW_QUEUE = "view_queue"
CAP_EDIT_OWN_JOB = "edit_own_job"
CAP_MANAGE_QUEUE = "manage_queue"
CAP_APPROVE_CONTENT = "approve_content"
CAP_PUBLISH_CONTENT = "publish_content"
CAP_VIEW_STATS = "view_stats"
CAP_MANAGE_MEMBERS = "manage_members"

ALL_CAPABILITIES: FrozenSet[str] = frozenset(
    {
        CAP_CREATE_JOB,
        CAP_VIEW_QUEUE,
        CAP_EDIT_OWN_JOB,
        CAP_MANAGE_QUEUE,
        CAP_APPROVE_CONTENT,
        CAP_PUBLISH_CONTENT,
        CAP_VIEW_STATS,
        CAP_MANAGE_MEMBERS,
    }
)

_MEMBER_CAPABILITIES = frozenset({CAP_CREATE_JOB, CAP_VIEW_QUEUE, CAP_EDIT_OWN_JOB, CAP_VIEW_STATS})
_MANAGER_CAPABILITIES = ALL_CAPABILITIES - {CAP_MANAGE_MEMBERS}

DEFAULT_ROLE_CAPABILITIES: Dict[str, FrozenSet[str]] = {
    "owner": ALL_CAPABILITIES,
    "admin": ALL_CAPABILITIES,
    "manager": _MANAGER_CAPABILITIES,
    "editor": _MANAGER_CAPABILITIES,
    "member": _MEMBER_CAPABILITIES,
}
DEFAULT_ROLES = tuple(DEFAULT_ROLE_CAPABILITIES.keys())


def _resolve_capabilities_path() -> Path:
    settings = get_settings()
    configured = Path(settings.capabilities_file_path)
    if configured.is_absolute():
        return configured
    return Path.cwd() / configured


def parse_capability_table(content: Mapping[str, object]) -> Dict[str, FrozenSet[str]]:
    table: Dict[str, FrozenSet[str]] = {}
    for role, capabilities in content.items():
        if not isinstance(role, str) or not isinstance(capabilities, list):
            raise ValueError(f"Invalid capability entry for role: {role!r}")
        unknown = {str(item) for item in capabilities} - ALL_CAPABILITIES
        if unknown:
            raise ValueError(f"Unknown capabilities for role {role}: {', '.join(sorted(unknown))}")
        table[role.strip().lower()] = frozenset(str(item) for item in capabilities)
    return table


@lru_cache(maxsize=1)
def load_capability_table() -> Dict[str, FrozenSet[str]]:
    path = _resolve_capabilities_path()
    if not path.exists():
        return dict(DEFAULT_ROLE_CAPABILITIES)

    with path.open("r", encoding="utf-8") as file:
        content = yaml.safe_load(file) or {}
    if not isinstance(content, dict):
        raise ValueError("Invalid capabilities file format")
    return parse_capability_table(content)


def reset_capability_table_cache() -> None:
    load_capability_table.cache_clear()


def has_capability(role: str | None, capability: str, *, table: Mapping[str, FrozenSet[str]] | None = None) -> bool:
    """Pure lookup: does ``role`` grant ``capability``."""

    resolved = table if table is not None else load_capability_table()
    normalized = str(role or "").strip().lower()
    return capability in resolved.get(normalized, frozenset())


def capabilities_for(role: str | None, *, table: Mapping[str, FrozenSet[str]] | None = None) -> list[str]:
    resolved = table if table is not None else load_capability_table()
    return sorted(resolved.get(str(role or "").strip().lower(), frozenset()))
