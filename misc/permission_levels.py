from __future__ import annotations

import os
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any, Mapping

import yaml

from config.defaults import DEFAULT_PERMISSION_ROLE_IDS
from config.defaults import PERMISSION_DESCRIPTIONS
from config.defaults import PERMISSION_LEVEL_ALIASES
from config.defaults import PERMISSION_LEVELS
from config.env import parse_id_set


@dataclass(frozen=True)
class PermissionRoles:
    role_ids_by_level: dict[str, frozenset[int]] = field(default_factory=dict)
    owner_user_ids: frozenset[int] = frozenset()

    def role_ids(self, level: str) -> frozenset[int]:
        return self.role_ids_by_level.get(normalize_level(level), frozenset())


def normalize_level(level: str | None) -> str:
    key = str(level or "").strip().lower()
    key = PERMISSION_LEVEL_ALIASES.get(key, key)
    return key if key in PERMISSION_LEVELS else "user"


def level_rank(level: str | None) -> int:
    return PERMISSION_LEVELS.index(normalize_level(level))


def _coerce_ids(value: Any) -> set[int]:
    if value is None:
        return set()
    if isinstance(value, (int, str)):
        return parse_id_set(str(value))
    out: set[int] = set()
    if isinstance(value, (list, tuple, set)):
        for item in value:
            out |= parse_id_set(str(item))
    return out


def default_permission_roles(owner_user_ids: set[int] | None = None) -> PermissionRoles:
    return PermissionRoles(
        role_ids_by_level={lvl: frozenset(ids) for lvl, ids in DEFAULT_PERMISSION_ROLE_IDS.items()},
        owner_user_ids=frozenset(owner_user_ids or set()),
    )


def _apply_env_overrides(levels: dict[str, frozenset[int]], env: Mapping[str, str]) -> dict[str, frozenset[int]]:
    out = dict(levels)
    for lvl in PERMISSION_LEVELS:
        if lvl == "user":
            continue
        raw = env.get(f"WARDEN_{lvl.upper()}_ROLE_IDS")
        if raw is None:
            continue
        out[lvl] = frozenset(parse_id_set(raw))
    return out


def load_permission_roles(
    path: str | Path | None,
    *,
    owner_user_ids: set[int] | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[PermissionRoles, str | None]:
    """
    Returns (roles, warning_message). warning_message is None on clean load.
    Env overrides apply on top of both the file and the built-in defaults.
    """
    env = os.environ if env is None else env
    defaults = default_permission_roles(owner_user_ids)
    warning: str | None = None
    levels = dict(defaults.role_ids_by_level)

    if not path:
        warning = "Permission roles path missing; using built-in defaults."
    else:
        p = Path(path)
        if not p.exists():
            warning = f"Permission roles file not found at {p}; using built-in defaults."
        else:
            try:
                payload = yaml.safe_load(p.read_text(encoding="utf-8"))
            except Exception as exc:
                payload = None
                warning = f"Failed to read permission roles from {p}: {exc}; using built-in defaults."
            if warning is None:
                raw_levels = payload.get("levels") if isinstance(payload, dict) else None
                if not isinstance(raw_levels, dict):
                    warning = f"Invalid permission roles format in {p}; using built-in defaults."
                else:
                    levels = {}
                    for key, ids in raw_levels.items():
                        lvl = normalize_level(key)
                        if lvl == "user":
                            continue
                        levels[lvl] = frozenset(set(levels.get(lvl, frozenset())) | _coerce_ids(ids))

    roles = PermissionRoles(
        role_ids_by_level=_apply_env_overrides(levels, env),
        owner_user_ids=defaults.owner_user_ids,
    )
    return (roles, warning)


def member_permission_level(member: Any, roles: PermissionRoles) -> str:
    uid = int(getattr(member, "id", 0) or 0)
    if uid and uid in roles.owner_user_ids:
        return "owner"

    member_roles = getattr(member, "roles", None) or []
    held = {int(getattr(r, "id", 0) or 0) for r in member_roles}
    for lvl in reversed(PERMISSION_LEVELS):
        if lvl == "user":
            break
        if held & roles.role_ids(lvl):
            return lvl
    return "user"


def has_permission_level(member: Any, required: str, roles: PermissionRoles) -> bool:
    key = str(required or "").strip().lower()
    key = PERMISSION_LEVEL_ALIASES.get(key, key)
    if key not in PERMISSION_LEVELS:
        # a misspelled level must not open the command to everyone
        key = "owner"
    return level_rank(member_permission_level(member, roles)) >= level_rank(key)


def permission_error_message(required: str) -> str:
    lvl = normalize_level(required)
    desc = PERMISSION_DESCRIPTIONS.get(lvl)
    if desc:
        return f"{desc}."
    return "You do not have permission to use this command."
