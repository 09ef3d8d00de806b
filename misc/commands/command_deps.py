from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime, timezone
from typing import Any
from typing import Callable


def _default_false(*args, **kwargs) -> bool:
    return False


def _default_level(*args, **kwargs) -> str:
    return "user"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CommandDeps:
    # Core/shared
    db_lock: Any = None
    db_conn: Any = None
    send_chunked: Callable | None = None
    utc_now: Callable[[], datetime] = _utc_now

    # Auto-role store functions
    get_auto_role_enabled_sync: Callable | None = None
    set_auto_role_enabled_sync: Callable | None = None
    add_auto_role_sync: Callable | None = None
    remove_auto_role_sync: Callable | None = None
    get_auto_role_sync: Callable | None = None
    list_auto_roles_sync: Callable | None = None
    update_auto_role_conditions_sync: Callable | None = None
    fetch_recent_join_outcomes_sync: Callable | None = None

    # Owner tooling
    list_schema_migrations_sync: Callable | None = None


@dataclass(frozen=True)
class CommandGates:
    in_admin_channel: Callable[[Any], bool] = _default_false
    admin_channel_ids: set[int] = field(default_factory=set)
    has_level: Callable[[Any, str], bool] = _default_false
    member_level: Callable[[Any], str] = _default_level
