from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable


@dataclass(frozen=True)
class RuntimeDeps:
    # core
    db_lock: Any
    db_conn: Any
    utc_now: Callable[[], datetime]

    # auto-role
    get_auto_role_enabled_sync: Callable
    list_auto_roles_sync: Callable
    record_join_outcomes_sync: Callable
    autorole_skip_bots: bool = False
    autorole_log_retention: int = 0


@dataclass(frozen=True)
class RuntimeBootDeps:
    permission_summary: str = ""
    admin_channel_ids: set[int] | None = None
