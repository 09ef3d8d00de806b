from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, Iterable


AUTO_ROLE_ENABLED_KEY = "auto_role_enabled"


class AutoRoleStoreError(Exception):
    pass


class AutoRoleExistsError(AutoRoleStoreError, ValueError):
    pass


class AutoRoleNotFoundError(AutoRoleStoreError, LookupError):
    pass


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dump_conditions(conditions: dict | None, role_id: str) -> str:
    # an unwritable blob must not be stored as {} (always assign)
    try:
        return json.dumps(conditions or {}, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise AutoRoleStoreError(f"Conditions for role {role_id} are not serializable: {e}") from e


def _loads_conditions(raw: str | None, role_id: str) -> dict[str, dict]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError as e:
        print(f"[DB] auto_roles.conditions_json unreadable for role {role_id}: {e}")
        return {}
    if not isinstance(value, dict):
        print(f"[DB] auto_roles.conditions_json for role {role_id} is not an object; ignoring")
        return {}
    return value


def _row_to_role(row: tuple[Any, ...] | None) -> dict[str, Any] | None:
    if row is None:
        return None
    role_id, role_name, conditions_json, position, created_at_utc, updated_at_utc = row
    return {
        "role_id": str(role_id),
        "role_name": str(role_name or ""),
        "conditions": _loads_conditions(conditions_json, str(role_id)),
        "position": int(position or 0),
        "created_at_utc": created_at_utc,
        "updated_at_utc": updated_at_utc,
    }


# ---- settings ----

def get_setting_sync(conn: sqlite3.Connection, key: str) -> str | None:
    cur = conn.cursor()
    cur.execute("SELECT value FROM bot_settings WHERE key = ? LIMIT 1", (key,))
    row = cur.fetchone()
    return None if row is None else row[0]


def set_setting_sync(conn: sqlite3.Connection, key: str, value: str) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO bot_settings (key, value, updated_at_utc)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            updated_at_utc = excluded.updated_at_utc
        """,
        (key, value, _utc_now_iso()),
    )
    conn.commit()


def get_auto_role_enabled_sync(conn: sqlite3.Connection) -> bool:
    return (get_setting_sync(conn, AUTO_ROLE_ENABLED_KEY) or "").strip().lower() == "true"


def set_auto_role_enabled_sync(conn: sqlite3.Connection, enabled: bool) -> None:
    set_setting_sync(conn, AUTO_ROLE_ENABLED_KEY, "true" if enabled else "false")


# ---- auto roles ----

def get_auto_role_sync(conn: sqlite3.Connection, role_id: str) -> dict[str, Any] | None:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT role_id, role_name, conditions_json, position, created_at_utc, updated_at_utc
        FROM auto_roles
        WHERE role_id = ?
        LIMIT 1
        """,
        (str(role_id),),
    )
    return _row_to_role(cur.fetchone())


def list_auto_roles_sync(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT role_id, role_name, conditions_json, position, created_at_utc, updated_at_utc
        FROM auto_roles
        ORDER BY position ASC, created_at_utc ASC
        """
    )
    return [r for r in (_row_to_role(row) for row in cur.fetchall()) if r is not None]


def add_auto_role_sync(
    conn: sqlite3.Connection,
    role_id: str,
    role_name: str,
    conditions: dict | None = None,
) -> dict[str, Any]:
    if get_auto_role_sync(conn, role_id) is not None:
        raise AutoRoleExistsError(f"Role {role_id} is already in auto-roles list")
    conditions_json = _dump_conditions(conditions, str(role_id))
    cur = conn.cursor()
    cur.execute("SELECT COALESCE(MAX(position), -1) + 1 FROM auto_roles")
    position = int(cur.fetchone()[0])
    now = _utc_now_iso()
    cur.execute(
        """
        INSERT INTO auto_roles (role_id, role_name, conditions_json, position, created_at_utc, updated_at_utc)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (str(role_id), str(role_name), conditions_json, position, now, now),
    )
    conn.commit()
    row = get_auto_role_sync(conn, role_id)
    if row is None:
        raise RuntimeError("Failed to create/fetch auto role")
    return row


def remove_auto_role_sync(conn: sqlite3.Connection, role_id: str) -> None:
    cur = conn.cursor()
    cur.execute("DELETE FROM auto_roles WHERE role_id = ?", (str(role_id),))
    if cur.rowcount == 0:
        conn.rollback()
        raise AutoRoleNotFoundError(f"Role {role_id} not found in auto-roles list")
    conn.commit()


def update_auto_role_conditions_sync(
    conn: sqlite3.Connection,
    role_id: str,
    conditions: dict | None,
    *,
    role_name: str | None = None,
) -> dict[str, Any]:
    conditions_json = _dump_conditions(conditions, str(role_id))
    cur = conn.cursor()
    if role_name:
        cur.execute(
            "UPDATE auto_roles SET conditions_json = ?, role_name = ?, updated_at_utc = ? WHERE role_id = ?",
            (conditions_json, str(role_name), _utc_now_iso(), str(role_id)),
        )
    else:
        cur.execute(
            "UPDATE auto_roles SET conditions_json = ?, updated_at_utc = ? WHERE role_id = ?",
            (conditions_json, _utc_now_iso(), str(role_id)),
        )
    if cur.rowcount == 0:
        conn.rollback()
        raise AutoRoleNotFoundError(f"Role {role_id} not found in auto-roles list")
    conn.commit()
    row = get_auto_role_sync(conn, role_id)
    if row is None:
        raise AutoRoleNotFoundError(f"Role {role_id} not found in auto-roles list")
    return row


# ---- join audit ----

def record_join_outcomes_sync(
    conn: sqlite3.Connection,
    *,
    member_id: int,
    outcomes: Iterable[Any],
    keep_latest: int = 0,
) -> int:
    now = _utc_now_iso()
    rows = [
        (
            int(member_id),
            str(o.role_id),
            str(o.role_name),
            1 if o.eligible else 0,
            1 if (o.eligible and o.failure_reason is None) else 0,
            o.failure_reason,
            now,
        )
        for o in outcomes
    ]
    if not rows:
        return 0
    cur = conn.cursor()
    cur.executemany(
        """
        INSERT INTO auto_role_events (
            member_id, role_id, role_name, eligible, granted, failure_reason, created_at_utc
        )
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        rows,
    )
    if keep_latest and keep_latest > 0:
        cur.execute(
            """
            DELETE FROM auto_role_events
            WHERE id NOT IN (
                SELECT id FROM auto_role_events ORDER BY id DESC LIMIT ?
            )
            """,
            (int(keep_latest),),
        )
    conn.commit()
    return len(rows)


def fetch_recent_join_outcomes_sync(conn: sqlite3.Connection, limit: int = 20) -> list[dict[str, Any]]:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, member_id, role_id, role_name, eligible, granted, failure_reason, created_at_utc
        FROM auto_role_events
        ORDER BY id DESC
        LIMIT ?
        """,
        (max(1, min(int(limit), 200)),),
    )
    out: list[dict[str, Any]] = []
    for row in cur.fetchall():
        out.append(
            {
                "id": int(row[0]),
                "member_id": int(row[1]),
                "role_id": str(row[2]),
                "role_name": str(row[3] or ""),
                "eligible": bool(row[4]),
                "granted": bool(row[5]),
                "failure_reason": row[6],
                "created_at_utc": row[7],
            }
        )
    return out
