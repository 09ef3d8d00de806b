from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone


def _has_table(conn: sqlite3.Connection, table: str) -> bool:
    cur = conn.cursor()
    cur.execute("SELECT 1 FROM sqlite_master WHERE type='table' AND name=? LIMIT 1", (table,))
    return cur.fetchone() is not None


def _legacy_value(conn: sqlite3.Connection, key: str) -> str | None:
    cur = conn.cursor()
    cur.execute("SELECT value FROM application_settings WHERE key = ? LIMIT 1", (key,))
    row = cur.fetchone()
    return None if row is None else row[0]


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    now = datetime.now(timezone.utc).isoformat()
    cur.execute(
        "INSERT OR IGNORE INTO bot_settings (key, value, updated_at_utc) VALUES ('auto_role_enabled', 'false', ?)",
        (now,),
    )

    # Databases from the previous bot keep auto-roles as one JSON blob in application_settings.
    if not _has_table(conn, "application_settings"):
        conn.commit()
        return

    enabled = _legacy_value(conn, "auto_role_enabled")
    if enabled is not None:
        cur.execute(
            "UPDATE bot_settings SET value = ?, updated_at_utc = ? WHERE key = 'auto_role_enabled'",
            ("true" if str(enabled).strip().lower() == "true" else "false", now),
        )

    raw = _legacy_value(conn, "auto_roles")
    try:
        roles = json.loads(raw) if raw else []
    except ValueError:
        print("[DB] legacy auto_roles blob unreadable; skipping import")
        roles = []
    if not isinstance(roles, list):
        roles = []

    imported = 0
    for position, role in enumerate(roles):
        if not isinstance(role, dict) or not role.get("id"):
            continue
        conditions = role.get("conditions") if isinstance(role.get("conditions"), dict) else {}
        cur.execute(
            """
            INSERT OR IGNORE INTO auto_roles (
                role_id, role_name, conditions_json, position, created_at_utc, updated_at_utc
            )
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (str(role["id"]), str(role.get("name") or ""), json.dumps(conditions, ensure_ascii=False), position, now, now),
        )
        imported += cur.rowcount
    if imported:
        print(f"[DB] imported {imported} legacy auto-role(s)")
    conn.commit()
