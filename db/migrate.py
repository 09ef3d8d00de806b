from __future__ import annotations

import hashlib
import importlib.util
import os
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path


MIGRATION_FILE_RE = re.compile(r"^(\d{4})_([a-zA-Z0-9_]+)\.(sql|py)$")


class MigrationError(RuntimeError):
    pass


@dataclass(frozen=True)
class MigrationFile:
    version: str
    name: str
    kind: str
    path: Path

    @property
    def label(self) -> str:
        return f"{self.version}_{self.name}"

    def checksum(self) -> str:
        return hashlib.sha256(self.path.read_bytes()).hexdigest()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ensure_ledger(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at_utc TEXT NOT NULL
        )
        """
    )
    conn.commit()


def _applied_checksums(conn: sqlite3.Connection) -> dict[str, tuple[str, str]]:
    rows = conn.execute("SELECT version, name, checksum FROM schema_migrations").fetchall()
    return {str(version): (str(name), str(checksum)) for version, name, checksum in rows}


def discover_migrations(migrations_dir: str | Path) -> list[MigrationFile]:
    base = Path(migrations_dir)
    if not base.is_dir():
        raise MigrationError(f"Migrations directory not found: {migrations_dir}")
    found: list[MigrationFile] = []
    seen: dict[str, str] = {}
    for path in sorted(base.iterdir()):
        m = MIGRATION_FILE_RE.match(path.name)
        if not path.is_file() or not m:
            continue
        version = m.group(1)
        if version in seen:
            raise MigrationError(f"Duplicate migration version {version}: {seen[version]} and {path.name}")
        seen[version] = path.name
        found.append(MigrationFile(version=version, name=m.group(2), kind=m.group(3), path=path))
    return found


def _run_python_migration(conn: sqlite3.Connection, migration: MigrationFile) -> None:
    spec = importlib.util.spec_from_file_location(f"warden_migration_{migration.label}", str(migration.path))
    if spec is None or spec.loader is None:
        raise MigrationError(f"Could not load migration module: {migration.path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    upgrade = getattr(module, "upgrade", None)
    if not callable(upgrade):
        raise MigrationError(f"Python migration missing upgrade(conn): {migration.path}")
    upgrade(conn)


def _apply_one(conn: sqlite3.Connection, migration: MigrationFile, checksum: str) -> None:
    print(f"[DB] Applying migration {migration.path.name}")
    if migration.kind == "sql":
        conn.executescript(migration.path.read_text(encoding="utf-8"))
    else:
        _run_python_migration(conn, migration)
    conn.execute(
        "INSERT INTO schema_migrations (version, name, checksum, applied_at_utc) VALUES (?, ?, ?, ?)",
        (migration.version, migration.name, checksum, _utc_now_iso()),
    )
    conn.commit()


def apply_sqlite_migrations(conn: sqlite3.Connection, migrations_dir: str | Path) -> list[str]:
    """Apply pending migrations in version order and return the labels applied.

    An already-applied version whose file was renamed or edited is an error:
    migrations are append-only.
    """
    _ensure_ledger(conn)
    applied = _applied_checksums(conn)
    migrations = discover_migrations(migrations_dir)

    newly_applied: list[str] = []
    for migration in migrations:
        checksum = migration.checksum()
        recorded = applied.get(migration.version)
        if recorded is not None:
            old_name, old_checksum = recorded
            if (old_name, old_checksum) != (migration.name, checksum):
                raise MigrationError(
                    f"Migration version {migration.version} already applied with different content "
                    f"(recorded name={old_name}, file name={migration.name})."
                )
            continue
        _apply_one(conn, migration, checksum)
        newly_applied.append(migration.label)

    if newly_applied:
        print(f"[DB] Applied {len(newly_applied)} migration(s); schema at {migrations[-1].version}")
    return newly_applied


def default_migrations_dir() -> str:
    repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(repo_root, "migrations")


def list_schema_migrations_sync(conn: sqlite3.Connection, limit: int = 200) -> list[tuple[str, str, str]]:
    try:
        return conn.execute(
            "SELECT version, name, applied_at_utc FROM schema_migrations ORDER BY version DESC LIMIT ?",
            (max(1, min(int(limit), 500)),),
        ).fetchall()
    except sqlite3.OperationalError:
        return []


def open_database(db_path: str, migrations_dir: str | None = None) -> sqlite3.Connection:
    # store calls run through asyncio.to_thread
    conn = sqlite3.connect(db_path, check_same_thread=False)
    if db_path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
    apply_sqlite_migrations(conn, migrations_dir or default_migrations_dir())
    return conn
