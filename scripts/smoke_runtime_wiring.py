from __future__ import annotations

import asyncio
import importlib
import os
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


async def _noop_async(*args, **kwargs):
    return None


def _try_import_or_skip(module_name: str, pip_name: str | None = None) -> bool:
    try:
        importlib.import_module(module_name)
        return True
    except ModuleNotFoundError:
        install_name = pip_name or module_name
        print(
            f"Smoke wiring check skipped: missing dependency '{module_name}'. "
            f"Install requirements and retry (e.g. `pip install {install_name}` "
            f"or `pip install -e .`)."
        )
        return False


def _main() -> int:
    if not _try_import_or_skip("discord", "discord.py"):
        return 0
    if not _try_import_or_skip("yaml", "PyYAML"):
        return 0

    import discord
    from discord.ext import commands

    from autorole import store
    from db.migrate import list_schema_migrations_sync
    from db.migrate import open_database
    from misc.permission_levels import default_permission_roles
    from misc.runtime_wiring import wire_bot_runtime

    intents = discord.Intents.none()
    bot = commands.Bot(command_prefix="!", intents=intents)
    db_conn = open_database(":memory:")

    wire_bot_runtime(
        bot,
        db_lock=asyncio.Lock(),
        db_conn=db_conn,
        send_chunked=_noop_async,
        utc_now=lambda: datetime(2026, 1, 1, tzinfo=timezone.utc),
        permission_roles=default_permission_roles({123456789012345678}),
        admin_channel_ids={123456789012345678},
        get_auto_role_enabled_sync=store.get_auto_role_enabled_sync,
        set_auto_role_enabled_sync=store.set_auto_role_enabled_sync,
        add_auto_role_sync=store.add_auto_role_sync,
        remove_auto_role_sync=store.remove_auto_role_sync,
        get_auto_role_sync=store.get_auto_role_sync,
        list_auto_roles_sync=store.list_auto_roles_sync,
        update_auto_role_conditions_sync=store.update_auto_role_conditions_sync,
        record_join_outcomes_sync=store.record_join_outcomes_sync,
        fetch_recent_join_outcomes_sync=store.fetch_recent_join_outcomes_sync,
        list_schema_migrations_sync=list_schema_migrations_sync,
        autorole_skip_bots=False,
        autorole_log_retention=100,
    )

    expected_commands = {
        "dbmigrations",
        "permlevel",
        "autorole.enable",
        "autorole.disable",
        "autorole.add",
        "autorole.remove",
        "autorole.list",
        "autorole.set_condition",
        "autorole.clear_condition",
        "autorole.view_conditions",
        "autorole.check",
        "autorole.log",
    }
    existing_commands = set(bot.all_commands.keys())
    missing = sorted(expected_commands - existing_commands)
    if missing:
        raise RuntimeError(f"Missing expected commands: {missing}")

    for event_name in ("on_ready", "on_member_join", "on_command_error"):
        if getattr(bot, event_name, None) is None:
            raise RuntimeError(f"Runtime event {event_name} was not registered")

    if not list_schema_migrations_sync(db_conn):
        raise RuntimeError("Migrations did not apply")

    print("Smoke wiring check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
