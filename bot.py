import asyncio
import os
from datetime import datetime, timezone

import discord
from discord.ext import commands

from autorole.store import add_auto_role_sync
from autorole.store import fetch_recent_join_outcomes_sync
from autorole.store import get_auto_role_enabled_sync
from autorole.store import get_auto_role_sync
from autorole.store import list_auto_roles_sync
from autorole.store import record_join_outcomes_sync
from autorole.store import remove_auto_role_sync
from autorole.store import set_auto_role_enabled_sync
from autorole.store import update_auto_role_conditions_sync
from config.defaults import DEFAULT_AUTOROLE_LOG_RETENTION
from config.defaults import DEFAULT_COMMAND_PREFIX
from config.defaults import DEFAULT_DB_PATH
from config.env import env_flag
from config.env import env_int
from config.env import parse_id_set
from db.migrate import list_schema_migrations_sync
from db.migrate import open_database
from misc.discord_messages import send_chunked
from misc.permission_levels import load_permission_roles
from misc.runtime_wiring import wire_bot_runtime

REPO_ROOT = os.path.dirname(os.path.abspath(__file__))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def main() -> None:
    # =========================
    # ENV
    # =========================
    discord_token = os.getenv("DISCORD_TOKEN")
    if not discord_token:
        raise RuntimeError("Missing DISCORD_TOKEN env var")

    command_prefix = os.getenv("WARDEN_COMMAND_PREFIX", DEFAULT_COMMAND_PREFIX).strip() or DEFAULT_COMMAND_PREFIX
    db_path = os.getenv("WARDEN_DB_PATH", DEFAULT_DB_PATH)
    owner_user_ids = parse_id_set(os.getenv("WARDEN_OWNER_USER_IDS"))
    admin_channel_ids = parse_id_set(os.getenv("WARDEN_ADMIN_CHANNEL_IDS"))
    autorole_skip_bots = env_flag("WARDEN_AUTOROLE_SKIP_BOTS", False)
    autorole_log_retention = env_int("WARDEN_AUTOROLE_LOG_RETENTION", DEFAULT_AUTOROLE_LOG_RETENTION)

    permission_roles_path = os.getenv(
        "WARDEN_PERMISSION_ROLES_PATH",
        os.path.join(REPO_ROOT, "config", "permission_roles.yml"),
    )
    permission_roles, permission_warning = load_permission_roles(
        permission_roles_path,
        owner_user_ids=owner_user_ids,
    )
    if permission_warning:
        print(f"[CFG] {permission_warning}")

    print(
        f"[CFG] prefix={command_prefix!r} owner_ids={len(owner_user_ids)} "
        f"admin_channels={len(admin_channel_ids) or 'any'} "
        f"autorole_skip_bots={autorole_skip_bots} autorole_log_retention={autorole_log_retention} "
        f"permission_roles={permission_roles_path}"
    )

    # =========================
    # SQLITE
    # =========================
    print(f"[DB] Using DB_PATH={db_path}")
    print(f"[DB] DB file exists? {os.path.exists(db_path)}")
    db_conn = open_database(db_path, os.path.join(REPO_ROOT, "migrations"))
    db_lock = asyncio.Lock()

    # =========================
    # DISCORD BOT
    # =========================
    intents = discord.Intents.default()
    intents.message_content = True
    intents.members = True  # on_member_join

    bot = commands.Bot(command_prefix=command_prefix, intents=intents)

    wire_bot_runtime(
        bot,
        db_lock=db_lock,
        db_conn=db_conn,
        send_chunked=send_chunked,
        utc_now=utc_now,
        permission_roles=permission_roles,
        admin_channel_ids=admin_channel_ids,
        get_auto_role_enabled_sync=get_auto_role_enabled_sync,
        set_auto_role_enabled_sync=set_auto_role_enabled_sync,
        add_auto_role_sync=add_auto_role_sync,
        remove_auto_role_sync=remove_auto_role_sync,
        get_auto_role_sync=get_auto_role_sync,
        list_auto_roles_sync=list_auto_roles_sync,
        update_auto_role_conditions_sync=update_auto_role_conditions_sync,
        record_join_outcomes_sync=record_join_outcomes_sync,
        fetch_recent_join_outcomes_sync=fetch_recent_join_outcomes_sync,
        list_schema_migrations_sync=list_schema_migrations_sync,
        autorole_skip_bots=autorole_skip_bots,
        autorole_log_retention=autorole_log_retention,
    )

    bot.run(discord_token)


if __name__ == "__main__":
    main()
