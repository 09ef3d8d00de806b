from __future__ import annotations

import discord
from autorole.service import handle_member_join
from discord.ext import commands
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
    boot: RuntimeBootDeps,
) -> None:
    @bot.event
    async def on_ready():
        print(f"Warden is online as {bot.user}")
        if boot.permission_summary:
            print(f"[Perms] {boot.permission_summary}")
        if boot.admin_channel_ids:
            print(f"[CFG] admin commands limited to {len(boot.admin_channel_ids)} channel(s)")

    @bot.event
    async def on_member_join(member: discord.Member):
        try:
            await handle_member_join(
                member,
                db_lock=deps.db_lock,
                db_conn=deps.db_conn,
                get_auto_role_enabled_sync=deps.get_auto_role_enabled_sync,
                list_auto_roles_sync=deps.list_auto_roles_sync,
                record_join_outcomes_sync=deps.record_join_outcomes_sync,
                utc_now=deps.utc_now,
                skip_bots=deps.autorole_skip_bots,
                log_retention=deps.autorole_log_retention,
            )
        except Exception as e:
            print(f"[AutoRole] Error in auto-role assignment for {getattr(member, 'id', '?')}: {e}")

    @bot.event
    async def on_command_error(ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.CommandNotFound):
            return
        if isinstance(error, commands.NoPrivateMessage):
            await ctx.send("This only works inside the server.")
            return
        if isinstance(error, (commands.MissingRequiredArgument, commands.BadArgument)):
            await ctx.send(f"{error}\nUsage: `{ctx.prefix}{ctx.command} {ctx.command.signature}`")
            return
        print(f"[Commands] {ctx.command} failed: {error}")
