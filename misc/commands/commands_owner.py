from __future__ import annotations

import asyncio

import discord
from discord.ext import commands
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.permission_levels import permission_error_message


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    @bot.command(name="dbmigrations")
    async def cmd_dbmigrations(ctx: commands.Context, limit: int = 30):
        if not gates.in_admin_channel(ctx):
            return
        if not gates.has_level(ctx.author, "owner"):
            await ctx.send(permission_error_message("owner"))
            return

        lim = max(1, min(int(limit or 30), 200))
        try:
            async with deps.db_lock:
                rows = await asyncio.to_thread(deps.list_schema_migrations_sync, deps.db_conn, lim)
        except Exception as e:
            print(f"[Commands] dbmigrations failed: {e}")
            await ctx.send(f"An error occurred: {e}")
            return

        if not rows:
            await ctx.send("No schema migrations found.")
            return

        lines = [f"Applied schema migrations (latest {len(rows)}):"]
        for version, name, applied_at in rows:
            lines.append(f"- {version}_{name} @ {applied_at}")

        await deps.send_chunked(ctx.channel, "```\n" + "\n".join(lines)[:7000] + "\n```")

    @bot.command(name="permlevel")
    @commands.guild_only()
    async def cmd_permlevel(ctx: commands.Context, member: discord.Member | None = None):
        target = member or ctx.author
        if target is not ctx.author and not gates.has_level(ctx.author, "staff"):
            await ctx.send(permission_error_message("staff"))
            return
        await ctx.send(f"{getattr(target, 'display_name', target)} has permission level **{gates.member_level(target)}**.")
