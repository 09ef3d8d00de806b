from __future__ import annotations

import asyncio

import discord
from autorole.conditions import CONDITION_KINDS
from autorole.conditions import OPERATORS
from autorole.conditions import ConditionValidationError
from autorole.conditions import check_conditions
from autorole.conditions import parse_condition_input
from autorole.describe import condition_kind_label
from autorole.describe import describe_condition
from autorole.describe import describe_stored_conditions
from autorole.service import load_role_snapshot
from autorole.service import profile_from_member
from autorole.store import AutoRoleExistsError
from autorole.store import AutoRoleNotFoundError
from discord.ext import commands
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.permission_levels import permission_error_message

REQUIRED_LEVEL = "admin"


def split_value_operator(raw: str) -> tuple[str, str]:
    """Accept `<value> [op]` or `<op> <value>` and return (value, op)."""
    text = (raw or "").strip()
    if not text:
        return ("", "")
    head, _, rest = text.partition(" ")
    if head in OPERATORS and rest.strip():
        return (rest.strip(), head)
    parts = text.rsplit(None, 1)
    if len(parts) == 2 and parts[1] in OPERATORS:
        return (parts[0].strip(), parts[1])
    return (text, "")


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    async def run_store(func, *args, **kwargs):
        async with deps.db_lock:
            return await asyncio.to_thread(func, deps.db_conn, *args, **kwargs)

    async def passes_gates(ctx: commands.Context) -> bool:
        if not gates.in_admin_channel(ctx):
            return False
        if not gates.has_level(ctx.author, REQUIRED_LEVEL):
            await ctx.send(permission_error_message(REQUIRED_LEVEL))
            return False
        me = getattr(ctx.guild, "me", None)
        perms = getattr(me, "guild_permissions", None)
        if not getattr(perms, "manage_roles", False):
            await ctx.send('I need the "Manage Roles" permission to manage auto-roles.')
            return False
        return True

    async def report_error(ctx: commands.Context, name: str, exc: Exception) -> None:
        print(f"[AutoRole] error in {name}: {exc}")
        await ctx.send(f"An error occurred: {exc}")

    @bot.command(name="autorole.enable")
    @commands.guild_only()
    async def autorole_enable(ctx: commands.Context):
        if not await passes_gates(ctx):
            return
        try:
            await run_store(deps.set_auto_role_enabled_sync, True)
        except Exception as e:
            await report_error(ctx, "autorole.enable", e)
            return
        await ctx.send("Auto-role assignment has been **enabled**. New members will automatically receive configured roles.")

    @bot.command(name="autorole.disable")
    @commands.guild_only()
    async def autorole_disable(ctx: commands.Context):
        if not await passes_gates(ctx):
            return
        try:
            await run_store(deps.set_auto_role_enabled_sync, False)
        except Exception as e:
            await report_error(ctx, "autorole.disable", e)
            return
        await ctx.send("Auto-role assignment has been **disabled**. New members will not receive automatic roles.")

    @bot.command(name="autorole.add")
    @commands.guild_only()
    async def autorole_add(ctx: commands.Context, role: discord.Role):
        if not await passes_gates(ctx):
            return
        top_role = getattr(getattr(ctx.guild, "me", None), "top_role", None)
        if top_role is not None and role.position >= top_role.position:
            await ctx.send(
                f"I cannot assign the role {role.name} because it is positioned higher than or equal to my highest role."
            )
            return
        try:
            await run_store(deps.add_auto_role_sync, str(role.id), role.name)
        except AutoRoleExistsError:
            await ctx.send(f"The role **{role.name}** is already in the auto-roles list.")
            return
        except Exception as e:
            await report_error(ctx, "autorole.add", e)
            return
        await ctx.send(
            f"The role **{role.name}** has been added to auto-roles. New members will now receive this role automatically.\n\n"
            "You can set conditions for this role with `!autorole.set_condition`."
        )

    @bot.command(name="autorole.remove")
    @commands.guild_only()
    async def autorole_remove(ctx: commands.Context, role: discord.Role):
        if not await passes_gates(ctx):
            return
        try:
            await run_store(deps.remove_auto_role_sync, str(role.id))
        except AutoRoleNotFoundError:
            await ctx.send(f"The role **{role.name}** is not in the auto-roles list.")
            return
        except Exception as e:
            await report_error(ctx, "autorole.remove", e)
            return
        await ctx.send(f"The role **{role.name}** has been removed from auto-roles.")

    @bot.command(name="autorole.set_condition")
    @commands.guild_only()
    async def autorole_set_condition(ctx: commands.Context, role: discord.Role, kind: str = "", *, raw: str = ""):
        if not await passes_gates(ctx):
            return
        kind = (kind or "").strip().lower()
        if not kind:
            await ctx.send(
                "Usage: `!autorole.set_condition <role> <type> <value> [operator]`\n"
                f"Types: {', '.join(CONDITION_KINDS)}, clear"
            )
            return

        try:
            role_row = await run_store(deps.get_auto_role_sync, str(role.id))
        except Exception as e:
            await report_error(ctx, "autorole.set_condition", e)
            return
        if role_row is None:
            await ctx.send(f"The role **{role.name}** is not in the auto-roles list. Add it first with `!autorole.add`.")
            return

        if kind == "clear":
            try:
                await run_store(deps.update_auto_role_conditions_sync, str(role.id), {}, role_name=role.name)
            except Exception as e:
                await report_error(ctx, "autorole.set_condition", e)
                return
            await ctx.send(
                f"All conditions for the role **{role.name}** have been cleared. It will now be assigned to all new members."
            )
            return

        value, operator = split_value_operator(raw)
        try:
            stored = parse_condition_input(kind, value, operator)
        except ConditionValidationError as e:
            await ctx.send(str(e))
            return

        conditions = dict(role_row.get("conditions") or {})
        conditions[kind] = stored
        try:
            await run_store(deps.update_auto_role_conditions_sync, str(role.id), conditions, role_name=role.name)
        except AutoRoleNotFoundError:
            await ctx.send(f"The role **{role.name}** was removed from auto-roles while you were editing it.")
            return
        except Exception as e:
            await report_error(ctx, "autorole.set_condition", e)
            return
        await ctx.send(
            f"Condition set for role **{role.name}**:\n"
            f"{describe_condition(kind, stored['value'], stored['operator'])}"
        )

    @bot.command(name="autorole.clear_condition")
    @commands.guild_only()
    async def autorole_clear_condition(ctx: commands.Context, role: discord.Role, kind: str = ""):
        if not await passes_gates(ctx):
            return
        kind = (kind or "").strip().lower()
        try:
            role_row = await run_store(deps.get_auto_role_sync, str(role.id))
        except Exception as e:
            await report_error(ctx, "autorole.clear_condition", e)
            return
        if role_row is None:
            await ctx.send(f"The role **{role.name}** is not in the auto-roles list.")
            return
        conditions = dict(role_row.get("conditions") or {})
        if kind not in conditions:
            await ctx.send(f"The role **{role.name}** has no `{kind or '?'}` condition.")
            return
        conditions.pop(kind)
        try:
            await run_store(deps.update_auto_role_conditions_sync, str(role.id), conditions, role_name=role.name)
        except Exception as e:
            await report_error(ctx, "autorole.clear_condition", e)
            return
        await ctx.send(f"Removed the {condition_kind_label(kind)} condition from **{role.name}**.")

    @bot.command(name="autorole.view_conditions")
    @commands.guild_only()
    async def autorole_view_conditions(ctx: commands.Context, role: discord.Role):
        if not await passes_gates(ctx):
            return
        try:
            role_row = await run_store(deps.get_auto_role_sync, str(role.id))
        except Exception as e:
            await report_error(ctx, "autorole.view_conditions", e)
            return
        if role_row is None:
            await ctx.send(f"The role **{role.name}** is not in the auto-roles list.")
            return

        embed = discord.Embed(
            title=f"Conditions for {role.name}",
            colour=discord.Colour(0x3498DB),
            timestamp=deps.utc_now(),
        )
        described = describe_stored_conditions(role_row.get("conditions") or {})
        if not described:
            embed.description = "No conditions are set for this role. It will be assigned to all new members."
        else:
            embed.description = "The following conditions must be met for a new member to receive this role:"
            for label, text in described:
                embed.add_field(name=label, value=text, inline=False)
        await ctx.send(embed=embed)

    @bot.command(name="autorole.list")
    @commands.guild_only()
    async def autorole_list(ctx: commands.Context):
        if not await passes_gates(ctx):
            return
        try:
            enabled = await run_store(deps.get_auto_role_enabled_sync)
            rows = await run_store(deps.list_auto_roles_sync)
        except Exception as e:
            await report_error(ctx, "autorole.list", e)
            return

        embed = discord.Embed(
            title="Auto-Role Configuration",
            description=f"Auto-role assignment is currently **{'ENABLED' if enabled else 'DISABLED'}**",
            colour=discord.Colour.green() if enabled else discord.Colour.red(),
            timestamp=deps.utc_now(),
        )
        if not rows:
            embed.add_field(name="Configured Roles", value="No roles configured. Add roles with `!autorole.add`", inline=False)
        else:
            items = []
            for row in rows:
                marker = " [Has Conditions]" if row.get("conditions") else ""
                items.append(f"- <@&{row['role_id']}> ({row['role_name']}){marker}")
            embed.add_field(name="Configured Roles", value="\n".join(items)[:1024], inline=False)
            embed.add_field(
                name="Viewing & Setting Conditions",
                value=(
                    "Use `!autorole.view_conditions` to see conditions for a role\n"
                    "Use `!autorole.set_condition` to configure when a role is assigned"
                ),
                inline=False,
            )
        await ctx.send(embed=embed)

    @bot.command(name="autorole.check")
    @commands.guild_only()
    async def autorole_check(ctx: commands.Context, member: discord.Member):
        if not await passes_gates(ctx):
            return
        try:
            rows = await run_store(deps.list_auto_roles_sync)
        except Exception as e:
            await report_error(ctx, "autorole.check", e)
            return
        if not rows:
            await ctx.send("No auto-roles are configured.")
            return

        profile = profile_from_member(member)
        now = deps.utc_now()
        lines = [f"Auto-role preview for {member.name} (no roles granted):"]
        for cfg in load_role_snapshot(rows):
            results = check_conditions(profile, cfg.conditions, now)
            verdict = "eligible" if all(ok for _kind, ok in results) else "not eligible"
            lines.append(f"- {cfg.role_name}: {verdict}")
            for kind, ok in results:
                lines.append(f"    {'pass' if ok else 'fail'} {condition_kind_label(kind)}")
        await deps.send_chunked(ctx.channel, "```\n" + "\n".join(lines)[:7000] + "\n```")

    @bot.command(name="autorole.log")
    @commands.guild_only()
    async def autorole_log(ctx: commands.Context, limit: int = 20):
        if not await passes_gates(ctx):
            return
        lim = max(1, min(int(limit or 20), 100))
        try:
            rows = await run_store(deps.fetch_recent_join_outcomes_sync, lim)
        except Exception as e:
            await report_error(ctx, "autorole.log", e)
            return
        if not rows:
            await ctx.send("No auto-role join outcomes recorded yet.")
            return
        lines = [f"Auto-role outcomes (latest {len(rows)}):"]
        for row in rows:
            if row["granted"]:
                status = "granted"
            elif row["eligible"]:
                status = f"failed: {row.get('failure_reason') or 'unknown'}"
            else:
                status = "ineligible"
            lines.append(f"- {row['created_at_utc']} member={row['member_id']} {row['role_name']} :: {status}")
        await deps.send_chunked(ctx.channel, "```\n" + "\n".join(lines)[:7000] + "\n```")
