from __future__ import annotations

from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_autorole import register as register_autorole
from misc.commands.commands_owner import register as register_owner
from misc.events_runtime import register_runtime_events
from misc.permission_levels import PermissionRoles
from misc.permission_levels import has_permission_level
from misc.permission_levels import member_permission_level
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


def wire_bot_runtime(
    bot,
    *,
    db_lock,
    db_conn,
    send_chunked,
    utc_now,
    permission_roles: PermissionRoles,
    admin_channel_ids: set[int],
    get_auto_role_enabled_sync,
    set_auto_role_enabled_sync,
    add_auto_role_sync,
    remove_auto_role_sync,
    get_auto_role_sync,
    list_auto_roles_sync,
    update_auto_role_conditions_sync,
    record_join_outcomes_sync,
    fetch_recent_join_outcomes_sync,
    list_schema_migrations_sync,
    autorole_skip_bots: bool,
    autorole_log_retention: int,
) -> None:
    def in_admin_channel(ctx) -> bool:
        if not admin_channel_ids:
            return True
        try:
            channel = ctx.channel
            if int(channel.id) in admin_channel_ids:
                return True
            parent = getattr(channel, "parent", None)
            return parent is not None and int(parent.id) in admin_channel_ids
        except Exception:
            return False

    def has_level(member, level: str) -> bool:
        return has_permission_level(member, level, permission_roles)

    def member_level(member) -> str:
        return member_permission_level(member, permission_roles)

    command_deps = CommandDeps(
        db_lock=db_lock,
        db_conn=db_conn,
        send_chunked=send_chunked,
        utc_now=utc_now,
        get_auto_role_enabled_sync=get_auto_role_enabled_sync,
        set_auto_role_enabled_sync=set_auto_role_enabled_sync,
        add_auto_role_sync=add_auto_role_sync,
        remove_auto_role_sync=remove_auto_role_sync,
        get_auto_role_sync=get_auto_role_sync,
        list_auto_roles_sync=list_auto_roles_sync,
        update_auto_role_conditions_sync=update_auto_role_conditions_sync,
        fetch_recent_join_outcomes_sync=fetch_recent_join_outcomes_sync,
        list_schema_migrations_sync=list_schema_migrations_sync,
    )
    command_gates = CommandGates(
        in_admin_channel=in_admin_channel,
        admin_channel_ids=admin_channel_ids,
        has_level=has_level,
        member_level=member_level,
    )

    register_owner(
        bot,
        deps=command_deps,
        gates=command_gates,
    )

    register_autorole(
        bot,
        deps=command_deps,
        gates=command_gates,
    )

    level_counts = ", ".join(
        f"{lvl}={len(ids)}" for lvl, ids in sorted(permission_roles.role_ids_by_level.items())
    )
    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            db_lock=db_lock,
            db_conn=db_conn,
            utc_now=utc_now,
            get_auto_role_enabled_sync=get_auto_role_enabled_sync,
            list_auto_roles_sync=list_auto_roles_sync,
            record_join_outcomes_sync=record_join_outcomes_sync,
            autorole_skip_bots=autorole_skip_bots,
            autorole_log_retention=autorole_log_retention,
        ),
        boot=RuntimeBootDeps(
            permission_summary=f"role ids per level: {level_counts} owners={len(permission_roles.owner_user_ids)}",
            admin_channel_ids=admin_channel_ids,
        ),
    )
