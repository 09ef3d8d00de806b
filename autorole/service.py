from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence

from autorole.conditions import MemberProfile
from autorole.conditions import RoleConfig
from autorole.conditions import evaluate
from autorole.conditions import role_config_from_row

GrantFunc = Callable[[str], Awaitable[str | None]]


@dataclass(frozen=True)
class AssignmentOutcome:
    role_id: str
    role_name: str
    eligible: bool
    failure_reason: str | None = None

    @property
    def granted(self) -> bool:
        return self.eligible and self.failure_reason is None


async def assign_eligible_roles(
    profile: MemberProfile,
    role_configs: Sequence[RoleConfig],
    grant_func: GrantFunc,
    *,
    now: datetime,
) -> list[AssignmentOutcome]:
    """Evaluate each role in order and grant the ones the member qualifies for.

    grant_func returns None on success or a failure reason. A raised exception
    counts as a failure for that role only; the pass always runs to the end.
    """
    outcomes: list[AssignmentOutcome] = []
    for cfg in role_configs:
        if not evaluate(profile, cfg.conditions, now):
            outcomes.append(AssignmentOutcome(cfg.role_id, cfg.role_name, eligible=False))
            continue
        try:
            failure = await grant_func(cfg.role_id)
        except Exception as e:
            failure = str(e) or type(e).__name__
        outcomes.append(AssignmentOutcome(cfg.role_id, cfg.role_name, eligible=True, failure_reason=failure))
    return outcomes


def profile_from_member(member: Any) -> MemberProfile:
    created_at = getattr(member, "created_at", None) or datetime.now(timezone.utc)
    return MemberProfile(
        account_created_at=created_at,
        username=str(getattr(member, "name", "") or ""),
    )


def load_role_snapshot(rows: list[dict]) -> list[RoleConfig]:
    configs: list[RoleConfig] = []
    for row in rows:
        cfg = role_config_from_row(row)
        for warning in cfg.warnings:
            print(f"[AutoRole] role {cfg.role_name} ({cfg.role_id}): {warning}")
        configs.append(cfg)
    return configs


async def handle_member_join(
    member: Any,
    *,
    db_lock,
    db_conn,
    get_auto_role_enabled_sync,
    list_auto_roles_sync,
    record_join_outcomes_sync,
    utc_now: Callable[[], datetime],
    skip_bots: bool = False,
    log_retention: int = 0,
) -> list[AssignmentOutcome]:
    if skip_bots and getattr(member, "bot", False):
        return []

    async with db_lock:
        enabled = await asyncio.to_thread(get_auto_role_enabled_sync, db_conn)
        if not enabled:
            return []
        rows = await asyncio.to_thread(list_auto_roles_sync, db_conn)
    if not rows:
        return []

    role_configs = load_role_snapshot(rows)
    profile = profile_from_member(member)

    async def grant(role_id: str) -> str | None:
        try:
            role = member.guild.get_role(int(role_id))
        except ValueError:
            role = None
        if role is None:
            return "Role not found"
        await member.add_roles(role, reason="Auto-role on join")
        return None

    outcomes = await assign_eligible_roles(profile, role_configs, grant, now=utc_now())

    granted = [o for o in outcomes if o.granted]
    failed = [o for o in outcomes if o.failure_reason is not None]
    member_tag = f"{getattr(member, 'name', '?')} ({getattr(member, 'id', '?')})"
    print(
        f"[AutoRole] join {member_tag}: granted={len(granted)} "
        f"ineligible={sum(1 for o in outcomes if not o.eligible)} failed={len(failed)}"
    )
    for o in failed:
        print(f"[AutoRole] failed to grant {o.role_name} ({o.role_id}) to {member_tag}: {o.failure_reason}")

    async with db_lock:
        await asyncio.to_thread(
            record_join_outcomes_sync,
            db_conn,
            member_id=int(getattr(member, "id", 0) or 0),
            outcomes=outcomes,
            keep_latest=log_retention,
        )
    return outcomes
