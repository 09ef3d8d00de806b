from __future__ import annotations

import asyncio
import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from autorole import store
from autorole.conditions import MemberProfile
from autorole.conditions import role_config_from_row
from autorole.service import AssignmentOutcome
from autorole.service import assign_eligible_roles
from autorole.service import handle_member_join
from autorole.service import profile_from_member
from db.migrate import open_database

NOW = datetime(2024, 2, 15, tzinfo=timezone.utc)


def _role(role_id: str, name: str, conditions: dict | None = None):
    return role_config_from_row({"role_id": role_id, "role_name": name, "conditions": conditions or {}})


class AssignEligibleRolesTests(unittest.IsolatedAsyncioTestCase):
    async def test_empty_role_list_returns_empty(self):
        async def grant(role_id):
            raise AssertionError("grant should not be called")

        profile = MemberProfile(account_created_at=NOW, username="x")
        self.assertEqual(await assign_eligible_roles(profile, [], grant, now=NOW), [])

    async def test_grant_failure_is_isolated_per_role(self):
        calls: list[str] = []

        async def grant(role_id):
            calls.append(role_id)
            if role_id == "2":
                raise RuntimeError("Missing Permissions")
            return None

        profile = MemberProfile(account_created_at=NOW - timedelta(days=400), username="alice")
        roles = [_role("1", "First"), _role("2", "Second"), _role("3", "Third")]
        outcomes = await assign_eligible_roles(profile, roles, grant, now=NOW)

        self.assertEqual(calls, ["1", "2", "3"])
        self.assertEqual([o.role_id for o in outcomes], ["1", "2", "3"])
        self.assertTrue(outcomes[0].granted)
        self.assertTrue(outcomes[1].eligible)
        self.assertFalse(outcomes[1].granted)
        self.assertEqual(outcomes[1].failure_reason, "Missing Permissions")
        self.assertTrue(outcomes[2].granted)

    async def test_returned_failure_reason_is_recorded(self):
        async def grant(role_id):
            return "Role not found"

        profile = MemberProfile(account_created_at=NOW, username="bob")
        outcomes = await assign_eligible_roles(profile, [_role("9", "Ghost")], grant, now=NOW)
        self.assertEqual(outcomes, [AssignmentOutcome("9", "Ghost", eligible=True, failure_reason="Role not found")])

    async def test_ineligible_roles_are_not_granted(self):
        calls: list[str] = []

        async def grant(role_id):
            calls.append(role_id)
            return None

        profile = MemberProfile(account_created_at=datetime(2023, 1, 15, tzinfo=timezone.utc), username="carol")
        roles = [
            _role("a", "Veteran", {"account_age": {"value": "365", "operator": ">"}}),
            _role("b", "Class of 2023", {"creation_year": {"value": "2023", "operator": "="}}),
            _role("c", "New Wave", {"creation_year": {"value": "2024", "operator": ">="}}),
        ]
        outcomes = await assign_eligible_roles(profile, roles, grant, now=NOW)

        self.assertEqual(calls, ["a", "b"])
        self.assertEqual([o.eligible for o in outcomes], [True, True, False])
        self.assertIsNone(outcomes[2].failure_reason)
        self.assertFalse(outcomes[2].granted)


class _FakeMember:
    def __init__(self, *, member_id: int, name: str, created_at: datetime, roles: dict[int, object], fail_ids=(), bot=False):
        self.id = member_id
        self.name = name
        self.created_at = created_at
        self.bot = bot
        self.added: list[object] = []
        self._fail_ids = set(fail_ids)
        self.guild = SimpleNamespace(get_role=lambda rid: roles.get(int(rid)))

    async def add_roles(self, role, reason=None):
        if role.id in self._fail_ids:
            raise RuntimeError("Missing Access")
        self.added.append(role)


class HandleMemberJoinTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.conn = open_database(":memory:")
        self.lock = asyncio.Lock()
        self.roles = {
            111: SimpleNamespace(id=111, name="Newcomer"),
            222: SimpleNamespace(id=222, name="Veteran"),
            333: SimpleNamespace(id=333, name="Locked"),
        }

    def tearDown(self):
        self.conn.close()

    async def _join(self, member, **kwargs):
        return await handle_member_join(
            member,
            db_lock=self.lock,
            db_conn=self.conn,
            get_auto_role_enabled_sync=store.get_auto_role_enabled_sync,
            list_auto_roles_sync=store.list_auto_roles_sync,
            record_join_outcomes_sync=store.record_join_outcomes_sync,
            utc_now=lambda: NOW,
            **kwargs,
        )

    async def test_disabled_feature_grants_nothing(self):
        store.add_auto_role_sync(self.conn, "111", "Newcomer")
        member = _FakeMember(member_id=1, name="dave", created_at=NOW, roles=self.roles)
        self.assertEqual(await self._join(member), [])
        self.assertEqual(member.added, [])
        self.assertEqual(store.fetch_recent_join_outcomes_sync(self.conn), [])

    async def test_grants_eligible_roles_and_records_outcomes(self):
        store.set_auto_role_enabled_sync(self.conn, True)
        store.add_auto_role_sync(self.conn, "111", "Newcomer")
        store.add_auto_role_sync(self.conn, "222", "Veteran", {"account_age": {"value": "365", "operator": ">="}})
        store.add_auto_role_sync(self.conn, "333", "Locked")
        store.add_auto_role_sync(self.conn, "444", "Deleted")

        member = _FakeMember(
            member_id=77,
            name="erin",
            created_at=NOW - timedelta(days=10),
            roles=self.roles,
            fail_ids={333},
        )
        outcomes = await self._join(member)

        self.assertEqual([r.id for r in member.added], [111])
        by_id = {o.role_id: o for o in outcomes}
        self.assertTrue(by_id["111"].granted)
        self.assertFalse(by_id["222"].eligible)
        self.assertEqual(by_id["333"].failure_reason, "Missing Access")
        self.assertEqual(by_id["444"].failure_reason, "Role not found")

        logged = store.fetch_recent_join_outcomes_sync(self.conn, limit=10)
        self.assertEqual(len(logged), 4)
        self.assertTrue(all(row["member_id"] == 77 for row in logged))
        self.assertEqual(sum(1 for row in logged if row["granted"]), 1)

    async def test_skip_bots_flag(self):
        store.set_auto_role_enabled_sync(self.conn, True)
        store.add_auto_role_sync(self.conn, "111", "Newcomer")
        member = _FakeMember(member_id=5, name="helperbot", created_at=NOW, roles=self.roles, bot=True)
        self.assertEqual(await self._join(member, skip_bots=True), [])
        self.assertEqual(member.added, [])
        await self._join(member)
        self.assertEqual([r.id for r in member.added], [111])

    async def test_profile_from_member(self):
        member = _FakeMember(member_id=5, name="frank", created_at=NOW, roles={})
        self.assertEqual(profile_from_member(member), MemberProfile(account_created_at=NOW, username="frank"))


if __name__ == "__main__":
    unittest.main()
