from __future__ import annotations

import copy
import unittest
from datetime import datetime, timedelta, timezone

from autorole.conditions import AccountAgeCondition
from autorole.conditions import ConditionValidationError
from autorole.conditions import CreationMonthCondition
from autorole.conditions import InvalidCondition
from autorole.conditions import MemberProfile
from autorole.conditions import UnknownCondition
from autorole.conditions import UsernameRegexCondition
from autorole.conditions import account_age_days
from autorole.conditions import check_conditions
from autorole.conditions import evaluate
from autorole.conditions import parse_condition
from autorole.conditions import parse_condition_input
from autorole.conditions import parse_conditions
from autorole.conditions import role_config_from_row

NOW = datetime(2024, 2, 15, tzinfo=timezone.utc)


def _profile(created_at: datetime, username: str = "someone") -> MemberProfile:
    return MemberProfile(account_created_at=created_at, username=username)


def _conds(raw: dict):
    conditions, _warnings = parse_conditions(raw)
    return conditions


class EvaluateBasicsTests(unittest.TestCase):
    def test_empty_conditions_always_pass(self):
        for created in (NOW, NOW - timedelta(days=5000), NOW + timedelta(days=3)):
            self.assertTrue(evaluate(_profile(created, ""), {}, NOW))

    def test_account_age_boundary_is_whole_days(self):
        conds = _conds({"account_age": {"value": "30", "operator": ">="}})
        self.assertTrue(evaluate(_profile(NOW - timedelta(days=30)), conds, NOW))
        self.assertFalse(evaluate(_profile(NOW - timedelta(days=29)), conds, NOW))
        # 29 days and 23 hours still floors to 29
        self.assertFalse(evaluate(_profile(NOW - timedelta(days=29, hours=23)), conds, NOW))

    def test_account_age_days_floors(self):
        self.assertEqual(account_age_days(NOW - timedelta(days=3, hours=23, minutes=59), NOW), 3)
        self.assertEqual(account_age_days(NOW - timedelta(days=4), NOW), 4)

    def test_account_age_equality_is_exact(self):
        conds = _conds({"account_age": {"value": "10", "operator": "="}})
        self.assertTrue(evaluate(_profile(NOW - timedelta(days=10, hours=5)), conds, NOW))
        self.assertFalse(evaluate(_profile(NOW - timedelta(days=11)), conds, NOW))

    def test_each_operator(self):
        created = NOW - timedelta(days=100)
        cases = {
            ">": ("99", "100"),
            "<": ("101", "100"),
            ">=": ("100", "101"),
            "<=": ("100", "99"),
            "=": ("100", "99"),
        }
        for op, (passing, failing) in cases.items():
            with self.subTest(op=op):
                self.assertTrue(evaluate(_profile(created), _conds({"account_age": {"value": passing, "operator": op}}), NOW))
                self.assertFalse(evaluate(_profile(created), _conds({"account_age": {"value": failing, "operator": op}}), NOW))

    def test_missing_operator_defaults_to_equality(self):
        cond = parse_condition("creation_year", {"value": "2023"})
        self.assertEqual(cond.operator, "=")


class CreationDateTests(unittest.TestCase):
    def test_creation_month_straddles_month_boundary_in_utc(self):
        conds = _conds({"creation_month": {"value": "6", "operator": "="}})
        june_end = datetime(2022, 6, 30, 23, 59, tzinfo=timezone.utc)
        july_start = datetime(2022, 7, 1, 0, 1, tzinfo=timezone.utc)
        self.assertTrue(evaluate(_profile(june_end), conds, NOW))
        self.assertFalse(evaluate(_profile(july_start), conds, NOW))

    def test_creation_month_uses_utc_not_local_offset(self):
        conds = _conds({"creation_month": {"value": "6"}})
        # 01:00 on July 1 at +02:00 is still June 30 in UTC
        local = datetime(2022, 7, 1, 1, 0, tzinfo=timezone(timedelta(hours=2)))
        self.assertTrue(evaluate(_profile(local), conds, NOW))

    def test_creation_month_ignores_operator(self):
        conds = _conds({"creation_month": {"value": "6", "operator": ">"}})
        self.assertTrue(evaluate(_profile(datetime(2022, 6, 1, tzinfo=timezone.utc)), conds, NOW))
        self.assertFalse(evaluate(_profile(datetime(2022, 8, 1, tzinfo=timezone.utc)), conds, NOW))

    def test_naive_timestamps_are_treated_as_utc(self):
        conds = _conds({"creation_month": {"value": "12"}})
        self.assertTrue(evaluate(_profile(datetime(2021, 12, 31, 23, 30)), conds, NOW))

    def test_creation_year_compares_with_operator(self):
        created = datetime(2023, 1, 15, tzinfo=timezone.utc)
        self.assertTrue(evaluate(_profile(created), _conds({"creation_year": {"value": "2023", "operator": "="}}), NOW))
        self.assertTrue(evaluate(_profile(created), _conds({"creation_year": {"value": "2024", "operator": "<"}}), NOW))
        self.assertFalse(evaluate(_profile(created), _conds({"creation_year": {"value": "2024", "operator": ">="}}), NOW))


class UsernameTests(unittest.TestCase):
    def test_contains_is_case_insensitive(self):
        conds = _conds({"username_contains": {"value": "Mod", "operator": "="}})
        for name in ("Moderator", "modding", "XModX"):
            self.assertTrue(evaluate(_profile(NOW, name), conds, NOW), name)
        self.assertFalse(evaluate(_profile(NOW, "member"), conds, NOW))

    def test_regex_is_case_sensitive_search(self):
        conds = _conds({"username_regex": {"value": "^Bot[0-9]+"}})
        self.assertTrue(evaluate(_profile(NOW, "Bot42"), conds, NOW))
        self.assertFalse(evaluate(_profile(NOW, "bot42"), conds, NOW))
        conds = _conds({"username_regex": {"value": "[0-9]{3}"}})
        self.assertTrue(evaluate(_profile(NOW, "user123x"), conds, NOW))

    def test_invalid_regex_fails_closed(self):
        conds = _conds({"username_regex": {"value": "[abc"}})
        self.assertIsInstance(conds["username_regex"], InvalidCondition)
        self.assertFalse(evaluate(_profile(NOW, "abc"), conds, NOW))

    def test_valid_regex_is_compiled_once(self):
        cond = parse_condition("username_regex", {"value": "x+"})
        self.assertIsInstance(cond, UsernameRegexCondition)
        self.assertEqual(cond.pattern.pattern, "x+")


class FailClosedTests(unittest.TestCase):
    def test_unparsable_numbers_fail_closed(self):
        for bad in ("abc", "inf", "nan", "", None):
            with self.subTest(value=bad):
                conds = _conds({"account_age": {"value": bad, "operator": ">"}})
                self.assertIsInstance(conds["account_age"], InvalidCondition)
                self.assertFalse(evaluate(_profile(NOW - timedelta(days=9999)), conds, NOW))

    def test_fractional_month_fails_closed(self):
        conds = _conds({"creation_month": {"value": "6.5"}})
        self.assertFalse(evaluate(_profile(datetime(2022, 6, 1, tzinfo=timezone.utc)), conds, NOW))

    def test_month_out_of_range_is_flagged(self):
        for bad in ("0", "13"):
            with self.subTest(value=bad):
                conditions, warnings = parse_conditions({"creation_month": {"value": bad}})
                self.assertIsInstance(conditions["creation_month"], InvalidCondition)
                self.assertEqual(conditions["creation_month"].reason, "month out of range")
                self.assertEqual(len(warnings), 1)
                self.assertFalse(evaluate(_profile(datetime(2022, 1, 1, tzinfo=timezone.utc)), conditions, NOW))

    def test_unknown_operator_fails_closed(self):
        conds = _conds({"account_age": {"value": "1", "operator": "!="}})
        self.assertIsInstance(conds["account_age"], InvalidCondition)
        self.assertFalse(evaluate(_profile(NOW - timedelta(days=5)), conds, NOW))

    def test_unknown_kind_is_vacuous_and_flagged(self):
        conditions, warnings = parse_conditions({"has_avatar": {"value": "yes"}})
        self.assertIsInstance(conditions["has_avatar"], UnknownCondition)
        self.assertTrue(evaluate(_profile(NOW), conditions, NOW))
        self.assertEqual(len(warnings), 1)
        self.assertIn("has_avatar", warnings[0])

    def test_non_mapping_blob_parses_empty(self):
        conditions, warnings = parse_conditions(["not", "a", "dict"])
        self.assertEqual(conditions, {})
        self.assertEqual(warnings, [])


class CombinedTests(unittest.TestCase):
    def test_multi_condition_and(self):
        conds = _conds(
            {
                "account_age": {"value": "30", "operator": ">="},
                "username_contains": {"value": "vip", "operator": "="},
            }
        )
        old = NOW - timedelta(days=40)
        young = NOW - timedelta(days=10)
        self.assertTrue(evaluate(_profile(old, "TheVIP"), conds, NOW))
        self.assertFalse(evaluate(_profile(young, "TheVIP"), conds, NOW))
        self.assertFalse(evaluate(_profile(old, "regular"), conds, NOW))
        self.assertFalse(evaluate(_profile(young, "regular"), conds, NOW))

    def test_check_conditions_reports_each_kind_in_order(self):
        conds = _conds(
            {
                "username_contains": {"value": "vip"},
                "account_age": {"value": "30", "operator": ">="},
            }
        )
        results = check_conditions(_profile(NOW - timedelta(days=40), "nobody"), conds, NOW)
        self.assertEqual(results, [("username_contains", False), ("account_age", True)])

    def test_repeat_evaluation_is_stable_and_does_not_mutate(self):
        raw = {"account_age": {"value": "30", "operator": ">="}, "username_regex": {"value": "^a"}}
        conds = _conds(raw)
        before = copy.copy(conds)
        profile = _profile(NOW - timedelta(days=31), "alice")
        first = evaluate(profile, conds, NOW)
        second = evaluate(profile, conds, NOW)
        self.assertEqual(first, second)
        self.assertEqual(conds, before)
        self.assertEqual(raw["account_age"], {"value": "30", "operator": ">="})

    def test_end_to_end_scenario(self):
        profile = _profile(datetime(2023, 1, 15, tzinfo=timezone.utc))
        self.assertEqual(account_age_days(profile.account_created_at, NOW), 396)
        role_a = role_config_from_row({"role_id": "1", "role_name": "A", "conditions": {"account_age": {"value": "365", "operator": ">"}}})
        role_b = role_config_from_row({"role_id": "2", "role_name": "B", "conditions": {"creation_year": {"value": "2023", "operator": "="}}})
        role_c = role_config_from_row({"role_id": "3", "role_name": "C", "conditions": {"creation_year": {"value": "2024", "operator": ">="}}})
        self.assertTrue(evaluate(profile, role_a.conditions, NOW))
        self.assertTrue(evaluate(profile, role_b.conditions, NOW))
        self.assertFalse(evaluate(profile, role_c.conditions, NOW))

    def test_role_config_from_row_collects_warnings(self):
        cfg = role_config_from_row(
            {"role_id": 55, "role_name": "Odd", "conditions": {"account_age": {"value": "x", "operator": ">"}, "zodiac": {"value": "leo"}}}
        )
        self.assertEqual(cfg.role_id, "55")
        self.assertEqual(len(cfg.warnings), 2)
        self.assertIsInstance(cfg.conditions["account_age"], InvalidCondition)


class ConditionInputValidationTests(unittest.TestCase):
    def test_numeric_kinds_need_operator_and_number(self):
        with self.assertRaises(ConditionValidationError):
            parse_condition_input("account_age", "30", None)
        with self.assertRaises(ConditionValidationError):
            parse_condition_input("account_age", "thirty", ">=")
        with self.assertRaises(ConditionValidationError):
            parse_condition_input("creation_year", "2023.5", "=")
        self.assertEqual(parse_condition_input("account_age", " 30 ", ">="), {"value": "30", "operator": ">="})

    def test_month_must_be_in_range(self):
        for bad in ("0", "13", "June", "6.5"):
            with self.subTest(value=bad):
                with self.assertRaises(ConditionValidationError):
                    parse_condition_input("creation_month", bad, None)
        self.assertEqual(parse_condition_input("creation_month", "6", None), {"value": "6", "operator": "="})

    def test_regex_must_compile(self):
        with self.assertRaises(ConditionValidationError):
            parse_condition_input("username_regex", "[abc", None)
        self.assertEqual(parse_condition_input("username_regex", "^a.*z$", None)["value"], "^a.*z$")

    def test_value_required_and_kind_known(self):
        with self.assertRaises(ConditionValidationError):
            parse_condition_input("username_contains", "   ", None)
        with self.assertRaises(ConditionValidationError):
            parse_condition_input("avatar_color", "red", None)
        with self.assertRaises(ConditionValidationError):
            parse_condition_input("account_age", "3", "!=")

    def test_validated_input_parses_into_typed_variant(self):
        stored = parse_condition_input("account_age", "7", ">")
        cond = parse_condition("account_age", stored)
        self.assertEqual(cond, AccountAgeCondition(threshold_days=7.0, operator=">"))
        self.assertEqual(parse_condition("creation_month", parse_condition_input("creation_month", "06", None)), CreationMonthCondition(month=6))


if __name__ == "__main__":
    unittest.main()
