from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Union


CONDITION_KINDS = (
    "account_age",
    "creation_month",
    "creation_year",
    "username_contains",
    "username_regex",
)
NUMERIC_KINDS = {"account_age", "creation_year"}
OPERATORS = (">", "<", "=", ">=", "<=")
DEFAULT_OPERATOR = "="

SECONDS_PER_DAY = 86400


class ConditionValidationError(ValueError):
    """Raised when an admin-supplied condition cannot be stored."""


@dataclass(frozen=True)
class MemberProfile:
    account_created_at: datetime
    username: str


@dataclass(frozen=True)
class AccountAgeCondition:
    threshold_days: float
    operator: str
    kind: str = "account_age"


@dataclass(frozen=True)
class CreationMonthCondition:
    month: int
    kind: str = "creation_month"


@dataclass(frozen=True)
class CreationYearCondition:
    year: int
    operator: str
    kind: str = "creation_year"


@dataclass(frozen=True)
class UsernameContainsCondition:
    needle: str
    kind: str = "username_contains"


@dataclass(frozen=True)
class UsernameRegexCondition:
    pattern: re.Pattern
    kind: str = "username_regex"


@dataclass(frozen=True)
class InvalidCondition:
    # stored data that no longer parses; always fails
    kind: str
    raw_value: Any
    reason: str


@dataclass(frozen=True)
class UnknownCondition:
    # kinds this build does not understand; always passes
    kind: str
    raw_value: Any


Condition = Union[
    AccountAgeCondition,
    CreationMonthCondition,
    CreationYearCondition,
    UsernameContainsCondition,
    UsernameRegexCondition,
    InvalidCondition,
    UnknownCondition,
]


@dataclass(frozen=True)
class RoleConfig:
    role_id: str
    role_name: str
    conditions: dict[str, Condition]
    # kinds that hit UnknownCondition/InvalidCondition while parsing
    warnings: tuple[str, ...] = ()


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_number(raw: Any) -> float | None:
    try:
        num = float(str(raw).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(num):
        return None
    return num


def _parse_int(raw: Any) -> int | None:
    num = _parse_number(raw)
    if num is None or not num.is_integer():
        return None
    return int(num)


def _normalize_operator(raw: Any) -> str | None:
    op = str(raw or "").strip()
    if not op:
        return DEFAULT_OPERATOR
    return op if op in OPERATORS else None


def compare(left: float, right: float, operator: str) -> bool:
    if operator == ">":
        return left > right
    if operator == "<":
        return left < right
    if operator == ">=":
        return left >= right
    if operator == "<=":
        return left <= right
    if operator == "=":
        return left == right
    return False


def parse_condition(kind: str, payload: Any) -> Condition:
    """Turn one stored ``{"value": ..., "operator": ...}`` entry into a variant.

    Never raises. Stored values that fail to parse come back as
    ``InvalidCondition`` so the role stays configured but cannot match.
    """
    if isinstance(payload, Mapping):
        value = payload.get("value")
        raw_operator = payload.get("operator")
    else:
        value = payload
        raw_operator = None

    if kind not in CONDITION_KINDS:
        return UnknownCondition(kind=kind, raw_value=value)

    if value is None:
        return InvalidCondition(kind=kind, raw_value=value, reason="missing value")

    if kind == "account_age":
        threshold = _parse_number(value)
        operator = _normalize_operator(raw_operator)
        if threshold is None:
            return InvalidCondition(kind=kind, raw_value=value, reason="value is not a finite number")
        if operator is None:
            return InvalidCondition(kind=kind, raw_value=value, reason=f"unknown operator {raw_operator!r}")
        return AccountAgeCondition(threshold_days=threshold, operator=operator)

    if kind == "creation_month":
        month = _parse_int(value)
        if month is None:
            return InvalidCondition(kind=kind, raw_value=value, reason="value is not an integer")
        if not 1 <= month <= 12:
            return InvalidCondition(kind=kind, raw_value=value, reason="month out of range")
        return CreationMonthCondition(month=month)

    if kind == "creation_year":
        year = _parse_int(value)
        operator = _normalize_operator(raw_operator)
        if year is None:
            return InvalidCondition(kind=kind, raw_value=value, reason="value is not an integer")
        if operator is None:
            return InvalidCondition(kind=kind, raw_value=value, reason=f"unknown operator {raw_operator!r}")
        return CreationYearCondition(year=year, operator=operator)

    if kind == "username_contains":
        return UsernameContainsCondition(needle=str(value))

    try:
        pattern = re.compile(str(value))
    except re.error as exc:
        return InvalidCondition(kind=kind, raw_value=value, reason=f"regex does not compile: {exc}")
    return UsernameRegexCondition(pattern=pattern)


def parse_conditions(raw: Any) -> tuple[dict[str, Condition], list[str]]:
    conditions: dict[str, Condition] = {}
    warnings: list[str] = []
    if not isinstance(raw, Mapping):
        return (conditions, warnings)
    for kind, payload in raw.items():
        cond = parse_condition(str(kind), payload)
        if isinstance(cond, UnknownCondition):
            warnings.append(f"unknown condition kind {cond.kind!r} ignored")
        elif isinstance(cond, InvalidCondition):
            warnings.append(f"{cond.kind}: {cond.reason}; condition will never match")
        conditions[str(kind)] = cond
    return (conditions, warnings)


def role_config_from_row(row: Mapping[str, Any]) -> RoleConfig:
    conditions, warnings = parse_conditions(row.get("conditions") or {})
    return RoleConfig(
        role_id=str(row.get("role_id") or ""),
        role_name=str(row.get("role_name") or ""),
        conditions=conditions,
        warnings=tuple(warnings),
    )


def account_age_days(created_at: datetime, now: datetime) -> int:
    elapsed = (_as_utc(now) - _as_utc(created_at)).total_seconds()
    return int(elapsed // SECONDS_PER_DAY)


def condition_passes(condition: Condition, profile: MemberProfile, now: datetime) -> bool:
    if isinstance(condition, AccountAgeCondition):
        return compare(account_age_days(profile.account_created_at, now), condition.threshold_days, condition.operator)
    if isinstance(condition, CreationMonthCondition):
        return _as_utc(profile.account_created_at).month == condition.month
    if isinstance(condition, CreationYearCondition):
        return compare(_as_utc(profile.account_created_at).year, condition.year, condition.operator)
    if isinstance(condition, UsernameContainsCondition):
        return condition.needle.lower() in (profile.username or "").lower()
    if isinstance(condition, UsernameRegexCondition):
        return condition.pattern.search(profile.username or "") is not None
    if isinstance(condition, UnknownCondition):
        return True
    return False


def check_conditions(
    profile: MemberProfile,
    conditions: Mapping[str, Condition],
    now: datetime,
) -> list[tuple[str, bool]]:
    return [(kind, condition_passes(cond, profile, now)) for kind, cond in conditions.items()]


def evaluate(profile: MemberProfile, conditions: Mapping[str, Condition], now: datetime) -> bool:
    for cond in conditions.values():
        if not condition_passes(cond, profile, now):
            return False
    return True


def parse_condition_input(kind: str, value: str | None, operator: str | None) -> dict[str, str]:
    """Validate an admin's condition input and return the dict to store.

    Raises ConditionValidationError with a message fit to show the admin.
    """
    kind = (kind or "").strip().lower()
    if kind not in CONDITION_KINDS:
        raise ConditionValidationError(
            f"Unknown condition type `{kind}`. Use one of: {', '.join(CONDITION_KINDS)}, clear."
        )

    text = (value or "").strip()
    if not text:
        raise ConditionValidationError("A condition value is required for this condition type.")

    op = (operator or "").strip()
    if op and op not in OPERATORS:
        raise ConditionValidationError(f"Unknown operator `{op}`. Use one of: {' '.join(OPERATORS)}")

    if kind in NUMERIC_KINDS:
        if not op:
            raise ConditionValidationError("An operator is required for numeric conditions.")
        if _parse_number(text) is None:
            raise ConditionValidationError("The condition value must be a number for this condition type.")
        if kind == "creation_year" and _parse_int(text) is None:
            raise ConditionValidationError("The creation year must be a whole number.")
    elif kind == "creation_month":
        month = _parse_int(text)
        if month is None or not 1 <= month <= 12:
            raise ConditionValidationError("The creation month must be a number from 1 to 12.")
    elif kind == "username_regex":
        try:
            re.compile(text)
        except re.error as exc:
            raise ConditionValidationError(f"That regex does not compile: {exc}") from exc

    return {"value": text, "operator": op or DEFAULT_OPERATOR}
