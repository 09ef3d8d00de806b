from __future__ import annotations

from typing import Any, Mapping


MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

CONDITION_KIND_LABELS = {
    "account_age": "Account Age",
    "creation_month": "Account Creation Month",
    "creation_year": "Account Creation Year",
    "username_contains": "Username Contains",
    "username_regex": "Username Regular Expression",
}

OPERATOR_TEXT = {
    ">": "greater than",
    "<": "less than",
    "=": "equal to",
    ">=": "greater than or equal to",
    "<=": "less than or equal to",
}


def condition_kind_label(kind: str) -> str:
    return CONDITION_KIND_LABELS.get(kind, kind)


def operator_text(operator: str | None) -> str:
    op = str(operator or "")
    return OPERATOR_TEXT.get(op, op)


def month_name(value: Any) -> str:
    try:
        month = int(str(value).strip())
    except (TypeError, ValueError):
        return str(value)
    if 1 <= month <= 12:
        return MONTH_NAMES[month - 1]
    return str(month)


def describe_condition(kind: str, value: Any, operator: str | None) -> str:
    if kind == "account_age":
        return f"Account must be {operator_text(operator)} {value} days old"
    if kind == "creation_month":
        return f"Account must be created in month: {month_name(value)}"
    if kind == "creation_year":
        return f"Account creation year must be {operator_text(operator)} {value}"
    if kind == "username_contains":
        return f'Username must contain: "{value}"'
    if kind == "username_regex":
        return f"Username must match regex: {value}"
    return f"{kind}: {value}"


def describe_stored_conditions(conditions: Mapping[str, Any]) -> list[tuple[str, str]]:
    """(label, description) pairs for a stored conditions blob, in stored order."""
    out: list[tuple[str, str]] = []
    for kind, payload in (conditions or {}).items():
        if isinstance(payload, Mapping):
            value, operator = payload.get("value"), payload.get("operator")
        else:
            value, operator = payload, None
        out.append((condition_kind_label(kind), describe_condition(kind, value, operator)))
    return out
