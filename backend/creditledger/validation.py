from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable

from flask import current_app

from creditledger.errors import ValidationError
from creditledger.time_utils import parse_iso_date, parse_iso_datetime


# Maximum single amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 999_999_999

ALL_BRANCHES = "ALL"


def parse_cents(value: Any, field: str) -> int:
    """
    Strict integer coercion for money fields.

    Rejects floats, booleans, decimals and scientific notation so that
    amounts are never silently truncated.
    """
    if value is None:
        raise ValidationError(f"{field} is required")

    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        cents = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            cents = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS}")
    return cents


def require_positive_cents(value: Any, field: str = "amount_cents") -> int:
    cents = parse_cents(value, field)
    if cents <= 0:
        raise ValidationError(f"{field} must be positive")
    return cents


def require_non_negative_cents(value: Any, field: str) -> int:
    cents = parse_cents(value, field)
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    return cents


def require_positive_quantity(value: Any, field: str = "quantity") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value <= 0:
        raise ValidationError(f"{field} must be positive")
    return value


def require_text(value: Any, field: str, max_length: int = 255) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def optional_text(value: Any, field: str, max_length: int = 255) -> str | None:
    if value is None or not str(value).strip():
        return None
    return require_text(value, field, max_length)


def require_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    allowed = list(choices)
    normalized = str(value).strip().upper() if value is not None else ""
    if normalized not in allowed:
        raise ValidationError(f"{field} must be one of {allowed}")
    return normalized


def configured_branches() -> list[str]:
    return list(current_app.config["BRANCHES"])


def require_branch(value: Any, field: str = "branch") -> str:
    """A physical branch code from config. ALL is rejected here."""
    return require_choice(value, field, configured_branches())


def resolve_branch(value: Any, actor_branch: str | None) -> str:
    """
    Pick the branch a record is booked against.

    Explicit value wins; otherwise the actor's branch, falling back to
    DEFAULT_BRANCH when the actor works across ALL branches.
    """
    if value is not None and str(value).strip():
        return require_branch(value)
    if actor_branch and actor_branch.upper() != ALL_BRANCHES:
        return require_branch(actor_branch)
    return require_branch(current_app.config["DEFAULT_BRANCH"])


def optional_datetime(value: Any, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime")
    raise ValidationError(f"{field} must be a datetime")


def optional_date(value: Any, field: str) -> date | None:
    if value is None or (isinstance(value, date) and not isinstance(value, datetime)):
        return value
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        try:
            return parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 date")
    raise ValidationError(f"{field} must be a date")
