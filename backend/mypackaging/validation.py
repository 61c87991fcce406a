"""
Request payload helpers.

Amounts arrive either as integer cents (`<field>_cents`) or as a decimal
amount (`<field>`, number or string). Decimal amounts are converted with
money.to_cents at this edge; nothing past the routes sees a float.
"""

from __future__ import annotations

from typing import Any

from flask import request

from .errors import ValidationError
from .money import to_cents

# Maximum amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def strict_int(value: Any, field: str) -> int:
    """Integer input; rejects floats, decimals in strings and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def amount_cents(data: dict, field: str, default: int | None = 0, *, allow_negative: bool = False) -> int | None:
    """
    Read `<field>_cents` (integer cents) or `<field>` (decimal amount).

    Returns `default` when neither is present.
    """
    cents_key = f"{field}_cents"
    if data.get(cents_key) not in (None, ""):
        cents = strict_int(data[cents_key], cents_key)
    elif data.get(field) not in (None, ""):
        try:
            cents = to_cents(data[field])
        except ValueError:
            raise ValidationError(f"{field} must be an amount")
    else:
        return default

    if cents < 0 and not allow_negative:
        raise ValidationError(f"{field} cannot be negative")
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} is too large")
    return cents


def optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return strict_int(value, field)


def query_int(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    return strict_int(raw, name)
