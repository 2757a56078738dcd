"""
Request parsing helpers shared by the route modules.

Routes stay thin: they pull typed values out of the query string or JSON body
with these helpers and hand them to a service. Bad input raises the engine's
ValidationError, which routes turn into a 400 like any other LedgerError.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Any

from flask import request

from .services.errors import ValidationError
from .time_utils import parse_iso_date, parse_iso_datetime


def as_int(value: Any, field: str, *, required: bool = False) -> int | None:
    """Strict integer: ints and plain digit strings only (no floats, no 1e3)."""
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", details={"field": field})
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{field} must be an integer", details={"field": field, "value": str(value)})


def as_bool(value: Any, field: str) -> bool | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    raise ValidationError(f"{field} must be a boolean", details={"field": field, "value": str(value)})


def as_date(value: Any, field: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)", details={"field": field, "value": str(value)})


def as_datetime(value: Any, field: str) -> datetime | date | None:
    """Full ISO timestamps are normalized to UTC; a bare date stays a date."""
    if value is None or value == "" or isinstance(value, (date, datetime)):
        return value or None
    text = str(value)
    try:
        if len(text.strip()) <= 10:
            return parse_iso_date(text)
        return parse_iso_datetime(text)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date or datetime", details={"field": field, "value": text})


def query_int(name: str, default: int | None = None) -> int | None:
    value = as_int(request.args.get(name), name)
    return default if value is None else value


def query_bool(name: str) -> bool | None:
    return as_bool(request.args.get(name), name)


def query_date(name: str) -> date | None:
    return as_date(request.args.get(name), name)


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


def items_payload(data: dict, key: str = "items") -> list[dict]:
    """Normalize a list of line dicts, coercing integer id/quantity fields."""
    items = data.get(key)
    if not isinstance(items, list) or not items:
        raise ValidationError(f"{key} are required", details={"field": key})
    normalized = []
    for idx, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError("each item must be an object", details={"line": idx})
        row = dict(item)
        for int_field in ("product_id", "sale_item_id", "quantity", "actual_qty"):
            if int_field in row:
                row[int_field] = as_int(row[int_field], int_field)
        normalized.append(row)
    return normalized
