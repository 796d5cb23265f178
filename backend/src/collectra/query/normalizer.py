"""Turn a raw query-string mapping into structured find-many arguments.

Rules, applied per key in this order:

1. ``where`` is JSON and must parse, else MalformedInput (HTTP 400).
2. A value containing a comma is split. Under ``distinct`` it becomes a
   list of field names; under any other key each piece is a
   ``field-direction`` pair and the whole becomes a mapping:
   ``"name-asc,age-desc"`` -> ``{"name": "asc", "age": "desc"}``.
   A piece without a hyphen maps to True (``"id,title"`` under
   ``select`` -> ``{"id": True, "title": True}``).
3. A value with exactly one hyphen and text on both sides becomes a
   one-entry mapping: ``"name-asc"`` -> ``{"name": "asc"}``.
4. A value that is still a scalar string and parses as a number is
   coerced to int or float.

Values that are already structured (not strings) pass through
unchanged, so normalizing an already-normalized query is a no-op.
"""

import json
from collections.abc import Mapping
from typing import Any

from collectra.errors import MalformedInput


def normalize_query(query: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize every entry of a raw query mapping.

    Raises:
        MalformedInput: If ``where`` is not valid JSON
    """
    return {key: normalize_value(key, value) for key, value in query.items()}


def normalize_value(key: str, value: Any) -> Any:
    """Normalize a single query-string value for ``key``."""
    if not isinstance(value, str):
        return value

    if key == "where":
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise MalformedInput("Malformed JSON in the WHERE clause.") from e

    if "," in value:
        parts = [part for part in value.split(",") if part]
        if key == "distinct":
            return parts
        return dict(_split_pair(part) for part in parts)

    if value.count("-") == 1:
        sub_key, sub_value = value.split("-")
        if sub_key and sub_value:
            return {sub_key: sub_value}

    return _coerce_number(value)


def _split_pair(part: str) -> tuple[str, Any]:
    if "-" not in part:
        return part, True
    field_name, direction = part.split("-", 1)
    return field_name, direction


def _coerce_number(value: str) -> int | float | str:
    """Coerce numeric strings; leave everything else alone."""
    text = value.strip()
    if not text:
        return value
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return value
    # "nan"/"inf" are not numbers a caller meant to send.
    if number != number or number in (float("inf"), float("-inf")):
        return value
    return number
