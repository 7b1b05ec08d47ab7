"""
Boundary parsing for loosely-typed collection columns.

Photos, material lists and defect lists may arrive as native lists, as JSON
strings (older rows, form posts), or not at all.  They are normalized here
once; ORM rows and DTOs only ever see the parsed form.
"""

import json
from typing import Any

from shopfloor_kernel.logging_config import get_logger

logger = get_logger("domain.json_fields")


def parse_json_list(raw: object, field: str = "value") -> list[Any]:
    """
    Array-or-string to list.

    None and blank strings become an empty list.  A JSON string that does not
    decode to a list is wrapped as a single element; a plain non-JSON string
    is treated as one element as well (a lone photo URL, for example).
    """
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return []
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            return [raw]
        if isinstance(decoded, list):
            return decoded
        if decoded is None:
            return []
        return [decoded]
    logger.warning(
        "json_list_coerced",
        extra={"field": field, "value_type": type(raw).__name__},
    )
    return [raw]


def parse_json_object(raw: object, field: str = "value") -> dict[str, Any] | None:
    """Object-or-string to dict (None stays None)."""
    if raw is None:
        return None
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{field} is not valid JSON: {exc.msg}") from exc
        if isinstance(decoded, dict):
            return decoded
        return {"value": decoded}
    return {"value": raw}
