from __future__ import annotations
from typing import Any, Dict, Iterable
from flask import request
from factory_admin.errors import ValidationError


def camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(w.capitalize() for w in rest)


def json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def read_fields(data: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    """Pick known fields from a body, accepting camelCase or snake_case keys."""
    out: Dict[str, Any] = {}
    for field in fields:
        for key in (camel(field), field):
            if key in data:
                out[field] = data[key]
                break
    return out
