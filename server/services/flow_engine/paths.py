"""Path resolution and ``{{path}}`` template substitution against event payloads.

Template grammar::

    template    := (text | placeholder)*
    placeholder := "{{" ws* path ws* "}}"
    path        := identifier ("." identifier)*
    identifier  := [A-Za-z0-9_-]+

A placeholder whose path does not match the grammar, or does not resolve to a
non-null value, is copied to the output unchanged.
"""

import json
import re
from typing import Any, Dict, Optional

from constants import DATA_PREFIX

_OPEN = "{{"
_CLOSE = "}}"
_PATH_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+(\.[A-Za-z0-9_\-]+)*$")


def get_nested_value(data: Any, field_path: str) -> Any:
    """Get a nested value from a payload using dot notation.

    Args:
        data: Payload to walk (dicts, with list indexes allowed)
        field_path: Dot-separated path (e.g., "lead.source", "items.0.name")

    Returns:
        Value at path or None if any segment is missing

    Examples:
        >>> get_nested_value({"lead": {"source": "whatsapp"}}, "lead.source")
        'whatsapp'
        >>> get_nested_value({"items": [{"name": "a"}]}, "items.0.name")
        'a'
    """
    if data is None or not field_path:
        return None

    current = data
    for part in field_path.split('.'):
        if current is None:
            return None

        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isascii() and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None

    return current


def strip_data_prefix(field_path: str) -> str:
    """Drop the optional leading ``data.`` that references the payload root."""
    path = field_path.strip()
    if path.startswith(DATA_PREFIX):
        return path[len(DATA_PREFIX):]
    return path


def resolve_field(payload: Dict[str, Any], field_path: Optional[str]) -> Any:
    """Resolve a condition field (``data.lead.source`` or ``lead.source``)."""
    if not field_path or not field_path.strip():
        return None
    return get_nested_value(payload, strip_data_prefix(field_path))


def to_display_string(value: Any) -> str:
    """Render a payload value the way it appears in JSON text.

    Booleans become ``true``/``false``, ``None`` becomes ``null``, whole floats
    lose their ``.0`` and containers are JSON-encoded.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str, separators=(",", ":"))
    return str(value)


def interpolate_variables(template: str, data: Dict[str, Any]) -> str:
    """Replace ``{{path}}`` placeholders with values from ``data``.

    Examples:
        >>> interpolate_variables("Hello {{user.name}}", {"user": {"name": "Ana"}})
        'Hello Ana'
        >>> interpolate_variables("Hi {{user.missing}}", {"user": {}})
        'Hi {{user.missing}}'
    """
    if not template or not isinstance(template, str):
        return template

    out = []
    pos = 0
    while True:
        start = template.find(_OPEN, pos)
        if start == -1:
            out.append(template[pos:])
            break
        end = template.find(_CLOSE, start + len(_OPEN))
        if end == -1:
            out.append(template[pos:])
            break

        out.append(template[pos:start])
        token = template[start:end + len(_CLOSE)]
        path = template[start + len(_OPEN):end].strip()
        out.append(_resolve_token(token, path, data))
        pos = end + len(_CLOSE)

    return "".join(out)


def _resolve_token(token: str, path: str, data: Dict[str, Any]) -> str:
    if not _PATH_PATTERN.match(path):
        return token
    value = get_nested_value(data, path)
    if value is None:
        return token
    return to_display_string(value)

