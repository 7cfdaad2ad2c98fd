"""String and file helpers shared by the config loader and widgets."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, List, Union

_UTF8_BOM = b"\xef\xbb\xbf"


def to_camel_case(value: str, lower: bool = True) -> str:
    """Convert ``snake_case`` to camelCase (``lower``) or PascalCase."""
    if not value:
        return value
    parts = [p for p in value.split("_") if p]
    if not parts:
        return ""
    head = parts[0] if lower else parts[0][:1].upper() + parts[0][1:]
    return head + "".join(p[:1].upper() + p[1:] for p in parts[1:])


def strip_bom(data: bytes) -> bytes:
    if data.startswith(_UTF8_BOM):
        return data[len(_UTF8_BOM):]
    return data


def load_json_file(path: Union[str, Path]) -> Any:
    """Read ``path`` and parse it as JSON, tolerating a UTF-8 BOM."""
    data = Path(path).read_bytes()
    return json.loads(strip_bom(data).decode("utf-8"))


def split_fields(value: Union[None, str, Iterable[str]]) -> List[str]:
    """Normalize a comma separated string or a list into field names."""
    if value is None:
        return []
    if isinstance(value, str):
        items: Iterable[str] = value.split(",")
    else:
        items = value
    return [item.strip() for item in items if item and item.strip()]
