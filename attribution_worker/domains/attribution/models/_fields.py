"""
Field lookup helpers for normalizing loosely-shaped stored records
"""

from typing import Any, Iterable, Mapping, Optional


def first_present(record: Mapping[str, Any], fields: Iterable[str]) -> Any:
    """Value of the first field that is present and not empty"""
    for field in fields:
        value = record.get(field)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
