"""
IP address helpers: extraction from loosely-shaped records and key encoding
"""

from typing import Any, Iterable, List, Mapping

from ..constants.attribution import (
    CONVERSION_IP_FIELDS,
    GENERIC_IP_FIELDS,
    IGNORED_IP_VALUES,
    PAGEVIEW_IP_FIELDS,
    PRIMARY_IP_FIELDS,
    UNIQUE_IPS_FIELD,
)


def encode_ip_for_key(ip: str) -> str:
    """Encode an IP for use inside a store key (IPv6 colons become underscores)"""
    return ip.replace(":", "_")


def decode_ip_from_key(encoded: str) -> str:
    """Inverse of encode_ip_for_key"""
    return encoded.replace("_", ":")


def split_ip_values(value: Any) -> List[str]:
    """
    Split a raw IP field into clean candidate values.

    Accepts a single string, a comma-separated string or a list/tuple of either.
    Values are trimmed; empty and placeholder values ("unknown", "null") are dropped.
    """
    if value is None:
        return []

    if isinstance(value, (list, tuple, set)):
        items: List[str] = []
        for item in value:
            items.extend(split_ip_values(item))
        return items

    if not isinstance(value, str):
        value = str(value)

    cleaned = []
    for part in value.split(","):
        part = part.strip()
        if part.lower() in IGNORED_IP_VALUES:
            continue
        cleaned.append(part)
    return cleaned


def dedupe_preserving_order(values: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def extract_ips(record: Mapping[str, Any]) -> List[str]:
    """
    Union every IP-bearing field of a conversion record into one ordered list.

    Order is primary IP fields, conversion IP fields, pageview IP fields, generic
    ip fields, then ``unique_ips``. Duplicates keep their first position.
    """
    ordered_fields = (
        PRIMARY_IP_FIELDS
        + CONVERSION_IP_FIELDS
        + PAGEVIEW_IP_FIELDS
        + GENERIC_IP_FIELDS
        + (UNIQUE_IPS_FIELD,)
    )

    collected: List[str] = []
    for field in ordered_fields:
        collected.extend(split_ip_values(record.get(field)))

    return dedupe_preserving_order(collected)


def first_ip(record: Mapping[str, Any], fields: Iterable[str]) -> str:
    """First clean IP found in the given fields, or an empty string"""
    for field in fields:
        values = split_ip_values(record.get(field))
        if values:
            return values[0]
    return ""
