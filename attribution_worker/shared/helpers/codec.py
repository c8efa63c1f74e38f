"""
Value encoding for the key-value store.

Records are stored as UTF-8 JSON, percent-encoded the same way a browser's
``encodeURIComponent`` does. Reads accept both encoded and plain JSON.
"""

import json
from typing import Any, List, Optional
from urllib.parse import quote, unquote

from ...core.exceptions import MalformedRecordError

# Characters encodeURIComponent leaves untouched
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_value(value: Any) -> str:
    """Serialize a JSON-compatible value for storage"""
    return quote(json.dumps(value, default=str), safe=_URI_COMPONENT_SAFE)


def decode_value(raw: Any, key: Optional[str] = None, record_type: str = "record") -> Any:
    """
    Deserialize a stored value.

    Raises:
        MalformedRecordError: when the value is neither plain nor percent-encoded JSON
    """
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if not isinstance(raw, str):
        return raw

    text = raw.strip()
    try:
        if text[:1] in ("{", "["):
            return json.loads(text)
        return json.loads(unquote(text))
    except (ValueError, TypeError) as e:
        raise MalformedRecordError(
            f"Unparseable {record_type} value",
            record_type=record_type,
            key=key,
            value=raw,
            cause=e,
        )


def decode_pointer(raw: Any) -> List[str]:
    """
    Decode a reverse-index pointer value into the list of record keys it names.

    Pointers hold either a single record key or a JSON list of keys.
    """
    if raw is None:
        return []
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if isinstance(raw, (list, tuple)):
        return [str(item) for item in raw if item]

    text = unquote(str(raw)).strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except ValueError:
            return []
        return [str(item) for item in parsed if item]
    if text.startswith('"'):
        try:
            return [str(json.loads(text))]
        except ValueError:
            return []
    return [text]
