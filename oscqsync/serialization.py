"""orjson encoding for the JSON documents exchanged over OSCQuery HTTP."""

from typing import Any

import orjson


def _encode_extra(obj: Any) -> Any:
    # namespace metadata may carry frozensets from Python callers
    if isinstance(obj, frozenset | set):
        return sorted(obj, key=repr)
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


def encode_document(document: Any) -> bytes:
    return orjson.dumps(document, default=_encode_extra)


def decode_document(body: bytes | str) -> Any:
    """Parse a JSON document body.

    Raises:
        orjson.JSONDecodeError: (a ``ValueError``) on malformed JSON, including
            bytes that are not valid UTF-8.
    """
    return orjson.loads(body)
