"""
Symmetric serializer for the ``session_data`` blob.

A session holds a mapping of string keys to JSON-like values::

    Value = None | bool | int | float | str | list[Value] | dict[str, Value]

The blob is UTF-8 JSON (orjson) wrapped in a small versioned envelope,
``{"v": 1, "data": {...}}``, so ``decode(encode(m)) == m`` for every mapping
built from those types. Anything else is rejected up front with EncodeError
instead of being silently coerced (orjson would turn a tuple into a list or a
datetime into a string, which would not survive the round trip).
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional, Union

import orjson

from .errors import DecodeError, EncodeError

FORMAT_VERSION = 1

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

Value = Union[None, bool, int, float, str, List["Value"], Dict[str, "Value"]]
SessionValues = Dict[str, Value]

__all__ = [
    "FORMAT_VERSION",
    "Value",
    "SessionValues",
    "validate_key",
    "validate_value",
    "encode",
    "decode",
]


def _check_text(text: str, where: str) -> None:
    # lone surrogates are valid str but not UTF-8, so orjson refuses them
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise EncodeError(f"string is not valid UTF-8 at {where}: {exc.reason}") from exc


def validate_key(key: Any) -> None:
    if not isinstance(key, str):
        raise EncodeError(f"session keys must be str, got {type(key).__name__}")
    _check_text(key, "key")


def validate_value(value: Any, path: str = "$") -> None:
    """Raise EncodeError if ``value`` is outside the supported Value union."""
    # bool before int: bool is an int subclass
    if value is None or isinstance(value, bool):
        return
    if isinstance(value, str):
        _check_text(value, path)
        return
    if isinstance(value, int):
        if not _INT64_MIN <= value <= _INT64_MAX:
            raise EncodeError(f"integer out of 64-bit range at {path}")
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise EncodeError(f"non-finite float at {path}")
        return
    if isinstance(value, list):
        for i, item in enumerate(value):
            validate_value(item, f"{path}[{i}]")
        return
    if isinstance(value, dict):
        for k, v in value.items():
            if not isinstance(k, str):
                raise EncodeError(f"non-str key {k!r} at {path}")
            _check_text(k, f"key of {path}")
            validate_value(v, f"{path}.{k}")
        return
    raise EncodeError(f"unsupported value type {type(value).__name__} at {path}")


def encode(values: Mapping[str, Value]) -> bytes:
    for key, value in values.items():
        validate_key(key)
        validate_value(value, f"$.{key}")
    try:
        return orjson.dumps({"v": FORMAT_VERSION, "data": dict(values)})
    except orjson.JSONEncodeError as exc:
        raise EncodeError(str(exc)) from exc


def decode(blob: Optional[bytes]) -> SessionValues:
    """Decode a stored blob; ``None`` (a freshly created record) yields ``{}``."""
    if blob is None:
        return {}
    if not isinstance(blob, (bytes, bytearray, memoryview)):
        raise DecodeError(f"session_data must be binary, got {type(blob).__name__}")
    try:
        envelope = orjson.loads(blob)
    except orjson.JSONDecodeError as exc:
        raise DecodeError(f"session_data is not valid JSON: {exc}") from exc

    if not isinstance(envelope, dict) or "v" not in envelope or "data" not in envelope:
        raise DecodeError("session_data envelope is missing 'v' or 'data'")
    if envelope["v"] != FORMAT_VERSION:
        raise DecodeError(f"unsupported session_data version: {envelope['v']!r}")
    data = envelope["data"]
    if not isinstance(data, dict):
        raise DecodeError("session_data payload must be an object")
    return data
