from __future__ import annotations

"""
Field typing for CSV cells.

A cell is stored as whatever DAG-JSON value its text decodes to; text that
does not decode is stored verbatim as a string. Dumping only flattens strings
and integers back to text.
"""

import base64
import binascii
import json
import math
from dataclasses import dataclass
from typing import Any, List, Tuple, Union

from multiformats import CID

from .errors import UnsupportedValueError


INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1


@dataclass(frozen=True)
class Decoded:
    value: Any


@dataclass(frozen=True)
class Fallback:
    text: str


Typed = Union[Decoded, Fallback]


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid DAG-JSON")


def _parse_int(text: str) -> int:
    n = int(text)
    if n < INT64_MIN or n > INT64_MAX:
        raise ValueError(f"integer {text} out of 64-bit range")
    return n


def _parse_float(text: str) -> float:
    x = float(text)
    if math.isinf(x):
        raise ValueError(f"float {text} out of range")
    return x


def _check_text(s: str) -> str:
    # lone surrogates from \ud800-style escapes cannot be stored as UTF-8
    s.encode("utf-8")
    return s


def _object_pairs_hook(pairs: List[Tuple[str, Any]]) -> Any:
    obj = {}
    for key, value in pairs:
        if key in obj:
            raise ValueError(f"repeated map key {key!r}")
        obj[_check_text(key)] = value
    # {"/": "<cid>"} is a link, {"/": {"bytes": "<b64>"}} is a byte string
    if "/" not in obj or len(obj) != 1:
        return obj
    inner = obj["/"]
    if isinstance(inner, str):
        return CID.decode(inner)
    if isinstance(inner, dict) and list(inner) == ["bytes"] and isinstance(inner["bytes"], str):
        text = inner["bytes"]
        try:
            return base64.b64decode(text + "=" * (-len(text) % 4), validate=True)
        except binascii.Error as exc:
            raise ValueError(f"bad DAG-JSON bytes: {exc}") from exc
    raise ValueError("reserved DAG-JSON key '/' with unsupported value")


def decode_dag_json(text: str) -> Any:
    """Decode one DAG-JSON value; raise ValueError if text is not exactly that."""
    value = json.loads(
        text,
        object_pairs_hook=_object_pairs_hook,
        parse_int=_parse_int,
        parse_float=_parse_float,
        parse_constant=_reject_constant,
    )
    _check_strings(value)
    return value


def _check_strings(value: Any) -> None:
    if isinstance(value, str):
        _check_text(value)
    elif isinstance(value, list):
        for item in value:
            _check_strings(item)
    elif isinstance(value, dict):
        for item in value.values():
            _check_strings(item)


def infer_value(text: str) -> Typed:
    try:
        return Decoded(decode_dag_json(text))
    except Exception:
        # any decode failure means the cell is plain text
        return Fallback(text)


def typed_value(text: str) -> Any:
    """The value to store for a CSV cell."""
    result = infer_value(text)
    if isinstance(result, Decoded):
        return result.value
    return result.text


def kind_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bytes):
        return "bytes"
    if isinstance(value, list):
        return "list"
    if isinstance(value, dict):
        return "map"
    if isinstance(value, CID):
        return "link"
    return type(value).__name__


def value_as_string(value: Any) -> str:
    """Render a stored value as a CSV cell."""
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    raise UnsupportedValueError(f"unable to convert {kind_name(value)} value to csv string")
