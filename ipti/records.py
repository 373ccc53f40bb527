from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from .constants import INDEX_FIELD
from .errors import FieldCountError, DuplicateFieldError
from .values import typed_value


def build_record(headers: Sequence[str], fields: Sequence[Any], index: Optional[int] = None) -> Dict[str, Any]:
    """Ordered map for one row: "index" first when given, then headers in order.

    Rows shorter than the header are accepted; the missing trailing keys are
    left out of the record.
    """
    if len(fields) > len(headers):
        raise FieldCountError(f"row has {len(fields)} fields but header declares {len(headers)}")
    record: Dict[str, Any] = {}
    if index is not None:
        record[INDEX_FIELD] = int(index)
    for name, value in zip(headers, fields):
        if name in record:
            raise DuplicateFieldError(f"field {name!r} appears more than once")
        record[name] = value
    return record


def record_from_row(headers: Sequence[str], row: Sequence[str], index: Optional[int] = None) -> Dict[str, Any]:
    return build_record(headers, [typed_value(cell) for cell in row], index)
