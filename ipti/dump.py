from __future__ import annotations

import csv
from typing import List, Optional, TextIO

from .cidutil import encode_id
from .database import Collection, Query, import_from_file
from .errors import MissingColumnError
from .values import value_as_string


def dump_collection(writer, collection: Collection, id_column: Optional[str] = None) -> int:
    """Write every record of collection as a CSV row. Returns the row count.

    Columns come from the first record's keys, in stored order, and are applied
    unchanged to every later record. With id_column, the record id is appended
    as unpadded URL-safe base64 under that header.
    """
    append_id = bool(id_column)
    columns: Optional[List[str]] = None
    count = 0
    for record in collection.search(Query()):
        if columns is None:
            columns = list(record.data)
            headers = list(columns)
            if append_id:
                headers.append(id_column)
            writer.writerow(headers)

        row = []
        for column in columns:
            if column not in record.data:
                raise MissingColumnError(f"record {encode_id(record.id)} has no column {column!r}")
            row.append(value_as_string(record.data[column]))
        if append_id:
            row.append(encode_id(record.id))
        writer.writerow(row)
        count += 1
    return count


def dump(output: TextIO, input_path: str, collection_name: str, id_column: Optional[str] = None) -> int:
    with import_from_file(input_path) as db:
        collection = db.collection(collection_name)
        writer = csv.writer(output, lineterminator="\n")
        try:
            return dump_collection(writer, collection, id_column)
        finally:
            output.flush()
