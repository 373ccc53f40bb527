from __future__ import annotations

import csv
from dataclasses import dataclass
from typing import TextIO

from multiformats import CID

from .car import CarBlockStore, replace_roots_in_file
from .cidutil import empty_db_root
from .constants import INDEX_FIELD
from .database import Collection, new_database_from_block_store
from .errors import CsvFormatError, MissingHeaderError
from .records import record_from_row


@dataclass
class IngestResult:
    root: CID
    rows: int


def _next_row(reader, what: str, error=CsvFormatError):
    # csv yields [] for blank lines; they carry no fields and are skipped
    while True:
        try:
            row = next(reader)
        except StopIteration:
            return None
        except csv.Error as exc:
            raise error(f"line {reader.line_num}: malformed {what}: {exc}") from exc
        if row:
            return row


def ingest_csv(source: TextIO, collection: Collection, add_row_index: bool = False) -> int:
    """Insert one record per CSV data row, in row order. Returns the row count.

    The first row is the header. With add_row_index each record also gets a
    zero-based "index" field, and a secondary index on it is declared before
    any row is read.
    """
    reader = csv.reader(source)
    headers = _next_row(reader, "header row", MissingHeaderError)
    if headers is None:
        raise MissingHeaderError("input has no header row")

    if add_row_index:
        collection.create_index(INDEX_FIELD)

    index = 0
    while True:
        row = _next_row(reader, "row")
        if row is None:
            break
        try:
            data = record_from_row(headers, row, index if add_row_index else None)
        except CsvFormatError as exc:
            raise type(exc)(f"line {reader.line_num}: {exc}") from exc
        collection.insert(data)
        index += 1
    return index


def ingest(output: str, source: TextIO, collection_name: str, add_row_index: bool = False) -> IngestResult:
    """Build a new database archive at output from CSV source.

    The archive header is seeded with the empty-database placeholder, which has
    the same width as the real root. Once every row is inserted the changes are
    applied, blocks are flushed, and the header is rewritten in place. If
    anything fails first, the file keeps the placeholder root.
    """
    placeholder = empty_db_root()
    with CarBlockStore.open_read_write(output, [placeholder]) as store:
        db = new_database_from_block_store(store)
        collection = db.collection(collection_name)
        rows = ingest_csv(source, collection, add_row_index)
        root = db.apply_changes()
        store.finalize()
    replace_roots_in_file(output, [root])
    return IngestResult(root=root, rows=rows)
