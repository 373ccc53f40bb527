from __future__ import annotations

"""
Database and collections stored in a single prolly tree.

Tree keys (NUL separated; collection and field names may not contain NUL)
- c \\0 <collection>                                  -> {"name": <collection>}
- x \\0 <collection> \\0 <field>                      -> {"field": <field>}
- r \\0 <collection> \\0 <record id>                  -> [[key, value], ...]
- i \\0 <collection> \\0 <field> \\0 <cbor(value)> \\0 <record id> -> <record id>

Record data is stored as a list of pairs so the field order written by the
ingester survives a round trip (dag-cbor maps are key-sorted).

Mutations are staged in memory and merged over the committed tree by every
read; apply_changes() writes a new tree and moves the root.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import dag_cbor
from dag_cbor.encoding.err import DAGCBOREncodingError
from multiformats import CID

from .blockstore import BlockStore
from .car import CarReader
from .cidutil import block_cid, empty_db_root, same_cid
from .constants import (
    KEY_SEP,
    NS_COLLECTION,
    NS_INDEX_DEF,
    NS_RECORD,
    NS_INDEX_ENTRY,
)
from .errors import (
    CarFormatError,
    InvalidNameError,
    StorageError,
    UncommittedArchiveError,
    UnsupportedValueError,
)
from .tree import ProllyTree


@dataclass
class Record:
    id: bytes
    data: Dict[str, Any]


@dataclass
class Query:
    equal: Dict[str, Any] = field(default_factory=dict)
    limit: Optional[int] = None


def _check_name(kind: str, name: str) -> bytes:
    if not isinstance(name, str) or not name:
        raise InvalidNameError(f"{kind} name must be a non-empty string")
    raw = name.encode("utf-8")
    if KEY_SEP in raw:
        raise InvalidNameError(f"{kind} name must not contain NUL: {name!r}")
    return raw


def _key(*parts: bytes) -> bytes:
    return KEY_SEP.join(parts)


def _encode_data(data: Dict[str, Any]) -> List[List[Any]]:
    return [[k, v] for k, v in data.items()]


def _decode_data(pairs: Any) -> Dict[str, Any]:
    if not isinstance(pairs, list):
        raise StorageError("record data must be a list of pairs")
    data: Dict[str, Any] = {}
    for pair in pairs:
        if not isinstance(pair, list) or len(pair) != 2 or not isinstance(pair[0], str):
            raise StorageError(f"malformed record field: {pair!r}")
        data[pair[0]] = pair[1]
    return data


class Collection:
    def __init__(self, db: "Database", name: str):
        self.db = db
        self.name = name
        self._raw_name = _check_name("collection", name)
        self._index_fields: Optional[List[str]] = None

    def __repr__(self):
        return f"Collection({self.name!r})"

    def _record_prefix(self) -> bytes:
        return _key(NS_RECORD, self._raw_name, b"")

    def _index_def_prefix(self) -> bytes:
        return _key(NS_INDEX_DEF, self._raw_name, b"")

    def _index_prefix(self, field_name: str, value: Any) -> bytes:
        raw_field = _check_name("field", field_name)
        return _key(NS_INDEX_ENTRY, self._raw_name, raw_field, dag_cbor.encode(value), b"")

    def indexes(self) -> List[str]:
        if self._index_fields is None:
            self._index_fields = [v["field"] for _k, v in self.db._scan(self._index_def_prefix())]
        return list(self._index_fields)

    def create_index(self, field_name: str) -> str:
        """Declare a secondary index on field_name and index existing records."""
        raw_field = _check_name("field", field_name)
        if field_name in self.indexes():
            return field_name
        self.db._stage(_key(NS_INDEX_DEF, self._raw_name, raw_field), {"field": field_name})
        self._index_fields = None
        for record in self._scan_records():
            self._stage_index_entry(field_name, record)
        return field_name

    def _stage_index_entry(self, field_name: str, record: Record) -> None:
        if field_name not in record.data:
            return
        key = self._index_prefix(field_name, record.data[field_name]) + record.id
        self.db._stage(key, record.id)

    def insert(self, data: Dict[str, Any]) -> bytes:
        """Store data as a record and return its id (the CID of its encoding)."""
        pairs = _encode_data(data)
        try:
            encoded = dag_cbor.encode(pairs)
        except (DAGCBOREncodingError, UnicodeEncodeError) as exc:
            raise UnsupportedValueError(f"record cannot be stored: {exc}") from exc
        record_id = bytes(block_cid(encoded))
        self.db._stage(self._record_prefix() + record_id, pairs)
        record = Record(id=record_id, data=dict(data))
        for field_name in self.indexes():
            self._stage_index_entry(field_name, record)
        return record_id

    def get(self, record_id: bytes) -> Optional[Record]:
        pairs = self.db._lookup(self._record_prefix() + record_id)
        if pairs is None:
            return None
        return Record(id=record_id, data=_decode_data(pairs))

    def _scan_records(self) -> Iterator[Record]:
        prefix = self._record_prefix()
        for key, pairs in self.db._scan(prefix):
            yield Record(id=key[len(prefix):], data=_decode_data(pairs))

    def search(self, query: Optional[Query] = None) -> Iterator[Record]:
        """Lazily yield matching records in record-id order.

        An equality filter on an indexed field is answered from the index;
        other filters fall back to a full scan.
        """
        query = query or Query()
        indexed = [f for f in query.equal if f in self.indexes()]
        if indexed:
            candidates = self._scan_index(indexed[0], query.equal[indexed[0]])
        else:
            candidates = self._scan_records()
        count = 0
        for record in candidates:
            if query.limit is not None and count >= query.limit:
                return
            if all(f in record.data and record.data[f] == v for f, v in query.equal.items()):
                count += 1
                yield record

    def _scan_index(self, field_name: str, value: Any) -> Iterator[Record]:
        for _key_bytes, record_id in self.db._scan(self._index_prefix(field_name, value)):
            record = self.get(record_id)
            if record is None:
                raise StorageError(f"index {field_name!r} points at missing record")
            yield record


class Database:
    def __init__(self, store: BlockStore, root: CID):
        self.store = store
        self._tree = ProllyTree(store, root)
        self._pending: Dict[bytes, Any] = {}
        self._collections: Dict[str, Collection] = {}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        """Close the backing store if it holds a file."""
        close = getattr(self.store, "close", None)
        if close is not None:
            close()

    @property
    def root_cid(self) -> CID:
        return self._tree.root

    def _stage(self, key: bytes, value: Any) -> None:
        self._pending[key] = value

    def _lookup(self, key: bytes) -> Any:
        if key in self._pending:
            return self._pending[key]
        return self._tree.get(key)

    def _scan(self, prefix: bytes) -> Iterator[Tuple[bytes, Any]]:
        """Merge staged entries over the committed tree, in key order."""
        staged = sorted(k for k in self._pending if k.startswith(prefix))
        committed = self._tree.iter_prefix(prefix)
        i = 0
        for key, value in committed:
            while i < len(staged) and staged[i] < key:
                yield staged[i], self._pending[staged[i]]
                i += 1
            if i < len(staged) and staged[i] == key:
                yield key, self._pending[key]
                i += 1
                continue
            yield key, value
        for key in staged[i:]:
            yield key, self._pending[key]

    def collection(self, name: str) -> Collection:
        """Open a collection, registering it if it does not exist yet."""
        if name in self._collections:
            return self._collections[name]
        raw = _check_name("collection", name)
        key = _key(NS_COLLECTION, raw)
        if self._lookup(key) is None:
            self._stage(key, {"name": name})
        coll = Collection(self, name)
        self._collections[name] = coll
        return coll

    def list_collections(self) -> List[str]:
        return [v["name"] for _k, v in self._scan(_key(NS_COLLECTION, b""))]

    def has_changes(self) -> bool:
        return bool(self._pending)

    def apply_changes(self) -> CID:
        """Write staged mutations into a new tree and return the new root."""
        if self._pending:
            entries = list(self._scan(b""))
            self._tree = ProllyTree.build(self.store, entries)
            self._pending = {}
        return self._tree.root


def new_database_from_block_store(store: BlockStore) -> Database:
    """Start an empty database on store."""
    return Database(store, ProllyTree.empty(store).root)


def open_database(store: BlockStore, root: CID) -> Database:
    if same_cid(root, empty_db_root()):
        raise UncommittedArchiveError("archive root is the empty-database placeholder; ingest never finalized")
    if not store.has(root):
        raise CarFormatError(f"root block {root} is missing from the archive")
    return Database(store, root)


def import_from_file(path: str) -> Database:
    """Open the CAR at path as a database. Close it (or use it as a context
    manager) to release the file."""
    reader = CarReader(path)
    reader.open()
    try:
        if len(reader.roots) != 1:
            raise CarFormatError(f"expected exactly one root, found {len(reader.roots)}")
        return open_database(reader, reader.roots[0])
    except (StorageError, OSError, ValueError) as exc:
        reader.close()
        raise exc
