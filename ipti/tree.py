from __future__ import annotations

"""
Content-defined sorted tree ("prolly tree") over a block store.

Node (dag-cbor map)
- leaf: bool
- keys: [bytes]  sorted, unique
- values: leaf -> stored values; branch -> [CID] of children, where keys[i] is
  the first key under values[i]

A node closes after any key whose salted hash falls below a threshold, so node
boundaries depend only on the keys. The same set of entries always produces the
same root CID, whatever order the entries were inserted in.
"""

import hashlib
from bisect import bisect_left, bisect_right
from typing import Any, Iterable, Iterator, List, Tuple

import dag_cbor
from multiformats import CID

from .blockstore import BlockStore
from .constants import TREE_CHUNK_TARGET
from .errors import StorageError


_BOUNDARY_THRESHOLD = (1 << 32) // TREE_CHUNK_TARGET


def _is_boundary(level: int, key: bytes) -> bool:
    h = hashlib.sha256(bytes([level & 0xFF]) + key).digest()
    return int.from_bytes(h[:4], "big") < _BOUNDARY_THRESHOLD


def _chunk(level: int, items: List[Tuple[bytes, Any]]) -> List[List[Tuple[bytes, Any]]]:
    chunks: List[List[Tuple[bytes, Any]]] = []
    current: List[Tuple[bytes, Any]] = []
    for item in items:
        current.append(item)
        if _is_boundary(level, item[0]):
            chunks.append(current)
            current = []
    if current:
        chunks.append(current)
    return chunks


def _encode_node(leaf: bool, items: List[Tuple[bytes, Any]]) -> bytes:
    return dag_cbor.encode({
        "leaf": leaf,
        "keys": [k for k, _ in items],
        "values": [v for _, v in items],
    })


class ProllyTree:
    def __init__(self, store: BlockStore, root: CID):
        self.store = store
        self.root = root

    @classmethod
    def empty(cls, store: BlockStore) -> "ProllyTree":
        return cls(store, store.put_block(_encode_node(True, [])))

    @classmethod
    def build(cls, store: BlockStore, entries: Iterable[Tuple[bytes, Any]]) -> "ProllyTree":
        """Write a tree holding entries (sorted by key, keys unique)."""
        items = list(entries)
        for prev, cur in zip(items, items[1:]):
            if not prev[0] < cur[0]:
                raise ValueError("tree entries must be sorted with unique keys")
        if not items:
            return cls.empty(store)

        level = 0
        leaf = True
        while True:
            chunks = _chunk(level, items)
            if len(chunks) > 1 and len(chunks) == len(items):
                # No reduction at this level; close everything into one node.
                chunks = [items]
            parents = []
            for chunk in chunks:
                cid = store.put_block(_encode_node(leaf, chunk))
                parents.append((chunk[0][0], cid))
            if len(parents) == 1:
                return cls(store, parents[0][1])
            items = parents
            level += 1
            leaf = False

    def _load(self, cid: CID) -> dict:
        data = self.store.get(cid)
        try:
            node = dag_cbor.decode(data)
        except Exception as exc:
            raise StorageError(f"tree node {cid} is not valid dag-cbor: {exc}") from exc
        if (
            not isinstance(node, dict)
            or not isinstance(node.get("leaf"), bool)
            or not isinstance(node.get("keys"), list)
            or not isinstance(node.get("values"), list)
            or len(node["keys"]) != len(node["values"])
        ):
            raise StorageError(f"malformed tree node {cid}")
        if not node["leaf"] and not all(isinstance(v, CID) for v in node["values"]):
            raise StorageError(f"branch node {cid} has non-link children")
        return node

    def get(self, key: bytes, default: Any = None) -> Any:
        cid = self.root
        while True:
            node = self._load(cid)
            keys = node["keys"]
            if node["leaf"]:
                i = bisect_left(keys, key)
                if i < len(keys) and keys[i] == key:
                    return node["values"][i]
                return default
            i = bisect_right(keys, key) - 1
            if i < 0:
                return default
            cid = node["values"][i]

    def _iter_node(self, cid: CID, start: bytes) -> Iterator[Tuple[bytes, Any]]:
        node = self._load(cid)
        keys = node["keys"]
        values = node["values"]
        if node["leaf"]:
            i = bisect_left(keys, start)
            yield from zip(keys[i:], values[i:])
            return
        i = max(bisect_right(keys, start) - 1, 0)
        for child in values[i:]:
            yield from self._iter_node(child, start)

    def iter_from(self, start: bytes = b"") -> Iterator[Tuple[bytes, Any]]:
        """Entries with key >= start, in key order, loaded lazily."""
        return self._iter_node(self.root, start)

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, Any]]:
        for key, value in self.iter_from(prefix):
            if not key.startswith(prefix):
                return
            yield key, value

    def items(self) -> Iterator[Tuple[bytes, Any]]:
        return self.iter_from(b"")

    def depth(self) -> int:
        depth = 1
        node = self._load(self.root)
        while not node["leaf"]:
            node = self._load(node["values"][0])
            depth += 1
        return depth
