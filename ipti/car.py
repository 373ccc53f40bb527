from __future__ import annotations

"""
CAR v1 container: a header naming the root CIDs, followed by content-addressed
blocks.

Layout
- Header: varint(len) || dag-cbor {"roots": [CID, ...], "version": 1}
- Section (repeated): varint(len) || CID bytes || block bytes
  where len covers both the CID and the block

The header is written first, so a writer that does not yet know its root seeds
it with a placeholder of the same encoded width and patches it in place once the
real root is known (replace_roots_in_file).
"""

import io
import os
from typing import BinaryIO, Dict, Iterator, List, Optional, Sequence, Tuple

import dag_cbor
from multiformats import CID, varint

from .blockstore import BlockStore, verify_block
from .constants import CAR_VERSION
from .errors import (
    CarFormatError,
    BlockNotFoundError,
    RootSizeMismatchError,
    StoreFinalizedError,
)


def _read_varint(f: BinaryIO) -> Optional[int]:
    """Read a varint from a stream; None on a clean end of file."""
    shift = 0
    result = 0
    first = True
    while True:
        b = f.read(1)
        if not b:
            if first:
                return None
            raise CarFormatError("varint: truncated")
        first = False
        result |= (b[0] & 0x7F) << shift
        if not (b[0] & 0x80):
            return result
        shift += 7
        if shift > 63:
            raise CarFormatError("varint: too large")


def _cid_length(data: bytes) -> int:
    # CIDv0 is a bare sha2-256 multihash
    if len(data) >= 2 and data[0] == 0x12 and data[1] == 0x20:
        return 34
    f = io.BytesIO(data)
    # version, codec, hash function, digest length
    fields = [_read_varint(f) for _ in range(4)]
    if None in fields:
        raise CarFormatError("CID prefix truncated")
    if fields[0] != 1:
        raise CarFormatError(f"unsupported CID version {fields[0]}")
    end = f.tell() + fields[3]
    if end > len(data):
        raise CarFormatError("CID digest out of range")
    return end


def encode_header(roots: Sequence[CID]) -> bytes:
    payload = dag_cbor.encode({"roots": list(roots), "version": CAR_VERSION})
    return varint.encode(len(payload)) + payload


def read_header(f: BinaryIO) -> Tuple[List[CID], int]:
    """Return (roots, offset of the first section)."""
    f.seek(0)
    ln = _read_varint(f)
    if ln is None or ln == 0:
        raise CarFormatError("CAR header missing")
    payload = f.read(ln)
    if len(payload) != ln:
        raise CarFormatError("CAR header truncated")
    try:
        header = dag_cbor.decode(payload)
    except Exception as exc:
        raise CarFormatError(f"CAR header is not valid dag-cbor: {exc}") from exc
    if not isinstance(header, dict) or header.get("version") != CAR_VERSION:
        raise CarFormatError(f"unsupported CAR header: {header!r}")
    roots = header.get("roots")
    if not isinstance(roots, list) or not all(isinstance(r, CID) for r in roots):
        raise CarFormatError("CAR header roots must be a list of CIDs")
    # decoded links carry no multibase; CIDv1 text is base32
    roots = [r.set(base="base32") if r.version == 1 else r for r in roots]
    return roots, f.tell()


def encode_section(cid: CID, data: bytes) -> bytes:
    raw = bytes(cid)
    return varint.encode(len(raw) + len(data)) + raw + data


def _scan_sections(f: BinaryIO, start: int) -> Iterator[Tuple[CID, int, int]]:
    """Yield (cid, data_offset, data_len) for each section after the header."""
    f.seek(start)
    while True:
        ln = _read_varint(f)
        if ln is None:
            return
        section_start = f.tell()
        body = f.read(ln)
        if len(body) != ln:
            raise CarFormatError(f"section at offset {section_start} truncated")
        cid_len = _cid_length(body)
        try:
            cid = CID.decode(body[:cid_len])
        except (ValueError, KeyError) as exc:
            raise CarFormatError(f"bad CID in section at offset {section_start}: {exc}") from exc
        yield cid, section_start + cid_len, ln - cid_len


class CarReader(BlockStore):
    """Read-only view of a CAR file."""

    def __init__(self, path: str):
        self.path = path
        self.f: Optional[BinaryIO] = None
        self.roots: List[CID] = []
        self._index: Dict[bytes, Tuple[int, int]] = {}

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.f is not None:
            return
        self.f = open(self.path, "rb")
        try:
            self.roots, start = read_header(self.f)
            for cid, offset, length in _scan_sections(self.f, start):
                self._index[bytes(cid)] = (offset, length)
        except (CarFormatError, OSError, ValueError) as exc:
            self.close()
            raise exc

    def close(self):
        if self.f is not None:
            self.f.close()
            self.f = None

    def put(self, cid: CID, data: bytes) -> None:
        raise StoreFinalizedError(f"{self.path} is open read-only")

    def has(self, cid: CID) -> bool:
        return bytes(cid) in self._index

    def get(self, cid: CID) -> bytes:
        loc = self._index.get(bytes(cid))
        if loc is None:
            raise BlockNotFoundError(f"block not found: {cid}")
        if self.f is None:
            raise StoreFinalizedError(f"{self.path} is closed")
        offset, length = loc
        self.f.seek(offset)
        data = self.f.read(length)
        if len(data) != length:
            raise CarFormatError(f"block {cid} truncated")
        verify_block(cid, data)
        return data

    def iter_blocks(self) -> Iterator[Tuple[CID, bytes]]:
        for raw in list(self._index):
            cid = CID.decode(raw)
            yield cid, self.get(cid)

    def __len__(self) -> int:
        return len(self._index)


class CarBlockStore(BlockStore):
    """Read-write CAR block store.

    Blocks are appended as they are put. finalize() flushes and closes the
    file; the header keeps whatever roots the store was opened with until
    replace_roots_in_file() rewrites it.
    """

    def __init__(self, path: str, f: BinaryIO, data_start: int):
        self.path = path
        self.f: Optional[BinaryIO] = f
        self.data_start = data_start
        self._index: Dict[bytes, Tuple[int, int]] = {}
        self.finalized = False

    @classmethod
    def open_read_write(cls, path: str, roots: Sequence[CID]) -> "CarBlockStore":
        """Create (or truncate) a CAR at path with the given header roots."""
        header = encode_header(roots)
        f = open(path, "w+b")
        try:
            f.write(header)
        except OSError:
            f.close()
            raise
        return cls(path, f, len(header))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _require_open(self) -> BinaryIO:
        if self.finalized or self.f is None:
            raise StoreFinalizedError(f"{self.path} has been finalized")
        return self.f

    def put(self, cid: CID, data: bytes) -> None:
        f = self._require_open()
        key = bytes(cid)
        if key in self._index:
            return
        section = encode_section(cid, data)
        f.seek(0, os.SEEK_END)
        start = f.tell()
        f.write(section)
        self._index[key] = (start + len(section) - len(data), len(data))

    def has(self, cid: CID) -> bool:
        return bytes(cid) in self._index

    def get(self, cid: CID) -> bytes:
        f = self._require_open()
        loc = self._index.get(bytes(cid))
        if loc is None:
            raise BlockNotFoundError(f"block not found: {cid}")
        offset, length = loc
        f.seek(offset)
        data = f.read(length)
        if len(data) != length:
            raise CarFormatError(f"block {cid} truncated")
        return data

    def finalize(self) -> None:
        f = self._require_open()
        f.flush()
        os.fsync(f.fileno())
        f.close()
        self.f = None
        self.finalized = True

    def close(self) -> None:
        """Close without finalizing (used on error paths)."""
        if self.f is not None:
            self.f.close()
            self.f = None

    def __len__(self) -> int:
        return len(self._index)


def read_roots(path: str) -> List[CID]:
    with open(path, "rb") as f:
        roots, _ = read_header(f)
    return roots


def replace_roots_in_file(path: str, roots: Sequence[CID]) -> None:
    """Rewrite the header roots in place.

    The new header must have exactly the same encoded length as the old one;
    block sections are never moved.
    """
    new_header = encode_header(roots)
    with open(path, "r+b") as f:
        _old_roots, data_start = read_header(f)
        if len(new_header) != data_start:
            raise RootSizeMismatchError(
                f"new header is {len(new_header)} bytes, existing header is {data_start} bytes"
            )
        f.seek(0)
        f.write(new_header)
        f.flush()
        os.fsync(f.fileno())
