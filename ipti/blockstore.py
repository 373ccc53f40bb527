from __future__ import annotations

from typing import Dict, Iterator, Tuple

from multiformats import CID

from .cidutil import block_cid, has_block_prefix
from .errors import BlockNotFoundError, BlockHashMismatch


class BlockStore:
    """Content-addressed block storage used by the database tree.

    Implementations: MemoryBlockStore (here) and the CAR-backed stores in
    ipti.car.
    """

    def put(self, cid: CID, data: bytes) -> None:
        raise NotImplementedError

    def get(self, cid: CID) -> bytes:
        raise NotImplementedError

    def has(self, cid: CID) -> bool:
        raise NotImplementedError

    def put_block(self, data: bytes) -> CID:
        cid = block_cid(data)
        if not self.has(cid):
            self.put(cid, data)
        return cid


def verify_block(cid: CID, data: bytes) -> None:
    # Blocks in a foreign CID format are passed through unchecked.
    if has_block_prefix(cid) and bytes(block_cid(data)) != bytes(cid):
        raise BlockHashMismatch(f"block {cid} does not match its content")


class MemoryBlockStore(BlockStore):
    def __init__(self):
        self._blocks: Dict[bytes, bytes] = {}

    def put(self, cid: CID, data: bytes) -> None:
        self._blocks[bytes(cid)] = bytes(data)

    def get(self, cid: CID) -> bytes:
        try:
            return self._blocks[bytes(cid)]
        except KeyError:
            raise BlockNotFoundError(f"block not found: {cid}") from None

    def has(self, cid: CID) -> bool:
        return bytes(cid) in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)

    def items(self) -> Iterator[Tuple[CID, bytes]]:
        for raw, data in self._blocks.items():
            yield CID.decode(raw), data
