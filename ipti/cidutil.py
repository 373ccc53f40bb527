from __future__ import annotations

import base64
import binascii
from functools import lru_cache

from multiformats import CID, multihash

from .constants import EMPTY_DB_ROOT, CID_VERSION, BLOCK_CODEC, HASH_FUNCTION, HASH_SIZE
from .errors import IdentifierError


def block_cid(data: bytes) -> CID:
    """CID for an encoded block: CIDv1, dag-cbor, truncated sha2-256."""
    digest = multihash.digest(data, HASH_FUNCTION, size=HASH_SIZE)
    return CID("base32", CID_VERSION, BLOCK_CODEC, digest)


@lru_cache(maxsize=None)
def _block_prefix() -> bytes:
    # version || codec || hash code || digest length
    raw = bytes(block_cid(b""))
    return raw[: len(raw) - HASH_SIZE]


def has_block_prefix(cid: CID) -> bool:
    raw = bytes(cid)
    return len(raw) == len(_block_prefix()) + HASH_SIZE and raw.startswith(_block_prefix())


@lru_cache(maxsize=None)
def empty_db_root() -> CID:
    """Parse and validate the empty-database placeholder.

    The placeholder only reserves header space, so it must have exactly the
    width of the CIDs this package produces.
    """
    try:
        cid = CID.decode(EMPTY_DB_ROOT)
    except (ValueError, KeyError) as exc:
        raise IdentifierError(f"malformed placeholder root {EMPTY_DB_ROOT!r}: {exc}") from exc
    if not has_block_prefix(cid):
        raise IdentifierError(f"placeholder root {EMPTY_DB_ROOT!r} does not match block CID format")
    return cid


def same_cid(a: CID, b: CID) -> bool:
    return bytes(a) == bytes(b)


def encode_id(record_id: bytes) -> str:
    """URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(record_id).rstrip(b"=").decode("ascii")


def decode_id(text: str) -> bytes:
    if "=" in text:
        raise IdentifierError(f"record id must not be padded: {text!r}")
    pad = "=" * (-len(text) % 4)
    try:
        return base64.urlsafe_b64decode((text + pad).encode("ascii"))
    except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
        raise IdentifierError(f"invalid record id {text!r}: {exc}") from exc
