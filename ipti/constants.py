# Well-known root of an empty database. Written into a new archive's header so
# the header has room for the final root CID, then overwritten in place.
EMPTY_DB_ROOT = "bafyrefczokuljxpuzx3ivzun5p5jdfnfdj3qzqq"

# Block identifiers: CIDv1, dag-cbor, sha2-256 truncated to 20 bytes. Every CID
# produced here has the same encoded width as EMPTY_DB_ROOT.
CID_VERSION = 1
BLOCK_CODEC = "dag-cbor"
HASH_FUNCTION = "sha2-256"
HASH_SIZE = 20

CAR_VERSION = 1

# Average number of entries per tree node. A key closes its node when the first
# four bytes of its hash fall below 2**32 / TREE_CHUNK_TARGET.
TREE_CHUNK_TARGET = 32

# Key namespaces inside the database tree (separator is NUL).
KEY_SEP = b"\x00"
NS_COLLECTION = b"c"
NS_INDEX_DEF = b"x"
NS_RECORD = b"r"
NS_INDEX_ENTRY = b"i"

INDEX_FIELD = "index"

DEFAULT_COLLECTION = "default"
DEFAULT_DB_PATH = "./db.prolly.car"
