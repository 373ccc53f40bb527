"""
ipti — CSV in, CSV out, for IPLD Prolly Tree Indexer databases.

A database is a single CAR archive holding content-addressed blocks of a
prolly tree. This package provides:

- `ingest`: CSV rows become typed, ordered-map records in a named collection,
  and the archive header is committed to the final root CID
- `dump`: a collection is scanned and flattened back to CSV rows
- `root` / `list`: inspect the archive header and the collections it holds

Field values are typed by attempting a DAG-JSON decode of each cell and falling
back to the raw text when that fails.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "values",
    "records",
    "ingest",
    "dump",
    "database",
    "car",
]

# Programmatic entry points are ipti.ingest.ingest and ipti.dump.dump; the CLI
# functions in ipti.cli (cmd_ingest/cmd_dump/...) take normal parameters.
