from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from dag_cbor.encoding.err import DAGCBOREncodingError

from ipti.car import read_roots
from ipti.constants import DEFAULT_COLLECTION, DEFAULT_DB_PATH
from ipti.database import import_from_file
from ipti.dump import dump
from ipti.errors import IptiError
from ipti.ingest import ingest


def cmd_ingest(
    output: str,
    input: Optional[str] = None,
    *,
    collection: str = DEFAULT_COLLECTION,
    add_row_index: bool = False,
    quiet: bool = False,
) -> str:
    """Ingest CSV (a file, or stdin when input is None) into a new archive.

    Prints and returns the final root CID.
    """
    if input:
        with open(input, "r", newline="", encoding="utf-8") as src:
            result = ingest(output, src, collection, add_row_index)
    else:
        result = ingest(output, sys.stdin, collection, add_row_index)
    if not quiet:
        print(f" Ingested {result.rows} row(s) into {collection!r}: {output}", file=sys.stderr)
    root = str(result.root)
    print(root)
    return root


def cmd_dump(
    input: str,
    output: Optional[str] = None,
    *,
    collection: str = DEFAULT_COLLECTION,
    id_column: Optional[str] = None,
) -> int:
    """Dump a collection as CSV to output (stdout when None)."""
    if output:
        with open(output, "w", newline="", encoding="utf-8") as dst:
            return dump(dst, input, collection, id_column)
    return dump(sys.stdout, input, collection, id_column)


def cmd_root(input: str) -> List[str]:
    roots = [str(r) for r in read_roots(input)]
    for root in roots:
        print(root)
    return roots


def cmd_list(input: str) -> List[str]:
    with import_from_file(input) as db:
        names = db.list_collections()
    for name in names:
        print(name)
    return names


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="ipti",
        description="Explore databases in the IPLD Prolly Tree Indexer format",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_dump = sub.add_parser("dump", help="dump a collection into a csv file")
    ap_dump.add_argument("--input", "-i", default=DEFAULT_DB_PATH, help="Path to database file to read.")
    ap_dump.add_argument("--output", "-o", default="", help="Path to CSV file to write. Omit to output to STDOUT")
    ap_dump.add_argument("--collection", "-c", default=DEFAULT_COLLECTION, help="Name of database collection to read from")
    ap_dump.add_argument("--id", default="", help="Specify a column to output the record ID under. Omit to skip.")

    ap_ingest = sub.add_parser("ingest", help="ingest a collection into a prolly tree from a csv file")
    ap_ingest.add_argument("--output", "-o", default=DEFAULT_DB_PATH, help="Path to database file to write.")
    ap_ingest.add_argument("--input", "-i", default="", help="Path to CSV file to read. Omit to read from STDIN")
    ap_ingest.add_argument("--collection", "-c", default=DEFAULT_COLLECTION, help="Name of database collection to save into")
    ap_ingest.add_argument(
        "--add-row-index",
        action="store_true",
        help="Add an `index` column with the 0-indexed row count",
    )
    ap_ingest.add_argument("--quiet", help="only print the root CID", action="store_true")

    ap_root = sub.add_parser("root", help="Get the root CID from a CAR file")
    ap_root.add_argument("--input", "-i", default=DEFAULT_DB_PATH, help="Path to database file to read.")

    ap_list = sub.add_parser("list", help="List collections in a CAR")
    ap_list.add_argument("--input", "-i", default=DEFAULT_DB_PATH, help="Path to database file to read.")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "dump":
            cmd_dump(args.input, args.output or None, collection=args.collection, id_column=args.id or None)
        elif args.cmd == "ingest":
            cmd_ingest(
                args.output,
                args.input or None,
                collection=args.collection,
                add_row_index=args.add_row_index,
                quiet=args.quiet,
            )
        elif args.cmd == "root":
            cmd_root(args.input)
        elif args.cmd == "list":
            cmd_list(args.input)
    except (IptiError, DAGCBOREncodingError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
