#!/usr/bin/env python3
"""Write the mongo shell purge script for a collection without running it."""
import argparse
import os
import sys

# Ensure project root is on sys.path so we can import procedure
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if BASE_DIR not in sys.path:
    sys.path.insert(0, BASE_DIR)

from bson import ObjectId

from mongo_utils import object_id_from_datetime, object_id_timestamp
from procedure import BATCH_SIZE, generate_procedure
from purge_errors import PurgeError
from request_parser import validate_date_time


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Render a batched purge script for the mongo shell")
    parser.add_argument("-d", "--database", required=True, help="Database to purge")
    parser.add_argument("-c", "--collection", required=True, help="Collection to purge")
    cutoff = parser.add_mutually_exclusive_group(required=True)
    cutoff.add_argument("-o", "--object-id", help="Delete documents with _id below this ObjectId")
    cutoff.add_argument("-t", "--date-time", help='Delete documents created before "yyyy-mm-dd hh:mm:ss" (UTC)')
    parser.add_argument("-b", "--batch-size", type=int, default=BATCH_SIZE, help="Documents per batch")
    parser.add_argument("--out", help="Write the script here instead of stdout")
    args = parser.parse_args(argv)
    if args.batch_size <= 0:
        parser.error("--batch-size must be positive")

    try:
        if args.date_time:
            oid = object_id_from_datetime(validate_date_time(args.date_time))
        else:
            object_id_timestamp(args.object_id)
            oid = str(ObjectId(args.object_id))
    except PurgeError as e:
        parser.error(str(e))

    script = generate_procedure(args.database, args.collection, oid, args.batch_size).render_script()
    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            f.write(script)
        print(f"Wrote purge script for {args.database}.{args.collection} (cutoff {oid}) to {args.out}")
    else:
        print(script)
    return 0


if __name__ == "__main__":
    sys.exit(main())
