#!/usr/bin/env python3
"""Delete documents older than a cutoff from one MongoDB collection.

Examples:
    Delete data using ObjectId
        mongo-purge -u admin -p secret -a admin -d test -c thirdPartyTracking -o "58966b000000000000000000"
    Delete data using date time
        mongo-purge -u admin -p secret -a admin -d test -c thirdPartyTracking -t "2017-01-01 00:00:00"
"""
import argparse
import logging
import sys
from enum import Enum
from typing import List, Optional

from mongo_utils import MongoBackend
from procedure import PurgeResult, generate_procedure
from purge_errors import PurgeError
from request_parser import PurgeRequest, request_from_args, validate_date_time, validate_request
from shell_utils import ShellBackend

logger = logging.getLogger("mongo_purge")

LOG_FORMAT = "[%(asctime)s]: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

USAGE = """\
	Required:
	=============
		- u : Username to connect to the mongodb instance
		- p : Password for the provided username
		- a : authentication database to use for mongodb log in
		- h : hostname this script should run against (Defaults to localhost)
		- d : Database name to use for purging.
		- c : Collection to run purge against.
		- o : ObjectId of max date to delete older data than selected date.
		- t : date time of max date to delete older than provided date.
			please chose date time wisely according to the time_zone of the data in the collection.

	Optional:
	=============
		--shell         : run the purge through the mongo shell client instead of the driver
		--shell-bin     : mongo shell binary to use (Defaults to $MONGO_SHELL or mongosh)
		--script-dir    : directory for generated purge_<timestamp>.js files (Defaults to .)
		--progress      : show a progress bar while deleting

	Note:
	============
		-- Either one ObjectId or date time is only required. Script throws an error if both are supplied or none.
		-- date time format must be like "yyyy-mm-dd hh:mm:ss"

	Examples:
	===========
		-- Delete data using ObjectID
			mongo-purge -d test -c thirdPartyTracking -o "58966b000000000000000000"
		-- Delete data using date time
			mongo-purge -d test -c thirdPartyTracking -t "2017-01-01 00:00:00"
"""


class PurgeState(Enum):
    INIT = "Init"
    VALIDATED = "Validated"
    CUTOFF_RESOLVED = "CutoffResolved"
    PROCEDURE_GENERATED = "ProcedureGenerated"
    EXECUTED = "Executed"
    DONE = "Done"
    FAILED = "Failed"


class UsageExit(Exception):
    """Raised by the argument parser instead of exiting the process."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message)
        self.message = message


class PurgeArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        raise UsageExit(message)


def usage(message: Optional[str] = None) -> int:
    if message:
        print(message)
    print(USAGE)
    return 1


def build_parser() -> PurgeArgumentParser:
    # -h is the host flag, so argparse's own help is disabled
    parser = PurgeArgumentParser(prog="mongo-purge", add_help=False, allow_abbrev=False)
    parser.add_argument("-u", dest="username")
    parser.add_argument("-p", dest="password")
    parser.add_argument("-a", dest="auth_database")
    parser.add_argument("-h", dest="host")
    parser.add_argument("-d", dest="database")
    parser.add_argument("-c", dest="collection")
    parser.add_argument("-o", dest="object_id")
    parser.add_argument("-t", dest="date_time")
    parser.add_argument("--shell", action="store_true")
    parser.add_argument("--shell-bin", dest="shell_bin")
    parser.add_argument("--script-dir", dest="script_dir")
    parser.add_argument("--progress", action="store_true")
    parser.add_argument("--help", action="store_true", dest="show_help")
    return parser


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT, stream=sys.stdout)


def make_backend(request: PurgeRequest):
    return ShellBackend(request) if request.use_shell else MongoBackend(request)


def run_purge(request: PurgeRequest, backend=None) -> PurgeResult:
    """Validate, resolve the cutoff, build the procedure and execute it.

    Raises the first PurgeError hit; nothing is retried.
    """
    state = PurgeState.INIT
    try:
        request = validate_request(request)
        state = PurgeState.VALIDATED
        logger.debug(f"State: {state.value}")

        backend = backend or make_backend(request)
        try:
            if request.date_time:
                cutoff = backend.resolve_cutoff(validate_date_time(request.date_time))
            else:
                backend.validate_object_id(request.object_id)
                cutoff = request.object_id
            state = PurgeState.CUTOFF_RESOLVED
            logger.debug(f"State: {state.value} ({cutoff})")

            procedure = generate_procedure(request.database, request.collection, cutoff)
            state = PurgeState.PROCEDURE_GENERATED
            logger.debug(f"State: {state.value}")

            logger.info(f"Removing documents older than [{request.cutoff_label}].")
            result = backend.execute(procedure)
            state = PurgeState.EXECUTED
            logger.debug(f"State: {state.value}")
        finally:
            backend.close()
    except PurgeError:
        logger.debug(f"State: {PurgeState.FAILED.value} (from {state.value})")
        raise

    state = PurgeState.DONE
    logger.debug(f"State: {state.value}")
    return result


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except UsageExit as e:
        return usage(e.message)
    if args.show_help:
        return usage()

    request = request_from_args(args)
    try:
        result = run_purge(request)
    except PurgeError as e:
        logger.error(str(e))
        if e.show_usage:
            return usage()
        failed = PurgeResult(success=False, exit_code=e.exit_code)
        logger.info(failed.status_line())
        return e.exit_code

    logger.info(
        f"Deleted {result.deleted} of {result.total} documents in {result.batches} batch(es)."
    )
    logger.info(result.status_line())
    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
