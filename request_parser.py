import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from purge_errors import ConfigError, FormatError

logger = logging.getLogger(__name__)

MONGO_HOST = os.getenv("MONGO_HOST", "localhost")
MONGO_USER = os.getenv("MONGO_USER")
MONGO_PASSWORD = os.getenv("MONGO_PASSWORD")
MONGO_AUTH_DB = os.getenv("MONGO_AUTH_DB")
MONGO_SHELL = os.getenv("MONGO_SHELL", "mongosh")

TIME_RE = re.compile(r"^(\d{2}):(\d{2}):(\d{2})$")
DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

# ObjectIds hold an unsigned 32-bit count of seconds since the epoch
MIN_CUTOFF = datetime(1970, 1, 1, 0, 0, 0)
MAX_CUTOFF = datetime(2106, 2, 7, 6, 28, 15)


@dataclass(frozen=True)
class PurgeRequest:
    """Everything one purge run needs, built once from the command line."""

    database: Optional[str]
    collection: Optional[str]
    username: Optional[str] = None
    password: Optional[str] = None
    auth_database: Optional[str] = None
    host: str = "localhost"
    object_id: Optional[str] = None
    date_time: Optional[str] = None
    use_shell: bool = False
    shell_bin: str = "mongosh"
    show_progress: bool = False
    script_dir: str = "."

    @property
    def cutoff_label(self) -> str:
        """Human readable cutoff, as given by the operator."""
        return self.date_time or self.object_id or ""


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def request_from_args(args) -> PurgeRequest:
    """Build a PurgeRequest from parsed CLI arguments, falling back to env."""
    return PurgeRequest(
        database=args.database,
        collection=args.collection,
        username=args.username or MONGO_USER,
        password=args.password or MONGO_PASSWORD,
        auth_database=args.auth_database or MONGO_AUTH_DB,
        host=args.host or MONGO_HOST,
        object_id=args.object_id,
        date_time=args.date_time,
        use_shell=args.shell,
        shell_bin=args.shell_bin or MONGO_SHELL,
        show_progress=args.progress,
        script_dir=args.script_dir or ".",
    )


def validate_date_time(value: str) -> datetime:
    """Check a "yyyy-mm-dd hh:mm:ss" string and return it as a naive datetime.

    The time part must have hour <= 23 and minute/second <= 59, and the date
    part must be a real calendar date (2017-02-30 is rejected) that an ObjectId
    can encode.
    """
    parts = value.strip().split(" ")
    if len(parts) != 2:
        raise FormatError(f"Wrong date time format provided [{value}]. Exiting...")
    date_part, time_part = parts

    time_match = TIME_RE.match(time_part)
    if not time_match:
        raise FormatError(f"Wrong date time format provided [{value}]. Exiting...")
    hour, minute, second = (int(g) for g in time_match.groups())
    if hour > 23 or minute > 59 or second > 59:
        raise FormatError(f"Wrong date time format provided [{value}]. Exiting...")

    date_match = DATE_RE.match(date_part)
    if not date_match:
        raise FormatError(f"Wrong date time format provided [{value}]. Exiting...")
    try:
        year, month, day = (int(g) for g in date_match.groups())
        parsed = datetime(year, month, day, hour, minute, second)
    except ValueError as e:
        raise FormatError(f"Wrong date time format provided [{value}]: {e}") from e

    if not MIN_CUTOFF <= parsed <= MAX_CUTOFF:
        raise FormatError(
            f"Date time [{value}] is outside the ObjectId range "
            f"{MIN_CUTOFF} - {MAX_CUTOFF} (UTC). Exiting..."
        )
    return parsed


def validate_request(request: PurgeRequest) -> PurgeRequest:
    """Run every input check in order and raise on the first failure."""
    if _blank(request.database) or _blank(request.collection):
        raise ConfigError("ERROR: One or more options (database/collection) are missing")

    has_oid = not _blank(request.object_id)
    has_time = not _blank(request.date_time)
    if not has_oid and not has_time:
        raise ConfigError("One or more options (objectid/dateTime) are missing")
    if has_oid and has_time:
        raise ConfigError("Both time and objectid are provided. Only one of these are essential")

    if _blank(request.username) or _blank(request.password) or _blank(request.auth_database):
        raise ConfigError(
            "ERROR: One or more options (username/password/authenticationDatabase) "
            "for connecting to mongo instance are missing."
        )

    if has_time:
        validate_date_time(request.date_time)
        logger.info("Date time format provided is valid.")

    return request


def to_iso_instant(value: str) -> str:
    """'2017-01-01 00:00:00' -> '2017-01-01T00:00:00Z' (taken as UTC as-is)."""
    return validate_date_time(value).strftime("%Y-%m-%dT%H:%M:%SZ")
