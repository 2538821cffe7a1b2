import logging
import os
import struct
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError
from tqdm import tqdm

from procedure import PurgeProcedure, PurgeResult
from purge_errors import ExecutionError, FormatError, InvalidIdentifierError, PurgeConnectionError
from request_parser import PurgeRequest

logger = logging.getLogger(__name__)

MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))


def build_client(request: PurgeRequest) -> MongoClient:
    """Create a client for the request's host and credentials."""
    return MongoClient(
        host=request.host,
        username=request.username,
        password=request.password,
        authSource=request.auth_database,
        serverSelectionTimeoutMS=MONGO_TIMEOUT_MS,
    )


def object_id_from_datetime(value: datetime) -> str:
    """Return the ObjectId whose embedded timestamp is ``value`` (naive = UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    try:
        return str(ObjectId.from_datetime(value))
    except (struct.error, OverflowError) as e:
        raise FormatError(f"Date time [{value}] cannot be encoded in an ObjectId: {e}") from e


def object_id_timestamp(oid: str) -> datetime:
    """Return the creation time encoded in ``oid``."""
    try:
        return ObjectId(oid).generation_time
    except (InvalidId, TypeError) as e:
        raise InvalidIdentifierError(
            f"Invalid ObjectId. This is usually a 24 character hex string. Actual error message: {e}"
        ) from e


class MongoBackend:
    """Runs every purge step through the pymongo driver."""

    def __init__(self, request: PurgeRequest, client: Optional[MongoClient] = None):
        self.request = request
        self._client = client

    @property
    def client(self) -> MongoClient:
        if self._client is None:
            self._client = build_client(self.request)
        return self._client

    def ping(self) -> None:
        try:
            self.client.admin.command("ping")
        except PyMongoError as e:
            # Timeouts and authentication failures both land here
            raise PurgeConnectionError(f"Unable to connect to mongod. Exiting... ({e})") from e

    def validate_object_id(self, oid: str) -> datetime:
        logger.info(f"Validating ObjectId ['{oid}']")
        self.ping()
        ts = object_id_timestamp(oid)
        logger.info(f"ObjectId [{oid}] is Valid.")
        return ts

    def resolve_cutoff(self, value: datetime) -> str:
        self.ping()
        return object_id_from_datetime(value)

    def execute(self, procedure: PurgeProcedure) -> PurgeResult:
        collection = self.client[procedure.database][procedure.collection]
        progress = None
        if self.request.show_progress:
            progress = lambda total: tqdm(total=total, unit="doc", desc=procedure.collection)
        try:
            return procedure.run(collection, progress=progress)
        except ConnectionFailure as e:
            raise PurgeConnectionError(f"Lost connection to mongod during purge: {e}") from e
        except PyMongoError as e:
            raise ExecutionError(f"Purge of {procedure.database}.{procedure.collection} failed: {e}") from e

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
