import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from bson import ObjectId

logger = logging.getLogger(__name__)

BATCH_SIZE = 3000

# Called with the total to delete; returns something with update() and close().
ProgressFactory = Callable[[int], Any]

SCRIPT_TEMPLATE = """
// Database to use
db = db.getSiblingDB({database_literal});

// Ids older than the cutoff ObjectId are collected into 'removeIds' and removed
// {batch_size} at a time so a single delete never runs unbounded

var coll=db.getCollection({collection_literal});
var cutoff=ObjectId("{cutoff}");
var cnt=coll.countDocuments({{_id: {{$lt: cutoff}}}});
print('[', Date(), ']', ':', 'Total Documents to delete', '-', cnt);
if (cnt<=0) {{print('[', Date(), ']', ':', 'Deletion is complete');}}

while (cnt>0) {{
	var removeIds=coll.find({{_id: {{$lt: cutoff}}}}, {{_id: 1}}).limit({batch_size}).toArray().map(function(doc) {{return doc._id;}});
	removeIds.forEach(function(oid) {{coll.deleteOne({{_id: oid}});}});
	cnt=cnt-{batch_size};
	if (cnt>0) {{print('[', Date(), ']', ':', 'Documents Remaining', '-', cnt);}} else {{print('[', Date(), ']', ':', 'Deletion is complete');}}
}}
"""


@dataclass(frozen=True)
class PurgeProcedure:
    """Batched deletion of every document whose _id sorts before ``cutoff``."""

    database: str
    collection: str
    cutoff: str
    batch_size: int = BATCH_SIZE

    @property
    def query(self) -> Dict[str, Any]:
        return {"_id": {"$lt": ObjectId(self.cutoff)}}

    def render_script(self) -> str:
        """Render the procedure as a mongo shell script."""
        return SCRIPT_TEMPLATE.format(
            database_literal=json.dumps(self.database),
            collection_literal=json.dumps(self.collection),
            cutoff=self.cutoff,
            batch_size=self.batch_size,
        )

    def run(self, collection, progress: Optional[ProgressFactory] = None) -> "PurgeResult":
        """Run the batched delete against a pymongo collection.

        The remaining counter drops by ``batch_size`` on every pass instead of
        being re-counted, so progress lines match the shell script and the loop
        always terminates.
        """
        total = collection.count_documents(self.query)
        logger.info(f"Total Documents to delete - {total}")
        if total <= 0:
            logger.info("Deletion is complete")
            return PurgeResult()

        bar = progress(total) if progress is not None else None
        remaining = total
        deleted = 0
        batches = 0
        try:
            while remaining > 0:
                ids: List[ObjectId] = [
                    doc["_id"]
                    for doc in collection.find(self.query, {"_id": 1}).limit(self.batch_size)
                ]
                if ids:
                    result = collection.delete_many({"_id": {"$in": ids}})
                    deleted += result.deleted_count
                    if bar is not None:
                        bar.update(result.deleted_count)
                batches += 1
                remaining -= self.batch_size
                if remaining > 0:
                    logger.info(f"Documents Remaining - {remaining}")
                else:
                    logger.info("Deletion is complete")
        finally:
            if bar is not None:
                bar.close()

        return PurgeResult(total=total, deleted=deleted, batches=batches)


@dataclass
class PurgeResult:
    total: int = 0
    deleted: int = 0
    batches: int = 0
    success: bool = True
    exit_code: int = 0
    message: Optional[str] = None

    def status_line(self) -> str:
        if self.success:
            return f'{{ Run : "Success", Exit : {self.exit_code} }}'
        msg = self.message or "Please check the error and take correct action"
        return f'{{ Run : "Failed", Exit : {self.exit_code}, msg : "{msg}" }}'


def generate_procedure(database: str, collection: str, cutoff: str,
                       batch_size: int = BATCH_SIZE) -> PurgeProcedure:
    """Build the deletion procedure for one collection and cutoff."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    return PurgeProcedure(database=database, collection=collection,
                          cutoff=str(cutoff), batch_size=batch_size)
