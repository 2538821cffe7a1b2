from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

from conftest import FakeCollection, make_ids
from procedure import BATCH_SIZE, PurgeResult, generate_procedure

CUTOFF = "58966b000000000000000000"


def _future_cutoff():
    return str(ObjectId.from_datetime(datetime.now(timezone.utc) + timedelta(days=1)))


def test_render_script_for_third_party_tracking():
    script = generate_procedure("test", "thirdPartyTracking", CUTOFF).render_script()

    assert 'db = db.getSiblingDB("test");' in script
    assert 'db.getCollection("thirdPartyTracking")' in script
    assert f'ObjectId("{CUTOFF}")' in script
    assert "countDocuments({_id: {$lt: cutoff}})" in script
    assert ".limit(3000)" in script
    assert "cnt=cnt-3000;" in script
    assert "while (cnt>0)" in script
    assert "Deletion is complete" in script


def test_render_script_quotes_collection_name():
    script = generate_procedure("test", 'odd"name', CUTOFF).render_script()
    assert 'db.getCollection("odd\\"name")' in script


def test_render_script_quotes_database_name():
    script = generate_procedure('x"; db.dropDatabase(); "', "events", CUTOFF).render_script()

    assert 'db = db.getSiblingDB("x\\"; db.dropDatabase(); \\"");' in script
    assert "use " not in script


def test_generate_rejects_bad_batch_size():
    with pytest.raises(ValueError):
        generate_procedure("test", "events", CUTOFF, batch_size=0)


def test_query_uses_cutoff_object_id():
    proc = generate_procedure("test", "events", CUTOFF)
    assert proc.batch_size == BATCH_SIZE
    assert proc.query == {"_id": {"$lt": ObjectId(CUTOFF)}}


def test_seven_thousand_documents_three_batches(caplog):
    caplog.set_level("INFO")
    coll = FakeCollection(make_ids(7000))

    result = generate_procedure("test", "events", _future_cutoff()).run(coll)

    assert result.total == 7000
    assert result.deleted == 7000
    assert result.batches == 3
    assert coll.ids == []
    assert [len(c) for c in coll.delete_calls] == [3000, 3000, 1000]
    assert caplog.messages == [
        "Total Documents to delete - 7000",
        "Documents Remaining - 4000",
        "Documents Remaining - 1000",
        "Deletion is complete",
    ]


def test_terminates_when_store_deletes_less(caplog):
    caplog.set_level("INFO")
    coll = FakeCollection(make_ids(7000), max_delete=500)

    result = generate_procedure("test", "events", _future_cutoff()).run(coll)

    assert result.batches == 3
    assert result.deleted == 1500
    assert len(coll.ids) == 5500
    assert caplog.messages[-3:] == [
        "Documents Remaining - 4000",
        "Documents Remaining - 1000",
        "Deletion is complete",
    ]


def test_only_documents_before_cutoff_are_deleted():
    old = make_ids(10)
    cutoff = str(ObjectId.from_datetime(datetime.now(timezone.utc) + timedelta(days=1)))
    newer = [ObjectId.from_datetime(datetime.now(timezone.utc) + timedelta(days=2))]
    coll = FakeCollection(old + newer)

    result = generate_procedure("test", "events", cutoff).run(coll)

    assert result.total == 10
    assert coll.ids == newer


def test_already_purged_collection_is_a_noop(caplog):
    caplog.set_level("INFO")
    coll = FakeCollection([])

    result = generate_procedure("test", "events", CUTOFF).run(coll)

    assert result.total == 0
    assert result.batches == 0
    assert coll.delete_calls == []
    assert caplog.messages == ["Total Documents to delete - 0", "Deletion is complete"]


def test_running_twice_second_run_is_noop():
    coll = FakeCollection(make_ids(10))
    proc = generate_procedure("test", "events", _future_cutoff())

    first = proc.run(coll)
    second = proc.run(coll)

    assert first.deleted == 10
    assert second.total == 0
    assert second.batches == 0


def test_progress_bar_gets_deleted_counts():
    updates = []

    class Bar:
        def __init__(self, total):
            self.total = total
            self.closed = False

        def update(self, n):
            updates.append(n)

        def close(self):
            self.closed = True

    bars = []

    def factory(total):
        bars.append(Bar(total))
        return bars[-1]

    coll = FakeCollection(make_ids(3500))
    generate_procedure("test", "events", _future_cutoff()).run(coll, progress=factory)

    assert bars[0].total == 3500
    assert bars[0].closed
    assert updates == [3000, 500]


def test_status_lines():
    assert PurgeResult().status_line() == '{ Run : "Success", Exit : 0 }'
    failed = PurgeResult(success=False, exit_code=1)
    assert failed.status_line() == (
        '{ Run : "Failed", Exit : 1, msg : "Please check the error and take correct action" }'
    )
