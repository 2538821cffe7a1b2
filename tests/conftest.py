"""Shared pytest fixtures and fakes standing in for pymongo objects."""

import os
import sys
from types import SimpleNamespace

import pytest
from bson import ObjectId

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from request_parser import PurgeRequest


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    def limit(self, n):
        return FakeCursor(self.docs[:n])

    def __iter__(self):
        return iter(self.docs)


class FakeCollection:
    """Keeps a sorted list of _ids and answers the queries a purge issues.

    ``max_delete`` caps how many ids one delete_many removes, to mimic a store
    that deletes fewer documents than asked.
    """

    def __init__(self, ids, max_delete=None):
        self.ids = sorted(ids)
        self.max_delete = max_delete
        self.delete_calls = []

    def _match(self, query):
        bound = query["_id"]["$lt"]
        return [i for i in self.ids if i < bound]

    def count_documents(self, query):
        return len(self._match(query))

    def find(self, query, projection=None):
        return FakeCursor([{"_id": i} for i in self._match(query)])

    def delete_many(self, query):
        targets = list(query["_id"]["$in"])
        self.delete_calls.append(targets)
        if self.max_delete is not None:
            targets = targets[:self.max_delete]
        gone = set(targets)
        self.ids = [i for i in self.ids if i not in gone]
        return SimpleNamespace(deleted_count=len(targets))


class FakeAdmin:
    def __init__(self, error=None):
        self.error = error
        self.commands = []

    def command(self, name):
        self.commands.append(name)
        if self.error is not None:
            raise self.error
        return {"ok": 1.0}


class FakeClient:
    def __init__(self, collection=None, ping_error=None):
        self.admin = FakeAdmin(ping_error)
        self.collection = collection
        self.closed = False
        self.opened = []

    def __getitem__(self, name):
        client = self

        class _Database:
            def __getitem__(self, coll_name):
                client.opened.append((name, coll_name))
                return client.collection

        return _Database()

    def close(self):
        self.closed = True


def make_ids(n):
    return [ObjectId() for _ in range(n)]


@pytest.fixture
def request_factory():
    def _make(**overrides):
        values = dict(
            database="test",
            collection="thirdPartyTracking",
            username="admin",
            password="secret",
            auth_database="admin",
            host="localhost",
        )
        values.update(overrides)
        return PurgeRequest(**values)

    return _make
