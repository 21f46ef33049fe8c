"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths plus an in-memory stand-in for the
    Motor client/database used by the store, settlement and wager tests.
    Sessions snapshot every collection when a transaction starts and restore
    the snapshot if the transaction body raises, so rollback is observable.
"""

from __future__ import annotations

import copy
import sys
from pathlib import Path

import pytest
from bson import ObjectId

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]

if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))


def _result(**fields):
    return type("Result", (), fields)()


class _FakeCursor:
    def __init__(self, rows: list[dict]) -> None:
        self._rows = rows

    def sort(self, key, direction=1):
        self._rows.sort(
            key=lambda doc: (doc.get(key) is None, doc.get(key)),
            reverse=int(direction) < 0,
        )
        return self

    async def to_list(self, length=None):
        if length is None:
            return list(self._rows)
        return list(self._rows[:length])


class FakeCollection:
    def __init__(self, name: str) -> None:
        self.name = name
        self.docs: list[dict] = []
        self.calls: list[tuple[str, object]] = []
        # method name -> exception raised the next time that method runs
        self.fail_on: dict[str, Exception] = {}

    def _maybe_fail(self, method: str) -> None:
        exc = self.fail_on.pop(method, None)
        if exc is not None:
            raise exc

    @staticmethod
    def _matches(doc: dict, query: dict | None) -> bool:
        for key, expected in (query or {}).items():
            actual = doc.get(key)
            if isinstance(expected, dict) and any(k.startswith("$") for k in expected):
                for op, operand in expected.items():
                    if op == "$ne" and actual == operand:
                        return False
                    if op == "$in" and actual not in operand:
                        return False
                    if op == "$exists" and bool(operand) != (key in doc):
                        return False
                    if op in ("$gt", "$gte", "$lt", "$lte"):
                        if actual is None:
                            return False
                        if op == "$gt" and not actual > operand:
                            return False
                        if op == "$gte" and not actual >= operand:
                            return False
                        if op == "$lt" and not actual < operand:
                            return False
                        if op == "$lte" and not actual <= operand:
                            return False
                continue
            if actual != expected:
                return False
        return True

    @classmethod
    def _evaluate(cls, doc: dict, expr):
        # Aggregation expressions used by pipeline updates: field paths, $cond, $eq.
        if isinstance(expr, str) and expr.startswith("$"):
            return doc.get(expr[1:])
        if isinstance(expr, dict) and "$cond" in expr:
            test, then, otherwise = expr["$cond"]
            return cls._evaluate(doc, then if cls._evaluate(doc, test) else otherwise)
        if isinstance(expr, dict) and "$eq" in expr:
            left, right = expr["$eq"]
            return cls._evaluate(doc, left) == cls._evaluate(doc, right)
        return expr

    @classmethod
    def _apply(cls, doc: dict, update, inserting: bool) -> None:
        if isinstance(update, list):
            for stage in update:
                current = dict(doc)
                for key, expr in stage.get("$set", {}).items():
                    doc[key] = cls._evaluate(current, expr)
            return
        if inserting:
            doc.update(update.get("$setOnInsert", {}))
        doc.update(update.get("$set", {}))
        for key, amount in update.get("$inc", {}).items():
            doc[key] = doc.get(key, 0) + amount

    def _insert(self, doc: dict) -> ObjectId:
        doc = dict(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return doc["_id"]

    async def create_index(self, *args, **kwargs):
        return "index"

    async def find_one(self, query=None, projection=None, session=None, **kwargs):
        self._maybe_fail("find_one")
        for doc in self.docs:
            if self._matches(doc, query):
                return dict(doc)
        return None

    def find(self, query=None, projection=None, session=None, **kwargs):
        self._maybe_fail("find")
        return _FakeCursor([dict(doc) for doc in self.docs if self._matches(doc, query)])

    async def update_one(self, query, update, upsert=False, session=None):
        self.calls.append(("update_one", {"query": query, "update": update, "upsert": upsert}))
        self._maybe_fail("update_one")
        for doc in self.docs:
            if self._matches(doc, query):
                before = dict(doc)
                self._apply(doc, update, inserting=False)
                return _result(matched_count=1, modified_count=int(doc != before), upserted_id=None)
        if not upsert:
            return _result(matched_count=0, modified_count=0, upserted_id=None)
        seed = {k: v for k, v in query.items() if not isinstance(v, dict)}
        self._apply(seed, update, inserting=True)
        return _result(matched_count=0, modified_count=0, upserted_id=self._insert(seed))

    async def update_many(self, query, update, session=None):
        self.calls.append(("update_many", {"query": query, "update": update}))
        self._maybe_fail("update_many")
        matched = modified = 0
        for doc in self.docs:
            if self._matches(doc, query):
                before = dict(doc)
                self._apply(doc, update, inserting=False)
                matched += 1
                modified += int(doc != before)
        return _result(matched_count=matched, modified_count=modified)

    async def find_one_and_update(self, query, update, return_document=False, session=None, **kwargs):
        self._maybe_fail("find_one_and_update")
        for doc in self.docs:
            if self._matches(doc, query):
                before = dict(doc)
                self._apply(doc, update, inserting=False)
                return dict(doc) if return_document else before
        return None

    async def insert_one(self, doc, session=None):
        self._maybe_fail("insert_one")
        return _result(inserted_id=self._insert(doc))

    async def insert_many(self, docs, ordered=True, session=None):
        self._maybe_fail("insert_many")
        return _result(inserted_ids=[self._insert(doc) for doc in docs])

    async def bulk_write(self, ops, ordered=True, session=None):
        self.calls.append(("bulk_write", ops))
        self._maybe_fail("bulk_write")
        matched = modified = 0
        for op in ops:
            result = await self.update_one(op._filter, op._doc, upsert=bool(op._upsert))
            matched += result.matched_count
            modified += result.modified_count
        return _result(matched_count=matched, modified_count=modified)


class FakeDatabase:
    def __init__(self) -> None:
        self._collections: dict[str, FakeCollection] = {}

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    async def command(self, name: str):
        return {"ok": 1.0}


class _FakeTransaction:
    def __init__(self, db: FakeDatabase, options: dict) -> None:
        self._db = db
        self.options = options
        self._snapshot: dict[str, list[dict]] = {}

    async def __aenter__(self):
        self._snapshot = {
            name: copy.deepcopy(coll.docs) for name, coll in self._db._collections.items()
        }
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is not None:
            for name, coll in self._db._collections.items():
                coll.docs = self._snapshot.get(name, [])
        return False


class FakeSession:
    def __init__(self, db: FakeDatabase) -> None:
        self._db = db
        self.transactions: list[dict] = []

    def start_transaction(self, **options):
        self.transactions.append(options)
        return _FakeTransaction(self._db, options)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeClient:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db
        self.sessions: list[FakeSession] = []

    async def start_session(self):
        session = FakeSession(self.db)
        self.sessions.append(session)
        return session


@pytest.fixture
def fake_db(monkeypatch) -> FakeDatabase:
    import app.database as _db

    db = FakeDatabase()
    monkeypatch.setattr(_db, "db", db)
    monkeypatch.setattr(_db, "client", FakeClient(db))
    return db
