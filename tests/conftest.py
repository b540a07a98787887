import copy
import io
import os
import sys
from pathlib import Path

import pytest

# config נטען בזמן import ודורש MONGODB_URL
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017/snippet_vault_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bson import ObjectId  # noqa: E402
from pymongo.errors import PyMongoError  # noqa: E402


class FakeResult:
    def __init__(self, matched=0, modified=0, deleted=0, inserted_id=None, upserted_id=None):
        self.matched_count = matched
        self.modified_count = modified
        self.deleted_count = deleted
        self.inserted_id = inserted_id
        self.upserted_id = upserted_id
        self.acknowledged = True


_MISSING = object()


def _match_value(value, cond):
    if isinstance(cond, dict) and cond and all(str(k).startswith("$") for k in cond):
        for op, arg in cond.items():
            v = None if value is _MISSING else value
            if op == "$ne":
                if v == arg:
                    return False
            elif op == "$in":
                if v not in arg:
                    return False
            elif op == "$lte":
                if v is None or not v <= arg:
                    return False
            elif op == "$gte":
                if v is None or not v >= arg:
                    return False
            else:
                raise NotImplementedError(op)
        return True
    return (None if value is _MISSING else value) == cond


def _match(doc, flt):
    for key, cond in (flt or {}).items():
        if not _match_value(doc.get(key, _MISSING), cond):
            return False
    return True


def _project(doc, projection):
    if not projection:
        return copy.deepcopy(doc)
    keys = {k for k, v in projection.items() if v}
    keys.add("_id")
    return {k: copy.deepcopy(v) for k, v in doc.items() if k in keys}


def _sort_key(field_name):
    def key(doc):
        value = doc.get(field_name)
        return (value is None, value)
    return key


class FakeCollection:
    """Minimal in-memory stand-in for a pymongo Collection."""

    def __init__(self):
        self.docs = []
        self.fail = False

    def _check(self):
        if self.fail:
            raise PyMongoError("fake collection failure")

    # Index API
    def create_indexes(self, *a, **k):
        return None

    def insert_one(self, doc):
        self._check()
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return FakeResult(inserted_id=doc["_id"])

    def find_one(self, flt=None, projection=None):
        self._check()
        for d in self.docs:
            if _match(d, flt):
                return _project(d, projection)
        return None

    def find(self, flt=None, projection=None, sort=None, limit=0):
        self._check()
        rows = [d for d in self.docs if _match(d, flt)]
        for field_name, direction in reversed(list(sort or [])):
            rows.sort(key=_sort_key(field_name), reverse=direction < 0)
        if limit:
            rows = rows[: int(limit)]
        return [_project(d, projection) for d in rows]

    def count_documents(self, flt=None):
        self._check()
        return sum(1 for d in self.docs if _match(d, flt))

    @staticmethod
    def _apply(doc, update):
        changed = False
        for key, value in (update.get("$set") or {}).items():
            if doc.get(key, _MISSING) != value:
                doc[key] = copy.deepcopy(value)
                changed = True
        return changed

    def _upsert(self, flt, update):
        doc = {k: v for k, v in flt.items() if not isinstance(v, dict)}
        doc.update(copy.deepcopy(update.get("$setOnInsert") or {}))
        self._apply(doc, update)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return FakeResult(upserted_id=doc["_id"])

    def update_one(self, flt, update, upsert=False):
        self._check()
        for d in self.docs:
            if _match(d, flt):
                return FakeResult(matched=1, modified=int(self._apply(d, update)))
        if upsert:
            return self._upsert(flt, update)
        return FakeResult()

    def update_many(self, flt, update, upsert=False):
        self._check()
        matched = modified = 0
        for d in self.docs:
            if _match(d, flt):
                matched += 1
                modified += int(self._apply(d, update))
        return FakeResult(matched=matched, modified=modified)

    def delete_one(self, flt):
        self._check()
        for i, d in enumerate(self.docs):
            if _match(d, flt):
                self.docs.pop(i)
                return FakeResult(deleted=1)
        return FakeResult()

    def delete_many(self, flt):
        self._check()
        before = len(self.docs)
        self.docs = [d for d in self.docs if not _match(d, flt)]
        return FakeResult(deleted=before - len(self.docs))


class FakeDB(dict):
    def __getitem__(self, name):
        if name not in self:
            super().__setitem__(name, FakeCollection())
        return super().__getitem__(name)


class FakeGridOut(io.BytesIO):
    def __init__(self, data, content_type, metadata):
        super().__init__(data)
        self.content_type = content_type
        self.metadata = metadata


class FakeBlobStore:
    """Same surface as GridFSBlobStore, kept in memory."""

    def __init__(self):
        self.blobs = {}
        self.fail_remove = False
        self.removed = []

    def put(self, data, *, original_name, content_type, user_id):
        raw = data if isinstance(data, bytes) else data.read()
        ext = os.path.splitext(original_name or "")[1].lower()
        path = f"blob{len(self.blobs) + len(self.removed) + 1}{ext}"
        self.blobs[path] = (raw, content_type, {"user_id": user_id, "original_name": original_name})
        return path

    def open(self, path, user_id=None):
        entry = self.blobs.get(path)
        if entry is None:
            return None
        raw, content_type, metadata = entry
        if user_id is not None and metadata.get("user_id") != user_id:
            return None
        return FakeGridOut(raw, content_type, metadata)

    def remove(self, path):
        if self.fail_remove:
            raise PyMongoError("gridfs unavailable")
        if self.blobs.pop(path, None) is None:
            return 0
        self.removed.append(path)
        return 1


@pytest.fixture
def fake_db():
    return FakeDB()


@pytest.fixture
def blobs():
    return FakeBlobStore()


@pytest.fixture
def manager(fake_db):
    from database import DatabaseManager

    return DatabaseManager(db=fake_db)


@pytest.fixture
def svc(manager, blobs):
    from services.container import build_services

    return build_services(manager, blobs=blobs)


@pytest.fixture
def app(svc):
    from services.container import set_services
    from webapp.app import create_app

    application = create_app(svc)
    application.testing = True
    yield application
    set_services(None)


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


@pytest.fixture
def auth_client(client):
    with client.session_transaction() as sess:
        sess["user_id"] = "u1"
    return client
