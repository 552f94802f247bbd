"""
Shared fixtures. Tests run from the repo root or backend/; either way the
backend modules are importable the same way app.py imports them.
"""

import copy
import itertools
import os
import sys
from types import SimpleNamespace

import pytest
from pymongo import ReturnDocument

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from config import Settings
from db import CallRecordStore
from services.call_records import new_call_record
from services.telephony import PlacedCall

CONFIGURED = Settings(
    twilio_account_sid="AC00000000000000000000000000000000",
    twilio_auth_token="secret",
    twilio_phone_number="+15550001111",
    public_base_url="https://example.test",
)


class _Cursor:
    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction=1):
        return sorted(self.docs, key=lambda d: d.get(key), reverse=direction < 0)

    def __iter__(self):
        return iter(self.docs)


class InMemoryCollection:
    """Just enough of pymongo's Collection API for CallRecordStore."""

    def __init__(self):
        self.docs = []
        self._ids = itertools.count(1)

    @staticmethod
    def _matches(doc, query):
        # doc.get() returns None for missing fields, like Mongo's {field: None}
        return all(doc.get(k) == v for k, v in query.items())

    @staticmethod
    def _project(doc, projection):
        out = copy.deepcopy(doc)
        if projection and projection.get("_id") == 0:
            out.pop("_id", None)
        return out

    def _first(self, query):
        return next((d for d in self.docs if self._matches(d, query)), None)

    def create_index(self, *args, **kwargs):
        return None

    def find_one(self, query, projection=None):
        doc = self._first(query)
        return self._project(doc, projection) if doc is not None else None

    def find(self, query=None, projection=None):
        return _Cursor([self._project(d, projection) for d in self.docs if self._matches(d, query or {})])

    def insert_one(self, doc):
        stored = copy.deepcopy(doc)
        stored["_id"] = next(self._ids)
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    def update_one(self, query, update, upsert=False):
        doc = self._first(query)
        if doc is not None:
            doc.update(copy.deepcopy(update.get("$set", {})))
            return SimpleNamespace(matched_count=1, upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, upserted_id=None)
        new = dict(query)
        new.update(update.get("$setOnInsert", {}))
        new.update(update.get("$set", {}))
        inserted = self.insert_one(new)
        return SimpleNamespace(matched_count=0, upserted_id=inserted.inserted_id)

    def find_one_and_update(self, query, update, projection=None,
                            return_document=ReturnDocument.BEFORE):
        doc = self._first(query)
        if doc is None:
            return None
        before = self._project(doc, projection)
        doc.update(copy.deepcopy(update.get("$set", {})))
        if return_document == ReturnDocument.AFTER:
            return self._project(doc, projection)
        return before


class FakeTelephony:
    """Records placement attempts instead of talking to Twilio."""

    from_number = CONFIGURED.twilio_phone_number

    def __init__(self, missing_for_calls=None, missing_for_status=None, error=None, live=None):
        self.missing_for_calls = missing_for_calls or {"accountSid": False, "authToken": False, "phoneNumber": False}
        self.missing_for_status = missing_for_status or {"accountSid": False, "authToken": False}
        self.error = error
        self.live = live or {}
        self.placed = []

    @property
    def configured_for_calls(self):
        return not any(self.missing_for_calls.values())

    @property
    def configured_for_status(self):
        return not any(self.missing_for_status.values())

    def place_call(self, to, from_, dialogue_url, status_webhook_url, status_events):
        self.placed.append({
            "to": to,
            "from": from_,
            "dialogue_url": dialogue_url,
            "status_webhook_url": status_webhook_url,
            "status_events": list(status_events),
        })
        if self.error:
            raise self.error
        return PlacedCall(provider_call_id="CA" + "1" * 32, status="queued")

    def fetch_call(self, provider_call_id):
        if self.error:
            raise self.error
        return dict(self.live)


@pytest.fixture
def store():
    return CallRecordStore(InMemoryCollection())


@pytest.fixture
def telephony():
    return FakeTelephony()


@pytest.fixture
def app(store, telephony):
    return create_app(settings=CONFIGURED, store=store, provider=telephony)


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


@pytest.fixture
def tracked_call(store):
    """A record as the initiator leaves it after Twilio accepted the call."""
    record = new_call_record(phone_number="+15551234567", patient_name="Ada", user_id="user-1")
    store.create(record)
    store.attach_provider_call_id(record["id"], "CA-tracked", "queued")
    return store.get(record["id"])
