"""
Centralized MongoDB access for emergency call records.
Build a CallRecordStore from settings with `connect_store()`, or wrap any
pymongo-compatible collection directly (tests pass an in-memory one).

Writes are unconditional `$set` updates keyed by providerCallId or id: there
are no locks and no version checks, so concurrent writers resolve by last
write wins.
"""
from datetime import datetime
from typing import Optional

from pymongo import DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from services.call_records import new_call_record

COLLECTION_NAME = "emergency_calls"
_NO_ID = {"_id": 0}


def connect_store(settings) -> "CallRecordStore":
    """Open the emergency_calls collection described by *settings*."""
    client = MongoClient(settings.mongodb_uri)
    collection = client[settings.mongodb_db][COLLECTION_NAME]
    store = CallRecordStore(collection)
    try:
        store.ensure_indexes()
    except PyMongoError as e:
        print(f"[DB] WARNING: could not create indexes: {e}")
    return store


class CallRecordStore:
    """Durable EmergencyCallRecord storage on top of a MongoDB collection."""

    def __init__(self, collection):
        self.collection = collection

    def ensure_indexes(self):
        self.collection.create_index("id", unique=True)
        # providerCallId is unknown at creation time, so only set values are unique
        self.collection.create_index(
            "providerCallId",
            unique=True,
            partialFilterExpression={"providerCallId": {"$type": "string"}},
        )
        self.collection.create_index([("userId", 1), ("createdAt", DESCENDING)])

    # -- reads ---------------------------------------------------------------

    def get(self, record_id: str) -> Optional[dict]:
        if not record_id:
            return None
        return self.collection.find_one({"id": record_id}, _NO_ID)

    def find_by_provider_call_id(self, provider_call_id: str) -> Optional[dict]:
        if not provider_call_id:
            return None
        return self.collection.find_one({"providerCallId": provider_call_id}, _NO_ID)

    def list_records(self, user_id: Optional[str] = None) -> list:
        """All records (or one user's), newest first."""
        query = {"userId": user_id} if user_id else {}
        return list(self.collection.find(query, _NO_ID).sort("createdAt", DESCENDING))

    # -- writes --------------------------------------------------------------

    def create(self, record: dict) -> dict:
        self.collection.insert_one(dict(record))
        return record

    def update(self, record_id: str, fields: dict) -> Optional[dict]:
        return self._set({"id": record_id}, fields)

    def update_by_provider_call_id(self, provider_call_id: str, fields: dict) -> Optional[dict]:
        """Overwrite *fields* on the record for this call. Returns None if no record matches."""
        if not provider_call_id:
            return None
        return self._set({"providerCallId": provider_call_id}, fields)

    def attach_provider_call_id(self, record_id: str, provider_call_id: str, status: str = None) -> Optional[dict]:
        """
        Set the provider call id on a record that does not have one yet.
        An id that is already set is never replaced.
        """
        fields = {"providerCallId": provider_call_id}
        if status:
            fields["status"] = status
        updated = self._set({"id": record_id, "providerCallId": None}, fields)
        if updated is not None:
            return updated
        existing = self.get(record_id)
        if existing and existing.get("providerCallId") != provider_call_id:
            print(
                f"[DB] Refusing to replace providerCallId {existing.get('providerCallId')} "
                f"with {provider_call_id} on record {record_id}"
            )
        return None

    def find_or_create_call_record(self, provider_call_id: str, defaults: dict) -> tuple:
        """
        Return (record, created) for *provider_call_id*, synthesizing a record
        from *defaults* when none exists. Safe to call repeatedly: the insert
        is an upsert keyed by providerCallId, so retries converge on one record.
        """
        existing = self.find_by_provider_call_id(provider_call_id)
        if existing is not None:
            return existing, False

        doc = new_call_record(**defaults)
        doc.pop("providerCallId")
        result = self.collection.update_one(
            {"providerCallId": provider_call_id},
            {"$setOnInsert": doc},
            upsert=True,
        )
        created = result.upserted_id is not None
        return self.find_by_provider_call_id(provider_call_id), created

    def _set(self, query: dict, fields: dict) -> Optional[dict]:
        changes = dict(fields)
        changes["updatedAt"] = datetime.utcnow()
        return self.collection.find_one_and_update(
            query,
            {"$set": changes},
            projection=_NO_ID,
            return_document=ReturnDocument.AFTER,
        )
