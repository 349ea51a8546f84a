from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any


class RecordingStore(ABC):
    """Recordings keyed by their provider bot id.

    Status writes and sync claims are conditional so that concurrent webhook
    deliveries for the same bot cannot overwrite a terminal recording or start
    the sync pipeline twice.
    """

    @abstractmethod
    def save(self, record: Mapping[str, Any]) -> str:
        raise NotImplementedError

    @abstractmethod
    def get_by_id(self, recording_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def get_by_bot_id(self, bot_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def update_status_unless(
        self,
        recording_id: str,
        status: str,
        blocked_status: str,
    ) -> bool:
        raise NotImplementedError

    @abstractmethod
    def claim_sync(
        self,
        recording_id: str,
        *,
        now: datetime,
        lease_until: datetime,
        blocked_status: str,
    ) -> bool:
        raise NotImplementedError

    @abstractmethod
    def release_sync_claim(self, recording_id: str) -> None:
        raise NotImplementedError


class InMemoryRecordingStore(RecordingStore):
    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._bot_id_to_record_id: dict[str, str] = {}
        self._lock = threading.Lock()

    def save(self, record: Mapping[str, Any]) -> str:
        with self._lock:
            bot_id = record.get("recall_bot_id")
            existing_record_id = (
                self._bot_id_to_record_id.get(bot_id) if isinstance(bot_id, str) else None
            )
            if existing_record_id:
                self._records[existing_record_id].update(dict(record))
                self._records[existing_record_id]["_id"] = existing_record_id
                return existing_record_id

            record_id = f"memory-{len(self._records) + 1}"
            stored_record = dict(record)
            stored_record["_id"] = record_id
            self._records[record_id] = stored_record
            if isinstance(bot_id, str):
                self._bot_id_to_record_id[bot_id] = record_id
            return record_id

    def get_by_id(self, recording_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._records.get(recording_id)
            return dict(record) if record else None

    def get_by_bot_id(self, bot_id: str) -> dict[str, Any] | None:
        with self._lock:
            record_id = self._bot_id_to_record_id.get(bot_id)
            if not record_id:
                return None
            return dict(self._records[record_id])

    def update_status_unless(
        self,
        recording_id: str,
        status: str,
        blocked_status: str,
    ) -> bool:
        with self._lock:
            record = self._records.get(recording_id)
            if not record or record.get("status") == blocked_status:
                return False
            record["status"] = status
            record["updated_at"] = datetime.now(UTC)
            return True

    def claim_sync(
        self,
        recording_id: str,
        *,
        now: datetime,
        lease_until: datetime,
        blocked_status: str,
    ) -> bool:
        with self._lock:
            record = self._records.get(recording_id)
            if not record or record.get("status") == blocked_status:
                return False
            claimed_until = record.get("sync_claimed_until")
            if isinstance(claimed_until, datetime) and claimed_until >= now:
                return False
            record["sync_claimed_until"] = lease_until
            return True

    def release_sync_claim(self, recording_id: str) -> None:
        with self._lock:
            record = self._records.get(recording_id)
            if record:
                record["sync_claimed_until"] = None


class MongoRecordingStore(RecordingStore):
    def __init__(
        self,
        uri: str,
        db_name: str,
        collection_name: str,
        connect_timeout_ms: int = 2000,
    ) -> None:
        from pymongo import MongoClient

        self._client = MongoClient(
            uri,
            serverSelectionTimeoutMS=connect_timeout_ms,
            connectTimeoutMS=connect_timeout_ms,
            tz_aware=True,
        )
        self._collection = self._client[db_name][collection_name]
        self._collection.create_index(
            [("recall_bot_id", 1)],
            unique=True,
            partialFilterExpression={"recall_bot_id": {"$exists": True, "$type": "string"}},
        )

    def save(self, record: Mapping[str, Any]) -> str:
        from pymongo import ReturnDocument

        payload = dict(record)
        payload.pop("_id", None)
        bot_id = payload.get("recall_bot_id")
        if not isinstance(bot_id, str):
            insert_result = self._collection.insert_one(payload)
            return str(insert_result.inserted_id)

        stored = self._collection.find_one_and_update(
            {"recall_bot_id": bot_id},
            {"$set": payload},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return str(stored["_id"])

    def get_by_id(self, recording_id: str) -> dict[str, Any] | None:
        object_id = self._to_object_id(recording_id)
        if object_id is None:
            return None
        return self._serialize(self._collection.find_one({"_id": object_id}))

    def get_by_bot_id(self, bot_id: str) -> dict[str, Any] | None:
        return self._serialize(self._collection.find_one({"recall_bot_id": bot_id}))

    def update_status_unless(
        self,
        recording_id: str,
        status: str,
        blocked_status: str,
    ) -> bool:
        object_id = self._to_object_id(recording_id)
        if object_id is None:
            return False
        result = self._collection.update_one(
            {"_id": object_id, "status": {"$ne": blocked_status}},
            {"$set": {"status": status, "updated_at": datetime.now(UTC)}},
        )
        return result.matched_count == 1

    def claim_sync(
        self,
        recording_id: str,
        *,
        now: datetime,
        lease_until: datetime,
        blocked_status: str,
    ) -> bool:
        object_id = self._to_object_id(recording_id)
        if object_id is None:
            return False
        result = self._collection.update_one(
            {
                "_id": object_id,
                "status": {"$ne": blocked_status},
                "$or": [
                    {"sync_claimed_until": None},
                    {"sync_claimed_until": {"$lt": now}},
                ],
            },
            {"$set": {"sync_claimed_until": lease_until}},
        )
        return result.modified_count == 1

    def release_sync_claim(self, recording_id: str) -> None:
        object_id = self._to_object_id(recording_id)
        if object_id is None:
            return
        self._collection.update_one(
            {"_id": object_id},
            {"$set": {"sync_claimed_until": None}},
        )

    def _to_object_id(self, recording_id: str) -> Any:
        from bson import ObjectId
        from bson.errors import InvalidId

        try:
            return ObjectId(recording_id)
        except (InvalidId, TypeError):
            return None

    def _serialize(self, record: Mapping[str, Any] | None) -> dict[str, Any] | None:
        if record is None:
            return None
        serialized = dict(record)
        serialized["_id"] = str(serialized["_id"])
        return serialized


def create_recording_store(
    store_name: str,
    mongodb_uri: str,
    mongodb_db_name: str,
    mongodb_collection_name: str,
    mongodb_connect_timeout_ms: int,
) -> RecordingStore:
    return _create_recording_store_cached(
        store_name=store_name,
        mongodb_uri=mongodb_uri,
        mongodb_db_name=mongodb_db_name,
        mongodb_collection_name=mongodb_collection_name,
        mongodb_connect_timeout_ms=mongodb_connect_timeout_ms,
    )


@lru_cache
def _create_recording_store_cached(
    store_name: str,
    mongodb_uri: str,
    mongodb_db_name: str,
    mongodb_collection_name: str,
    mongodb_connect_timeout_ms: int,
) -> RecordingStore:
    if store_name == "memory":
        return InMemoryRecordingStore()

    if store_name == "mongodb":
        return MongoRecordingStore(
            uri=mongodb_uri,
            db_name=mongodb_db_name,
            collection_name=mongodb_collection_name,
            connect_timeout_ms=mongodb_connect_timeout_ms,
        )

    raise ValueError(f"Unsupported recordings store: {store_name}")


def clear_recording_store_cache() -> None:
    _create_recording_store_cached.cache_clear()


def build_recording_document(
    *,
    bot_id: str,
    status: str,
    meeting_id: str | None = None,
    user_id: str | None = None,
) -> dict[str, Any]:
    return {
        "recall_bot_id": bot_id,
        "meeting_id": meeting_id,
        "user_id": user_id,
        "status": status,
        "sync_claimed_until": None,
        "created_at": datetime.now(UTC),
    }
