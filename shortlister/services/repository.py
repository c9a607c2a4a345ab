"""
MongoDB persistence for resume records and batch summaries.
"""
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, ReplaceOne
from pymongo.errors import PyMongoError

from shortlister.models.models import DocumentRecord, ResumeStatus
from shortlister.models.schemas import BatchStatistics
from shortlister.services.duplicates import usable_phone
from shortlister.utils.exceptions import PersistenceError
from shortlister.utils.logging_config import get_logger

logger = get_logger(__name__)

CREATION_ORDER = [("created_at", ASCENDING), ("_id", ASCENDING)]


def assign_id(record: DocumentRecord) -> DocumentRecord:
    if record.id is None:
        record.id = str(ObjectId())
    return record


def to_document(record: DocumentRecord) -> Dict[str, Any]:
    doc = record.model_dump(exclude={"id"})
    doc["_id"] = record.id
    doc["status"] = record.status.value
    doc["skills"] = sorted(record.skills)
    doc["email_key"] = (record.email or "").strip().lower() or None
    doc["normalized_phone"] = usable_phone(record)
    return doc


def from_document(doc: Dict[str, Any]) -> Optional[DocumentRecord]:
    if not doc:
        return None
    data = dict(doc)
    data["id"] = str(data.pop("_id"))
    data.pop("email_key", None)
    data.pop("normalized_phone", None)
    return DocumentRecord(**data)


def created_before(record: Optional[DocumentRecord]) -> Dict[str, Any]:
    """Filter selecting records committed ahead of ``record``."""
    if record is None:
        return {}
    if record.id is None:
        return {"created_at": {"$lt": record.created_at}}
    return {"$or": [
        {"created_at": {"$lt": record.created_at}},
        {"created_at": record.created_at, "_id": {"$lt": record.id}},
    ]}


class ResumeRepository:
    def __init__(self, collection, batches_collection=None):
        self.collection = collection
        self.batches_collection = batches_collection

    def _error(self, operation: str, e: Exception) -> PersistenceError:
        logger.error(f"Repository {operation} failed: {e}")
        return PersistenceError(
            f"Repository {operation} failed: {e}",
            operation=operation,
            collection=getattr(self.collection, "name", None),
            cause=e
        )

    async def _find(self, query: Dict[str, Any], operation: str) -> List[DocumentRecord]:
        try:
            cursor = self.collection.find(query).sort(CREATION_ORDER)
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise self._error(operation, e) from e
        return [from_document(d) for d in docs]

    async def save(self, record: DocumentRecord) -> DocumentRecord:
        assign_id(record)
        try:
            await self.collection.replace_one({"_id": record.id}, to_document(record), upsert=True)
        except PyMongoError as e:
            raise self._error("save", e) from e
        return record

    async def save_many(self, records: List[DocumentRecord]) -> List[DocumentRecord]:
        """Upsert a chunk in one ordered bulk write.

        Ids are assigned before the write, so retrying a failed chunk record
        by record overwrites rather than duplicates anything that landed.
        """
        if not records:
            return records
        for r in records:
            assign_id(r)
        ops = [ReplaceOne({"_id": r.id}, to_document(r), upsert=True) for r in records]
        try:
            await self.collection.bulk_write(ops, ordered=True)
        except PyMongoError as e:
            raise self._error("save_many", e) from e
        logger.debug(f"Committed {len(records)} records")
        return records

    async def find_by_id(self, record_id: str) -> Optional[DocumentRecord]:
        try:
            doc = await self.collection.find_one({"_id": record_id})
        except PyMongoError as e:
            raise self._error("find_by_id", e) from e
        return from_document(doc)

    async def find_by_status(self, status: ResumeStatus) -> List[DocumentRecord]:
        return await self._find({"status": ResumeStatus(status).value}, "find_by_status")

    async def find_by_batch_id(self, batch_id: str) -> List[DocumentRecord]:
        return await self._find({"batch_id": batch_id}, "find_by_batch_id")

    async def find_by_email(self, email: str, before: DocumentRecord = None) -> List[DocumentRecord]:
        query = {"email_key": email.strip().lower(), **created_before(before)}
        return await self._find(query, "find_by_email")

    async def find_by_normalized_phone(self, phone: str, before: DocumentRecord = None) -> List[DocumentRecord]:
        query = {"normalized_phone": phone, **created_before(before)}
        return await self._find(query, "find_by_normalized_phone")

    async def find_all_non_duplicate_ordered(self, before: DocumentRecord = None) -> List[DocumentRecord]:
        query = {"status": {"$ne": ResumeStatus.DUPLICATE.value}, **created_before(before)}
        return await self._find(query, "find_all_non_duplicate_ordered")

    async def find_all_ordered(self) -> List[DocumentRecord]:
        return await self._find({}, "find_all_ordered")

    async def count(self) -> int:
        try:
            return await self.collection.count_documents({})
        except PyMongoError as e:
            raise self._error("count", e) from e

    async def count_by_status(self, status: ResumeStatus) -> int:
        try:
            return await self.collection.count_documents({"status": ResumeStatus(status).value})
        except PyMongoError as e:
            raise self._error("count_by_status", e) from e

    async def save_batch_summary(self, stats: BatchStatistics) -> None:
        if self.batches_collection is None:
            return
        doc = stats.model_dump()
        doc["status"] = stats.status.value
        try:
            await self.batches_collection.replace_one({"batch_id": stats.batch_id}, doc, upsert=True)
        except PyMongoError as e:
            raise self._error("save_batch_summary", e) from e

    async def find_batch_summary(self, batch_id: str) -> Optional[BatchStatistics]:
        if self.batches_collection is None:
            return None
        try:
            doc = await self.batches_collection.find_one({"batch_id": batch_id}, {"_id": 0})
        except PyMongoError as e:
            raise self._error("find_batch_summary", e) from e
        return BatchStatistics(**doc) if doc else None
