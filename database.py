"""
Document storage for MongoDB and an in-memory test implementation.

Collections are addressed by name and documents by ObjectId. Documents go
in and come out as plain dicts; pydantic models are dumped before insert.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Protocol, Union

from bson.errors import InvalidId
from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError

from errors import BadRequestError

logger = logging.getLogger(__name__)


def object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise BadRequestError(f"Invalid id: {value}") from None


UNIQUE_FIELDS = {"user": ("email",)}


def _duplicate_error(exc: DuplicateKeyError) -> BadRequestError:
    fields = list((exc.details or {}).get("keyValue") or {})
    return BadRequestError(f"Duplicate {fields[0] if fields else 'key'} entered")


def _as_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


class DocumentStore(Protocol):
    """Operations the handlers need from the document database."""

    def create_document(self, collection: str, data: Union[BaseModel, dict]) -> dict:
        ...

    def get_documents(self, collection: str) -> List[dict]:
        ...

    def find_by_id(self, collection: str, oid: ObjectId) -> Optional[dict]:
        ...

    def find_one(self, collection: str, filter_dict: dict) -> Optional[dict]:
        ...

    def update_by_id(
        self,
        collection: str,
        oid: ObjectId,
        changes: dict,
        unset: Iterable[str] = (),
    ) -> Optional[dict]:
        ...

    def delete_by_id(self, collection: str, oid: ObjectId) -> bool:
        ...

    def collection_names(self) -> List[str]:
        ...

    def ensure_indexes(self) -> None:
        ...

    def close(self) -> None:
        ...


class MongoDocumentStore:
    """DocumentStore backed by a pymongo database."""

    def __init__(self, url: str, name: str):
        self.client = MongoClient(url, tz_aware=True)
        self.db = self.client[name]
        self.name = name

    def ensure_indexes(self) -> None:
        self.db["user"].create_index("email", unique=True)
        logger.info("Connected to database %s", self.name)

    def create_document(self, collection: str, data: Union[BaseModel, dict]) -> dict:
        doc = _as_dict(data)
        now = datetime.now(timezone.utc)
        doc["created_at"] = now
        doc["updated_at"] = now
        try:
            result = self.db[collection].insert_one(doc)
        except DuplicateKeyError as exc:
            raise _duplicate_error(exc) from None
        doc["_id"] = result.inserted_id
        return doc

    def get_documents(self, collection: str) -> List[dict]:
        return list(self.db[collection].find())

    def find_by_id(self, collection: str, oid: ObjectId) -> Optional[dict]:
        return self.db[collection].find_one({"_id": oid})

    def find_one(self, collection: str, filter_dict: dict) -> Optional[dict]:
        return self.db[collection].find_one(filter_dict)

    def update_by_id(
        self,
        collection: str,
        oid: ObjectId,
        changes: dict,
        unset: Iterable[str] = (),
    ) -> Optional[dict]:
        update = {"$set": {**changes, "updated_at": datetime.now(timezone.utc)}}
        unset = list(unset)
        if unset:
            update["$unset"] = {key: "" for key in unset}
        try:
            return self.db[collection].find_one_and_update(
                {"_id": oid}, update, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError as exc:
            raise _duplicate_error(exc) from None

    def delete_by_id(self, collection: str, oid: ObjectId) -> bool:
        return self.db[collection].delete_one({"_id": oid}).deleted_count > 0

    def collection_names(self) -> List[str]:
        return self.db.list_collection_names()

    def close(self) -> None:
        self.client.close()


class InMemoryDocumentStore:
    """Simple in-memory document store for development and tests."""

    name = "in-memory"

    def __init__(self):
        self.collections: Dict[str, Dict[ObjectId, dict]] = {}

    def reset(self) -> None:
        self.collections.clear()

    def _collection(self, name: str) -> Dict[ObjectId, dict]:
        return self.collections.setdefault(name, {})

    def _check_unique(self, collection: str, doc: dict, oid: Optional[ObjectId] = None) -> None:
        for field in UNIQUE_FIELDS.get(collection, ()):
            if field not in doc:
                continue
            for existing_id, existing in self._collection(collection).items():
                if existing_id != oid and existing.get(field) == doc[field]:
                    raise BadRequestError(f"Duplicate {field} entered")

    def create_document(self, collection: str, data: Union[BaseModel, dict]) -> dict:
        doc = _as_dict(data)
        self._check_unique(collection, doc)
        now = datetime.now(timezone.utc)
        doc["_id"] = ObjectId()
        doc["created_at"] = now
        doc["updated_at"] = now
        self._collection(collection)[doc["_id"]] = copy.deepcopy(doc)
        return doc

    def get_documents(self, collection: str) -> List[dict]:
        return [copy.deepcopy(doc) for doc in self._collection(collection).values()]

    def find_by_id(self, collection: str, oid: ObjectId) -> Optional[dict]:
        doc = self._collection(collection).get(oid)
        return copy.deepcopy(doc) if doc is not None else None

    def find_one(self, collection: str, filter_dict: dict) -> Optional[dict]:
        for doc in self._collection(collection).values():
            if all(doc.get(key) == value for key, value in filter_dict.items()):
                return copy.deepcopy(doc)
        return None

    def update_by_id(
        self,
        collection: str,
        oid: ObjectId,
        changes: dict,
        unset: Iterable[str] = (),
    ) -> Optional[dict]:
        doc = self._collection(collection).get(oid)
        if doc is None:
            return None
        self._check_unique(collection, changes, oid)
        doc.update(copy.deepcopy(changes))
        for key in unset:
            doc.pop(key, None)
        doc["updated_at"] = datetime.now(timezone.utc)
        return copy.deepcopy(doc)

    def delete_by_id(self, collection: str, oid: ObjectId) -> bool:
        return self._collection(collection).pop(oid, None) is not None

    def collection_names(self) -> List[str]:
        return list(self.collections)

    def ensure_indexes(self) -> None:
        pass

    def close(self) -> None:
        pass
