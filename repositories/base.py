"""
Base repository for MongoDB collections.

Repositories wrap one async pymongo collection each and map raw documents
to the pydantic models in schemas.models. Every mutation is a single
document update so no caller needs to hold a lock across awaits.
"""

from __future__ import annotations

from typing import Any, Generic, Optional, Type, TypeVar

from bson import ObjectId

from schemas.models.base import MongoBaseModel

T = TypeVar("T", bound=MongoBaseModel)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Coerce *value* to an ObjectId, returning None for anything invalid."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


class BaseRepository(Generic[T]):
    """Holds the async collection handle and the document model class."""

    collection_name: str
    model: Type[T]

    def __init__(self, db) -> None:
        self._collection = db[self.collection_name]

    def _to_model(self, doc: Optional[dict]) -> Optional[T]:
        return self.model.from_mongo(doc)
