"""
Database helpers

Holds the MongoDB handle shared by the request handlers. `db` is None when
DATABASE_URL / DATABASE_NAME are not set, so the app can still boot and report
its status on /test.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import DATABASE_NAME, DATABASE_URL
from errors import InternalError

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise InternalError("Database not configured")
    return db


def is_object_id(value: Any) -> bool:
    return isinstance(value, ObjectId) or (isinstance(value, str) and ObjectId.is_valid(value))


def ref_key(value: Any) -> str:
    """Normalize a reference (ObjectId, populated doc or str) for comparison."""
    if isinstance(value, dict):
        value = value.get("_id", value.get("id"))
    return str(value) if value is not None else ""


def serialize_doc(doc: Optional[Dict[str, Any]], rename_id: bool = True) -> Optional[Dict[str, Any]]:
    """Make a Mongo document JSON friendly.

    ObjectIds become strings at any depth. With rename_id the storage `_id`
    is exposed as `id`; products keep `_id` because `id` is their catalog id.
    """
    if not doc:
        return doc
    doc = {k: _serialize_value(v) for k, v in doc.items()}
    if rename_id and "_id" in doc:
        doc["id"] = doc.pop("_id")
    return doc


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return serialize_doc(value, rename_id=False)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def ensure_indexes(database: Database) -> None:
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["user"].create_index([("phone", ASCENDING)], unique=True, sparse=True)
    database["product"].create_index([("id", ASCENDING)], unique=True)
    database["product"].create_index([("slug", ASCENDING)], unique=True)
    database["product"].create_index([("categories", ASCENDING)])
    database["cart"].create_index([("user_id", ASCENDING)], unique=True)
