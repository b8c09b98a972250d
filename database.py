"""
Database helpers

Connects to MongoDB using DATABASE_URL / DATABASE_NAME and exposes the shared
`db` handle plus a few small document helpers used by the API.
"""

import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pymongo import ASCENDING, DESCENDING, MongoClient
from pydantic import BaseModel

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client: Optional[MongoClient] = None
db = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def now() -> datetime:
    return datetime.now(timezone.utc)


def stamp(data: Dict[str, Any]) -> Dict[str, Any]:
    """Add created_at / updated_at to a document about to be inserted."""
    ts = now()
    data.setdefault("created_at", ts)
    data["updated_at"] = ts
    return data


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    if db is None:
        raise RuntimeError("Database not available")
    if isinstance(data, BaseModel):
        data = data.model_dump()
    result = db[collection_name].insert_one(stamp(dict(data)))
    return str(result.inserted_id)


def serialize(doc: Optional[dict]) -> Optional[dict]:
    """Make a Mongo document JSON friendly (ObjectId -> str)."""
    if doc is None:
        return None
    doc["_id"] = str(doc["_id"])
    return doc


def ensure_indexes(database) -> None:
    database["order"].create_index("order_number", unique=True)
    database["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["order"].create_index([("created_at", DESCENDING)])
    database["product"].create_index("sku", unique=True, sparse=True)
    database["product"].create_index("slug", unique=True, sparse=True)
