"""
MongoDB connection and generic document helpers.

The connection is configured from DATABASE_URL and DATABASE_NAME. When
either is missing, ``db`` stays None and every helper raises
DatabaseUnavailable so the API can answer 503 instead of crashing.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")


class DatabaseUnavailable(RuntimeError):
    pass


db = None
if DATABASE_URL and DATABASE_NAME:
    try:
        _client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000)
        db = _client[DATABASE_NAME]
    except Exception as e:
        logger.error("Could not configure MongoDB client: %s", e)
        db = None


def require_db(database=None):
    database = db if database is None else database
    if database is None:
        raise DatabaseUnavailable("Database not available. Check DATABASE_URL and DATABASE_NAME.")
    return database


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]], database=None) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    database = require_db(database)
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(mode="json", exclude_none=False)
    else:
        data_dict = dict(data)
    now = datetime.now(timezone.utc)
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, sort: Optional[List] = None, database=None) -> List[Dict[str, Any]]:
    database = require_db(database)
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
