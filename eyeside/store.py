import logging
from datetime import datetime
from typing import Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from flask_pymongo import PyMongo

logger = logging.getLogger(__name__)

USERS = "users"
PRODUCTS = "products"
ORDERS = "orders"
REVIEWS = "reviews"
COLLECTIONS = (USERS, PRODUCTS, ORDERS, REVIEWS)


def serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat() + "Z"
    if isinstance(value, dict):
        return {str(key): serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value


def serialize_document(document) -> Optional[Dict]:
    if document is None:
        return None
    return serialize_value(document)


def object_id_filter(value) -> Optional[Dict[str, ObjectId]]:
    """Return an ``_id`` filter for ``value`` or None if it is not an ObjectId."""
    if not isinstance(value, (str, ObjectId)):
        return None
    try:
        return {"_id": ObjectId(value)}
    except (InvalidId, TypeError):
        return None


class Store:
    """Shared handle on the storefront database.

    Every method takes one of the collection names in ``COLLECTIONS`` and
    returns plain JSON-ready data. Write results keep the field names the web
    client already reads (``insertedId``, ``matchedCount`` and friends).
    """

    def __init__(self, database, client=None):
        self.database = database
        self.client = client
        self._closed = False

    def collection(self, name: str):
        if name not in COLLECTIONS:
            raise KeyError(f"Unknown collection: {name}")
        return self.database[name]

    def find_one(self, name: str, query: Dict) -> Optional[Dict]:
        return serialize_document(self.collection(name).find_one(query))

    def find_many(
        self, name: str, query: Optional[Dict] = None, limit: Optional[int] = None
    ) -> List[Dict]:
        cursor = self.collection(name).find(query or {})
        if isinstance(limit, int) and limit > 0:
            cursor = cursor.limit(limit)
        return [serialize_document(document) for document in cursor]

    def find_by_ids(self, name: str, identifiers) -> List[Dict]:
        object_ids = []
        for identifier in identifiers:
            id_filter = object_id_filter(identifier)
            if id_filter:
                object_ids.append(id_filter["_id"])
        if not object_ids:
            return []
        return self.find_many(name, {"_id": {"$in": object_ids}})

    def insert_one(self, name: str, document: Dict) -> Dict:
        result = self.collection(name).insert_one(dict(document))
        return {
            "acknowledged": result.acknowledged,
            "insertedId": serialize_value(result.inserted_id),
        }

    def update_one(
        self, name: str, query: Dict, changes: Dict, upsert: bool = False
    ) -> Dict:
        result = self.collection(name).update_one(
            query, {"$set": changes}, upsert=upsert
        )
        return {
            "acknowledged": result.acknowledged,
            "matchedCount": result.matched_count,
            "modifiedCount": result.modified_count,
            "upsertedCount": 1 if result.upserted_id is not None else 0,
            "upsertedId": serialize_value(result.upserted_id),
        }

    def delete_one(self, name: str, query: Dict) -> Dict:
        result = self.collection(name).delete_one(query)
        return {
            "acknowledged": result.acknowledged,
            "deletedCount": result.deleted_count,
        }

    def close(self):
        if self._closed:
            return
        self._closed = True
        if self.client is not None:
            logger.info("Closing database connection")
            self.client.close()


def store_from_uri(app, uri: str) -> Store:
    mongo = PyMongo(app, uri=uri)
    return Store(mongo.db, client=mongo.cx)
