"""
MongoDB access for the studio site.

AvailabilityMonitor owns the process-wide "connected" flag. Store wraps the
pymongo database with one DocumentCollection per schema in schemas.py.
"""

import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Type

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel, ValidationError
from pymongo import MongoClient, ReturnDocument, monitoring
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import (
    CONNECT_MAX_RETRIES,
    CONNECT_RETRY_DELAY,
    DATABASE_NAME,
    DATABASE_URL,
    MAX_POOL_SIZE,
    SERVER_SELECTION_TIMEOUT_MS,
    SOCKET_TIMEOUT_MS,
)
from schemas import Admin, Booking, CarouselSlide, Service, SiteSettings, User

logger = logging.getLogger(__name__)

Sort = List[Tuple[str, int]]

SETTINGS_ID = "site-settings"


# ------------------------
# Errors
# ------------------------

class StoreError(Exception):
    """Base class for failures surfaced by the store adapter."""


class StoreUnavailable(StoreError):
    pass


class ValidationFailure(StoreError):
    pass


class NotFound(StoreError):
    pass


@contextmanager
def translate_errors():
    try:
        yield
    except DuplicateKeyError as e:
        raise ValidationFailure("Duplicate value for a unique field") from e
    except PyMongoError as e:
        raise StoreUnavailable(str(e)) from e


def now() -> datetime:
    return datetime.now(timezone.utc)


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["_id"] = str(doc["_id"])
    return doc


def to_object_id(value) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


# ------------------------
# Availability
# ------------------------

class AvailabilityMonitor:
    """Tracks whether MongoDB is reachable.

    The flag starts down. connect() runs the bounded startup retry loop;
    afterwards only mark_connected()/mark_disconnected(), driven by pymongo
    topology events, move it.
    """

    def __init__(
        self,
        max_retries: int = CONNECT_MAX_RETRIES,
        retry_delay: float = CONNECT_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._connected = False
        self._lock = threading.Lock()

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def mark_connected(self) -> None:
        with self._lock:
            changed = not self._connected
            self._connected = True
        if changed:
            logger.info("MongoDB connected")

    def mark_disconnected(self, reason: Optional[str] = None) -> None:
        with self._lock:
            changed = self._connected
            self._connected = False
        if changed:
            logger.warning("MongoDB disconnected: %s", reason or "unknown reason")

    def connect(self, attempt: Callable[[], object]) -> bool:
        for n in range(1, self.max_retries + 1):
            logger.info("Attempting MongoDB connection (%d/%d)...", n, self.max_retries)
            try:
                attempt()
            except PyMongoError as e:
                logger.error("MongoDB connection attempt %d failed: %s", n, e)
                if n < self.max_retries:
                    logger.info("Retrying in %.0f seconds...", self.retry_delay)
                    self._sleep(self.retry_delay)
                continue
            self.mark_connected()
            return True
        logger.warning("Starting without MongoDB - using fallback data")
        return False


class TopologyMonitor(monitoring.TopologyListener):
    """Feeds pymongo topology changes into an AvailabilityMonitor."""

    def __init__(self, monitor: AvailabilityMonitor):
        self.monitor = monitor

    def opened(self, event):
        pass

    def description_changed(self, event):
        if event.new_description.has_writable_server():
            self.monitor.mark_connected()
        else:
            self.monitor.mark_disconnected("no writable server available")

    def closed(self, event):
        self.monitor.mark_disconnected("client closed")


# ------------------------
# Collections
# ------------------------

class DocumentCollection:
    """Typed CRUD over one collection; every returned document has a str _id."""

    def __init__(self, collection, schema: Type[BaseModel]):
        self.collection = collection
        self.schema = schema

    def _validate(self, fields: dict) -> dict:
        try:
            return self.schema.model_validate(fields).model_dump()
        except ValidationError as e:
            raise ValidationFailure(str(e)) from e

    def create(self, fields: dict) -> dict:
        doc = self._validate(fields)
        stamp = now()
        doc["created_at"] = stamp
        doc["updated_at"] = stamp
        with translate_errors():
            res = self.collection.insert_one(doc)
        doc["_id"] = res.inserted_id
        return serialize_doc(doc)

    def insert_many(self, items: Iterable[dict]) -> List[dict]:
        return [self.create(item) for item in items]

    def find(self, filter: Optional[dict] = None, sort: Optional[Sort] = None) -> List[dict]:
        with translate_errors():
            cursor = self.collection.find(filter or {})
            if sort:
                cursor = cursor.sort(sort)
            return [serialize_doc(x) for x in cursor]

    def find_one(self, filter: Optional[dict] = None) -> Optional[dict]:
        with translate_errors():
            return serialize_doc(self.collection.find_one(filter or {}))

    def find_by_id(self, id) -> Optional[dict]:
        oid = to_object_id(id)
        if oid is None:
            return None
        return self.find_one({"_id": oid})

    def count(self, filter: Optional[dict] = None) -> int:
        with translate_errors():
            return self.collection.count_documents(filter or {})

    def find_by_id_and_update(self, id, fields: dict) -> dict:
        existing = self.find_by_id(id)
        if existing is None:
            raise NotFound(f"{self.schema.__name__} {id} not found")
        known = {k: v for k, v in fields.items() if k in self.schema.model_fields}
        merged = self._validate({**existing, **known})
        updates = {k: merged[k] for k in known}
        updates["updated_at"] = now()
        with translate_errors():
            doc = self.collection.find_one_and_update(
                {"_id": ObjectId(existing["_id"])},
                {"$set": updates},
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            raise NotFound(f"{self.schema.__name__} {id} not found")
        return serialize_doc(doc)

    def find_by_id_and_delete(self, id) -> dict:
        oid = to_object_id(id)
        if oid is None:
            raise NotFound(f"{self.schema.__name__} {id} not found")
        with translate_errors():
            doc = self.collection.find_one_and_delete({"_id": oid})
        if doc is None:
            raise NotFound(f"{self.schema.__name__} {id} not found")
        return serialize_doc(doc)


class SingletonCollection(DocumentCollection):
    """A collection holding one document under a fixed well-known _id."""

    def __init__(self, collection, schema: Type[BaseModel], key: str = SETTINGS_ID):
        super().__init__(collection, schema)
        self.key = key

    def get(self) -> Optional[dict]:
        return self.find_one({"_id": self.key})

    def upsert(self, fields: dict) -> dict:
        known = {k: v for k, v in fields.items() if k in self.schema.model_fields}
        current = self.get() or {}
        merged = self._validate({**current, **known})
        stamp = now()
        updates = {k: merged[k] for k in known}
        updates["updated_at"] = stamp
        defaults = {k: v for k, v in merged.items() if k not in updates}
        defaults["created_at"] = stamp
        with translate_errors():
            doc = self.collection.find_one_and_update(
                {"_id": self.key},
                {"$set": updates, "$setOnInsert": defaults},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        return serialize_doc(doc)


class Store:
    def __init__(self, db):
        self.db = db
        self.admins = DocumentCollection(db["admin"], Admin)
        self.users = DocumentCollection(db["user"], User)
        self.services = DocumentCollection(db["service"], Service)
        self.settings = SingletonCollection(db["sitesettings"], SiteSettings)
        self.carousel = DocumentCollection(db["carouselslide"], CarouselSlide)
        self.bookings = DocumentCollection(db["booking"], Booking)

    def ensure_indexes(self) -> None:
        with translate_errors():
            self.admins.collection.create_index("email", unique=True)
            self.users.collection.create_index("email", unique=True)

    def _lookup(self, collection: DocumentCollection, ids: Iterable[str]) -> Dict[str, dict]:
        oids = [oid for oid in (to_object_id(x) for x in set(ids)) if oid is not None]
        if not oids:
            return {}
        return {doc["_id"]: doc for doc in collection.find({"_id": {"$in": oids}})}

    def populate_bookings(self, bookings: List[dict]) -> List[dict]:
        """Replace userId/serviceId with the referenced documents (None if gone)."""
        users = self._lookup(self.users, (b.get("userId") for b in bookings))
        services = self._lookup(self.services, (b.get("serviceId") for b in bookings))
        out = []
        for b in bookings:
            user = users.get(b.get("userId"))
            if user is not None:
                user = {k: v for k, v in user.items() if k != "password"}
            out.append({**b, "userId": user, "serviceId": services.get(b.get("serviceId"))})
        return out


# ------------------------
# Process-wide wiring
# ------------------------

monitor = AvailabilityMonitor()
client: Optional[MongoClient] = None
store: Optional[Store] = None


def connect_store(availability: AvailabilityMonitor = monitor) -> Optional[Store]:
    """Create the client, run the startup retry loop and return the store.

    The store is returned even when every attempt failed; handlers consult
    the monitor before touching it.
    """
    global client, store
    if not DATABASE_URL:
        logger.warning("DATABASE_URL not set - using fallback data")
        return None
    try:
        client = MongoClient(
            DATABASE_URL,
            serverSelectionTimeoutMS=SERVER_SELECTION_TIMEOUT_MS,
            socketTimeoutMS=SOCKET_TIMEOUT_MS,
            maxPoolSize=MAX_POOL_SIZE,
            event_listeners=[TopologyMonitor(availability)],
        )
    except PyMongoError as e:
        logger.error("Invalid MongoDB configuration: %s", e)
        return None
    store = Store(client[DATABASE_NAME])
    if availability.connect(lambda: client.admin.command("ping")):
        try:
            store.ensure_indexes()
        except StoreError as e:
            logger.error("Could not create indexes: %s", e)
    return store


def close_store() -> None:
    global client, store
    if client is not None:
        client.close()
    client = None
    store = None


def get_store() -> Optional[Store]:
    return store


def get_monitor() -> AvailabilityMonitor:
    return monitor
