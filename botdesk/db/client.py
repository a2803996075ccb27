"""
Database client for the botdesk API.
Handles users, sessions, verification codes, bots and reference data.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

from ..config import CONFIG
from .models import (
    DEFAULT_BOT_MAX_TOKENS,
    DEFAULT_BOT_TEMPERATURE,
    DEFAULT_BOT_TOP_P,
    Subscription,
)


logger = logging.getLogger(__name__)

REFERENCE_COLLECTIONS = ("models", "configurations", "prompts", "languages")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_object_id(value: Any) -> bool:
    """Return True when ``value`` can be used as a document id."""

    if isinstance(value, ObjectId):
        return True
    if not isinstance(value, str):
        return False
    return ObjectId.is_valid(value)


def to_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError) as exc:
        raise ValueError(f"Invalid document id: {value!r}") from exc


def _reference_collection(kind: str) -> str:
    if kind not in REFERENCE_COLLECTIONS:
        raise KeyError(f"Unknown reference collection: {kind}")
    return kind


class MongoDatabaseClient:
    """Database client for MongoDB operations."""

    def __init__(self, database: Optional[Database] = None):
        if database is not None:
            self.client = database.client
            self.db = database
            return

        uri = getattr(CONFIG, "mongodb_uri", None)
        if not uri:
            raise ValueError("MONGODB_URI (or DATABASE_HOST/DATABASE_USERNAME/DATABASE_PASSWORD) must be set")

        self.client: MongoClient = MongoClient(uri, tz_aware=True)
        self.db = self.client[CONFIG.database_name]
        logger.info("DatabaseClient: connected to database %s", CONFIG.database_name)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def ensure_indexes(self) -> None:
        self.db.users.create_index([("email", ASCENDING)], unique=True)
        self.db.users.create_index([("customer_id", ASCENDING)])
        self.db.access_tokens.create_index([("token", ASCENDING)], unique=True)
        self.db.access_tokens.create_index([("user", ASCENDING)])
        self.db.verification_tokens.create_index(
            [("email", ASCENDING), ("purpose", ASCENDING), ("consumed", ASCENDING)]
        )
        self.db.bots.create_index([("user", ASCENDING)])
        self.db.subscription_events.create_index([("event_id", ASCENDING)], unique=True)
        for kind in REFERENCE_COLLECTIONS:
            self.db[kind].create_index([("name", ASCENDING)], unique=True)

    def upsert_reference_documents(self, kind: str, documents: Iterable[Dict[str, Any]]) -> int:
        """Insert or replace reference documents keyed by their ``name``."""

        collection = self.db[_reference_collection(kind)]
        written = 0
        for document in documents:
            name = document.get("name")
            if not name:
                continue
            collection.replace_one({"name": name}, dict(document), upsert=True)
            written += 1
        return written

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def get_user(self, user_id: Any) -> Optional[Dict[str, Any]]:
        if not is_valid_object_id(user_id):
            return None
        return self.db.users.find_one({"_id": to_object_id(user_id)})

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        if not email:
            return None
        return self.db.users.find_one({"email": email.strip().lower()})

    def create_user(
        self,
        *,
        name: str,
        email: str,
        password_hash: str,
        customer_id: Optional[str],
    ) -> Dict[str, Any]:
        document = {
            "name": name,
            "email": email.strip().lower(),
            "password_hash": password_hash,
            "customer_id": customer_id,
            "subscription": Subscription().to_document(),
            "timestamp": utcnow(),
        }
        result = self.db.users.insert_one(document)
        document["_id"] = result.inserted_id
        return document

    def update_user_password(self, user_id: Any, password_hash: str) -> bool:
        result = self.db.users.update_one(
            {"_id": to_object_id(user_id)},
            {"$set": {"password_hash": password_hash}},
        )
        return result.matched_count > 0

    def set_user_subscription(self, user_id: Any, subscription: Subscription) -> bool:
        result = self.db.users.update_one(
            {"_id": to_object_id(user_id)},
            {"$set": {"subscription": subscription.to_document()}},
        )
        return result.matched_count > 0

    def set_customer_subscription(self, customer_id: str, subscription: Subscription) -> bool:
        if not customer_id:
            return False
        result = self.db.users.update_one(
            {"customer_id": customer_id},
            {"$set": {"subscription": subscription.to_document()}},
        )
        return result.matched_count > 0

    # ------------------------------------------------------------------
    # Sessions (persisted access tokens)
    # ------------------------------------------------------------------
    def create_access_token(self, user_id: Any, token: str, expiry_date: datetime) -> Dict[str, Any]:
        document = {
            "user": to_object_id(user_id),
            "token": token,
            "consumed": False,
            "expiry_date": expiry_date,
            "timestamp": utcnow(),
        }
        result = self.db.access_tokens.insert_one(document)
        document["_id"] = result.inserted_id
        return document

    def get_access_token(self, token: str) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        return self.db.access_tokens.find_one({"token": token})

    def consume_access_token(self, token: str, *, user_id: Any = None) -> bool:
        query: Dict[str, Any] = {"token": token, "consumed": False}
        if user_id is not None:
            query["user"] = to_object_id(user_id)
        result = self.db.access_tokens.update_one(query, {"$set": {"consumed": True}})
        return result.modified_count > 0

    def consume_user_access_tokens(self, user_id: Any) -> int:
        result = self.db.access_tokens.update_many(
            {"user": to_object_id(user_id), "consumed": False},
            {"$set": {"consumed": True}},
        )
        return result.modified_count

    # ------------------------------------------------------------------
    # Verification codes
    # ------------------------------------------------------------------
    def create_verification_token(
        self,
        *,
        email: str,
        purpose: str,
        code: int,
        expiry_date: datetime,
    ) -> Dict[str, Any]:
        document = {
            "email": email.strip().lower(),
            "purpose": purpose,
            "code": code,
            "consumed": False,
            "expiry_date": expiry_date,
            "timestamp": utcnow(),
        }
        result = self.db.verification_tokens.insert_one(document)
        document["_id"] = result.inserted_id
        return document

    def consume_pending_verification_tokens(self, email: str, purpose: str) -> int:
        result = self.db.verification_tokens.update_many(
            {"email": email.strip().lower(), "purpose": purpose, "consumed": False},
            {"$set": {"consumed": True}},
        )
        return result.modified_count

    def find_verification_token(
        self,
        *,
        email: str,
        purpose: str,
        code: int,
        now: datetime,
    ) -> Optional[Dict[str, Any]]:
        return self.db.verification_tokens.find_one(
            {
                "email": email.strip().lower(),
                "purpose": purpose,
                "code": code,
                "consumed": False,
                "expiry_date": {"$gt": now},
            }
        )

    def consume_verification_token(
        self,
        *,
        email: str,
        purpose: str,
        code: int,
        now: datetime,
    ) -> Optional[Dict[str, Any]]:
        """Atomically flip ``consumed`` on a live code and return it."""

        return self.db.verification_tokens.find_one_and_update(
            {
                "email": email.strip().lower(),
                "purpose": purpose,
                "code": code,
                "consumed": False,
                "expiry_date": {"$gt": now},
            },
            {"$set": {"consumed": True}},
            return_document=ReturnDocument.AFTER,
        )

    # ------------------------------------------------------------------
    # Bots
    # ------------------------------------------------------------------
    def list_bots(self, user_id: Any) -> List[Dict[str, Any]]:
        cursor = self.db.bots.find(
            {"user": to_object_id(user_id)},
            projection={"name": 1, "photo": 1, "timestamp": 1},
        ).sort("timestamp", ASCENDING)
        return list(cursor)

    def get_bot(self, user_id: Any, bot_id: Any) -> Optional[Dict[str, Any]]:
        if not is_valid_object_id(bot_id):
            return None
        return self.db.bots.find_one({"_id": to_object_id(bot_id), "user": to_object_id(user_id)})

    def find_bot_by_name(self, user_id: Any, name: str) -> Optional[Dict[str, Any]]:
        pattern = re.compile(f"^{re.escape(name.strip())}$", re.IGNORECASE)
        return self.db.bots.find_one({"user": to_object_id(user_id), "name": pattern})

    def create_bot(
        self,
        *,
        user_id: Any,
        name: str,
        language_id: Any,
        prompts: List[Dict[str, Any]],
        configuration_id: Any,
        model_id: Any,
    ) -> Dict[str, Any]:
        document = {
            "user": to_object_id(user_id),
            "name": name,
            "photo": None,
            "language": to_object_id(language_id),
            "prompts": [
                {"option": to_object_id(item["option"]), "value": item["value"]}
                for item in prompts
            ],
            "model": to_object_id(model_id),
            "configuration": to_object_id(configuration_id),
            "maxTokens": DEFAULT_BOT_MAX_TOKENS,
            "temperature": DEFAULT_BOT_TEMPERATURE,
            "topP": DEFAULT_BOT_TOP_P,
            "files": [],
            "timestamp": utcnow(),
        }
        result = self.db.bots.insert_one(document)
        document["_id"] = result.inserted_id
        return document

    def update_bot(self, user_id: Any, bot_id: Any, updates: Dict[str, Any]) -> bool:
        result = self.db.bots.update_one(
            {"_id": to_object_id(bot_id), "user": to_object_id(user_id)},
            {"$set": updates},
        )
        return result.matched_count > 0

    def delete_bot(self, user_id: Any, bot_id: Any) -> bool:
        result = self.db.bots.delete_one({"_id": to_object_id(bot_id), "user": to_object_id(user_id)})
        return result.deleted_count > 0

    def add_bot_file(self, bot_id: Any, file_record: Dict[str, Any]) -> Dict[str, Any]:
        record = {"_id": ObjectId(), **file_record}
        self.db.bots.update_one({"_id": to_object_id(bot_id)}, {"$push": {"files": record}})
        return record

    def remove_bot_file(self, bot_id: Any, file_id: Any) -> bool:
        result = self.db.bots.update_one(
            {"_id": to_object_id(bot_id)},
            {"$pull": {"files": {"_id": to_object_id(file_id)}}},
        )
        return result.modified_count > 0

    # ------------------------------------------------------------------
    # Reference data (models, configurations, prompts, languages)
    # ------------------------------------------------------------------
    def get_reference(self, kind: str, document_id: Any) -> Optional[Dict[str, Any]]:
        if not is_valid_object_id(document_id):
            return None
        return self.db[_reference_collection(kind)].find_one({"_id": to_object_id(document_id)})

    def find_reference_by_name(self, kind: str, name: str) -> Optional[Dict[str, Any]]:
        return self.db[_reference_collection(kind)].find_one({"name": name})

    def list_reference(self, kind: str) -> List[Dict[str, Any]]:
        return list(self.db[_reference_collection(kind)].find().sort("name", ASCENDING))

    def list_models(self) -> List[Dict[str, Any]]:
        return self.list_reference("models")

    # ------------------------------------------------------------------
    # Billing webhook bookkeeping
    # ------------------------------------------------------------------
    def has_subscription_event(self, event_id: str) -> bool:
        if not event_id:
            return False
        return self.db.subscription_events.find_one({"event_id": event_id}, projection={"_id": 1}) is not None

    def record_subscription_event(self, *, event_id: str, event_type: str, customer_id: Optional[str]) -> None:
        if not event_id:
            return
        self.db.subscription_events.update_one(
            {"event_id": event_id},
            {
                "$setOnInsert": {
                    "event_id": event_id,
                    "event_type": event_type,
                    "customer_id": customer_id,
                    "timestamp": utcnow(),
                }
            },
            upsert=True,
        )


_database_client: Optional[MongoDatabaseClient] = None


def get_database_client() -> MongoDatabaseClient:
    """Get the global database client instance."""
    global _database_client
    if _database_client is None:
        _database_client = MongoDatabaseClient()
    return _database_client


# Simple alias for readability
DatabaseClient = MongoDatabaseClient


def initialize_database() -> bool:
    """Initialize the database connection and make sure indexes exist."""
    try:
        client = get_database_client()
        client.ensure_indexes()
    except Exception:
        logger.exception("Failed to initialize database")
        return False
    logger.info("Database client initialized successfully")
    return True
