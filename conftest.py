"""Repository-wide pytest fixtures."""

from __future__ import annotations

import re
from collections.abc import Generator
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId

from botdesk.auth import reset_auth_manager
from botdesk.billing import BillingResourceNotFound, InvalidWebhookError
from botdesk.billing.providers import reset_billing_providers
from botdesk.config import reload_config
from botdesk.db import Subscription, is_valid_object_id, utcnow
from botdesk.services.llm import reset_llm_client
from botdesk.services.mail import reset_mail_service
from botdesk.services.storage import reset_storage_service


@pytest.fixture(autouse=True)
def _set_default_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Give every test the same deterministic configuration and fresh singletons."""

    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ACCESS_TOKEN_SECRET", "test-secret")
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
    monkeypatch.setenv("DATABASE_NAME", "botdesk_test")
    monkeypatch.setenv("API_ADDRESS", "https://api.example.com")
    monkeypatch.setenv("S3_BUCKET_NAME", "botdesk-test")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)
    reload_config()
    for reset in (reset_auth_manager, reset_billing_providers, reset_llm_client, reset_mail_service, reset_storage_service):
        reset()
    yield


def _oid(value: Any) -> ObjectId:
    return value if isinstance(value, ObjectId) else ObjectId(str(value))


class StubDB:
    """In-memory stand-in for the Mongo database client."""

    def __init__(self) -> None:
        self.users: Dict[ObjectId, Dict[str, Any]] = {}
        self.access_tokens: List[Dict[str, Any]] = []
        self.verification_tokens: List[Dict[str, Any]] = []
        self.bots: Dict[ObjectId, Dict[str, Any]] = {}
        self.references: Dict[str, Dict[ObjectId, Dict[str, Any]]] = {
            "models": {},
            "configurations": {},
            "prompts": {},
            "languages": {},
        }
        self.subscription_events: Dict[str, Dict[str, Any]] = {}

    # Reference data
    def add_reference(self, kind: str, **document: Any) -> Dict[str, Any]:
        document = {"_id": ObjectId(), **document}
        self.references[kind][document["_id"]] = document
        return document

    def get_reference(self, kind: str, document_id: Any) -> Optional[Dict[str, Any]]:
        if not is_valid_object_id(document_id):
            return None
        return self.references[kind].get(_oid(document_id))

    def find_reference_by_name(self, kind: str, name: str) -> Optional[Dict[str, Any]]:
        return next((doc for doc in self.references[kind].values() if doc.get("name") == name), None)

    def list_reference(self, kind: str) -> List[Dict[str, Any]]:
        return sorted(self.references[kind].values(), key=lambda doc: doc.get("name") or "")

    def list_models(self) -> List[Dict[str, Any]]:
        return self.list_reference("models")

    def upsert_reference_documents(self, kind: str, documents) -> int:
        written = 0
        for document in documents:
            existing = self.find_reference_by_name(kind, document["name"])
            if existing:
                existing.update(document)
            else:
                self.add_reference(kind, **document)
            written += 1
        return written

    # Users
    def create_user(self, *, name: str, email: str, password_hash: str, customer_id: Optional[str]) -> Dict[str, Any]:
        user = {
            "_id": ObjectId(),
            "name": name,
            "email": email.strip().lower(),
            "password_hash": password_hash,
            "customer_id": customer_id,
            "subscription": Subscription().to_document(),
            "timestamp": utcnow(),
        }
        self.users[user["_id"]] = user
        return user

    def get_user(self, user_id: Any) -> Optional[Dict[str, Any]]:
        if not is_valid_object_id(user_id):
            return None
        return self.users.get(_oid(user_id))

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return next((user for user in self.users.values() if user["email"] == email.strip().lower()), None)

    def _user_by_customer_id(self, customer_id: str) -> Optional[Dict[str, Any]]:
        return next((user for user in self.users.values() if user.get("customer_id") == customer_id), None)

    def update_user_password(self, user_id: Any, password_hash: str) -> bool:
        user = self.get_user(user_id)
        if user is None:
            return False
        user["password_hash"] = password_hash
        return True

    def set_user_subscription(self, user_id: Any, subscription: Subscription) -> bool:
        user = self.get_user(user_id)
        if user is None:
            return False
        user["subscription"] = subscription.to_document()
        return True

    def set_customer_subscription(self, customer_id: str, subscription: Subscription) -> bool:
        user = self._user_by_customer_id(customer_id) if customer_id else None
        if user is None:
            return False
        user["subscription"] = subscription.to_document()
        return True

    # Sessions
    def create_access_token(self, user_id: Any, token: str, expiry_date: datetime) -> Dict[str, Any]:
        record = {
            "_id": ObjectId(),
            "user": _oid(user_id),
            "token": token,
            "consumed": False,
            "expiry_date": expiry_date,
            "timestamp": utcnow(),
        }
        self.access_tokens.append(record)
        return record

    def get_access_token(self, token: str) -> Optional[Dict[str, Any]]:
        return next((record for record in self.access_tokens if record["token"] == token), None)

    def consume_access_token(self, token: str, *, user_id: Any = None) -> bool:
        for record in self.access_tokens:
            if record["token"] != token or record["consumed"]:
                continue
            if user_id is not None and record["user"] != _oid(user_id):
                continue
            record["consumed"] = True
            return True
        return False

    def consume_user_access_tokens(self, user_id: Any) -> int:
        count = 0
        for record in self.access_tokens:
            if record["user"] == _oid(user_id) and not record["consumed"]:
                record["consumed"] = True
                count += 1
        return count

    # Verification codes
    def create_verification_token(self, *, email: str, purpose: str, code: int, expiry_date: datetime) -> Dict[str, Any]:
        record = {
            "_id": ObjectId(),
            "email": email.strip().lower(),
            "purpose": purpose,
            "code": code,
            "consumed": False,
            "expiry_date": expiry_date,
            "timestamp": utcnow(),
        }
        self.verification_tokens.append(record)
        return record

    def consume_pending_verification_tokens(self, email: str, purpose: str) -> int:
        count = 0
        for record in self.verification_tokens:
            if record["email"] == email.strip().lower() and record["purpose"] == purpose and not record["consumed"]:
                record["consumed"] = True
                count += 1
        return count

    def _live_code(self, email: str, purpose: str, code: int, now: datetime) -> Optional[Dict[str, Any]]:
        for record in self.verification_tokens:
            if (
                record["email"] == email.strip().lower()
                and record["purpose"] == purpose
                and record["code"] == code
                and not record["consumed"]
                and record["expiry_date"] > now
            ):
                return record
        return None

    def find_verification_token(self, *, email: str, purpose: str, code: int, now: datetime) -> Optional[Dict[str, Any]]:
        return self._live_code(email, purpose, code, now)

    def consume_verification_token(self, *, email: str, purpose: str, code: int, now: datetime) -> Optional[Dict[str, Any]]:
        record = self._live_code(email, purpose, code, now)
        if record is not None:
            record["consumed"] = True
        return record

    # Bots
    def list_bots(self, user_id: Any) -> List[Dict[str, Any]]:
        return [bot for bot in self.bots.values() if bot["user"] == _oid(user_id)]

    def get_bot(self, user_id: Any, bot_id: Any) -> Optional[Dict[str, Any]]:
        if not is_valid_object_id(bot_id):
            return None
        bot = self.bots.get(_oid(bot_id))
        if bot is None or bot["user"] != _oid(user_id):
            return None
        return bot

    def find_bot_by_name(self, user_id: Any, name: str) -> Optional[Dict[str, Any]]:
        pattern = re.compile(f"^{re.escape(name.strip())}$", re.IGNORECASE)
        return next((bot for bot in self.list_bots(user_id) if pattern.match(bot["name"])), None)

    def create_bot(self, *, user_id, name, language_id, prompts, configuration_id, model_id) -> Dict[str, Any]:
        bot = {
            "_id": ObjectId(),
            "user": _oid(user_id),
            "name": name,
            "photo": None,
            "language": _oid(language_id),
            "prompts": [{"option": _oid(item["option"]), "value": item["value"]} for item in prompts],
            "model": _oid(model_id),
            "configuration": _oid(configuration_id),
            "maxTokens": 800,
            "temperature": 0.75,
            "topP": 0.9,
            "files": [],
            "timestamp": utcnow(),
        }
        self.bots[bot["_id"]] = bot
        return bot

    def update_bot(self, user_id: Any, bot_id: Any, updates: Dict[str, Any]) -> bool:
        bot = self.get_bot(user_id, bot_id)
        if bot is None:
            return False
        bot.update(updates)
        return True

    def delete_bot(self, user_id: Any, bot_id: Any) -> bool:
        bot = self.get_bot(user_id, bot_id)
        if bot is None:
            return False
        del self.bots[bot["_id"]]
        return True

    def add_bot_file(self, bot_id: Any, file_record: Dict[str, Any]) -> Dict[str, Any]:
        record = {"_id": ObjectId(), **file_record}
        self.bots[_oid(bot_id)]["files"].append(record)
        return record

    def remove_bot_file(self, bot_id: Any, file_id: Any) -> bool:
        bot = self.bots[_oid(bot_id)]
        before = len(bot["files"])
        bot["files"] = [item for item in bot["files"] if item["_id"] != _oid(file_id)]
        return len(bot["files"]) < before

    # Billing webhook bookkeeping
    def has_subscription_event(self, event_id: str) -> bool:
        return event_id in self.subscription_events

    def record_subscription_event(self, *, event_id: str, event_type: str, customer_id: Optional[str]) -> None:
        self.subscription_events[event_id] = {"event_type": event_type, "customer_id": customer_id}


@pytest.fixture
def stub_db() -> StubDB:
    """Empty in-memory database."""

    return StubDB()


@pytest.fixture
def seeded_db(stub_db: StubDB) -> StubDB:
    """In-memory database holding the reference data new bots depend on."""

    stub_db.add_reference(
        "configurations",
        name="default",
        title="Default",
        description="Balanced",
        data={"maxTokens": 800, "temperature": 0.75, "topP": 0.9},
    )
    stub_db.add_reference("configurations", name="custom", title="Custom", description="Own values", data=None)
    stub_db.add_reference("models", name="meta/llama-2-70b-chat", title="Llama 2 70B Chat", description="Chat")
    stub_db.add_reference("prompts", name="who-are-you", subject="Who are you?", placeholder="You are ...")
    stub_db.add_reference("languages", name="english", title="English", country_code="GB")
    stub_db.add_reference("languages", name="swedish", title="Swedish", country_code="SE")
    return stub_db


class StubProvider:
    """Billing provider double that serves canned provider objects."""

    key = "stub"

    def __init__(self) -> None:
        self.configured = True
        self.products: Dict[str, Dict[str, Any]] = {}
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.invoices: Dict[str, Dict[str, Any]] = {}
        self.events: List[Dict[str, Any]] = []
        self.created_customers: List[Dict[str, str]] = []
        self.created_subscriptions: List[Dict[str, str]] = []
        self.error: Optional[Exception] = None

    def _raise_pending(self) -> None:
        if self.error is not None:
            raise self.error

    def add_product(self, product_id: str, *, name: str, unit_amount: Optional[int], active: bool = True) -> Dict[str, Any]:
        price = None if unit_amount is None else {"id": f"price_{product_id}", "unit_amount": unit_amount, "active": True, "product": product_id}
        product = {"id": product_id, "name": name, "active": active, "default_price": price}
        self.products[product_id] = product
        return product

    def add_subscription(
        self,
        subscription_id: str,
        *,
        customer: str,
        status: str,
        price: Optional[Dict[str, Any]] = None,
        client_secret: Optional[str] = None,
        latest_invoice: Any = None,
    ) -> Dict[str, Any]:
        if latest_invoice is None and client_secret is not None:
            latest_invoice = {"id": f"in_{subscription_id}", "payment_intent": {"client_secret": client_secret}}
        subscription = {
            "id": subscription_id,
            "customer": customer,
            "status": status,
            "items": {"data": [{"price": price}] if price else []},
            "latest_invoice": latest_invoice,
            "current_period_start": 1700000000,
            "current_period_end": 1702592000,
            "days_until_due": None,
            "default_payment_method": "pm_1",
            "created": 1700000000,
        }
        self.subscriptions[subscription_id] = subscription
        return subscription

    def is_configured(self) -> bool:
        return self.configured

    def create_customer(self, *, name: str, email: str) -> str:
        self._raise_pending()
        self.created_customers.append({"name": name, "email": email})
        return f"cus_{len(self.created_customers)}"

    def list_products(self) -> List[Dict[str, Any]]:
        self._raise_pending()
        return [product for product in self.products.values() if product["active"]]

    def retrieve_product(self, product_id: str) -> Dict[str, Any]:
        self._raise_pending()
        if product_id not in self.products:
            raise BillingResourceNotFound(f"No such product: {product_id}")
        return self.products[product_id]

    def list_subscriptions(self, customer_id: str) -> List[Dict[str, Any]]:
        self._raise_pending()
        return [item for item in self.subscriptions.values() if item["customer"] == customer_id]

    def create_subscription(self, *, customer_id: str, price_id: str) -> Dict[str, Any]:
        self._raise_pending()
        self.created_subscriptions.append({"customer": customer_id, "price": price_id})
        subscription_id = f"sub_new_{len(self.created_subscriptions)}"
        return self.add_subscription(
            subscription_id,
            customer=customer_id,
            status="incomplete",
            price={"id": price_id, "active": True},
            client_secret=f"secret_{subscription_id}",
        )

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        self._raise_pending()
        if subscription_id not in self.subscriptions:
            raise BillingResourceNotFound(f"No such subscription: {subscription_id}")
        return self.subscriptions[subscription_id]

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        subscription = self.retrieve_subscription(subscription_id)
        subscription["status"] = "canceled"
        return subscription

    def pay_invoice(self, invoice_id: str) -> Dict[str, Any]:
        self._raise_pending()
        return self.invoices.get(invoice_id, {"id": invoice_id, "status": "paid"})

    def parse_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        if signature != "valid":
            raise InvalidWebhookError("No signatures found matching the expected signature for payload")
        return self.events.pop(0)


@pytest.fixture
def stub_provider() -> StubProvider:
    """Configured billing provider double with no products or subscriptions."""

    return StubProvider()


@pytest.fixture
def subscribed_user(seeded_db: StubDB) -> Dict[str, Any]:
    """A stored user whose mirrored subscription is active."""

    user = seeded_db.create_user(name="Ada", email="ada@example.com", password_hash="x", customer_id="cus_ada")
    user["subscription"] = Subscription(status="active", subscription_id="sub_ada").to_document()
    return user
