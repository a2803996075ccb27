"""Subscription statuses and helpers for reading provider billing objects."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, Optional

from .providers.base import resource_id


class SubscriptionStatus(str, Enum):
    """Normalized subscription status codes."""

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"
    UNKNOWN = "unknown"

    @classmethod
    def from_raw(cls, value: Any) -> "SubscriptionStatus":
        try:
            return cls(str(value or "").lower())
        except ValueError:
            return cls.UNKNOWN


# Statuses that block a customer from starting another subscription.
OPEN_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE})
# Statuses that end a subscription and clear the mirrored record.
ENDED_STATUSES = frozenset({SubscriptionStatus.CANCELED, SubscriptionStatus.UNPAID})


def _get(obj: Any, key: str) -> Any:
    if obj is None or isinstance(obj, str):
        return None
    getter = getattr(obj, "get", None)
    if callable(getter):
        return getter(key)
    return None


def price_amount(price: Any) -> Optional[float]:
    """Return the decimal price for a price object, None without a unit amount."""

    unit_amount = _get(price, "unit_amount")
    if unit_amount is None:
        return None
    return unit_amount / 100


def product_price(product: Any) -> Optional[float]:
    return price_amount(_get(product, "default_price"))


def subscription_items(subscription: Any) -> Iterable[Dict[str, Any]]:
    items = _get(subscription, "items")
    return _get(items, "data") or []


def subscription_has_price(subscription: Any, price_id: str) -> bool:
    return any(resource_id(_get(item, "price")) == price_id for item in subscription_items(subscription))


def active_subscription_item(subscription: Any) -> Optional[Dict[str, Any]]:
    for item in subscription_items(subscription):
        if _get(_get(item, "price"), "active") is True:
            return item
    return None


def subscription_client_secret(subscription: Any) -> Optional[str]:
    """Return the client secret used to confirm the first payment."""

    invoice = _get(subscription, "latest_invoice")
    payment_intent = _get(invoice, "payment_intent")
    secret = _get(payment_intent, "client_secret")
    if secret:
        return secret
    return _get(_get(invoice, "confirmation_secret"), "client_secret")


def subscription_period(subscription: Any) -> tuple[Optional[int], Optional[int]]:
    """Return the current period bounds as unix timestamps."""

    start = _get(subscription, "current_period_start")
    end = _get(subscription, "current_period_end")
    if start is None or end is None:
        # Newer API versions carry the period on each item.
        for item in subscription_items(subscription):
            start = start if start is not None else _get(item, "current_period_start")
            end = end if end is not None else _get(item, "current_period_end")
    return start, end


def invoice_subscription_id(invoice: Any) -> Optional[str]:
    subscription = resource_id(_get(invoice, "subscription"))
    if subscription:
        return subscription
    details = _get(_get(invoice, "parent"), "subscription_details")
    return resource_id(_get(details, "subscription"))


__all__ = [
    "ENDED_STATUSES",
    "OPEN_STATUSES",
    "SubscriptionStatus",
    "active_subscription_item",
    "invoice_subscription_id",
    "price_amount",
    "product_price",
    "subscription_client_secret",
    "subscription_has_price",
    "subscription_items",
    "subscription_period",
]
