"""High-level billing helpers that mirror provider subscriptions onto users."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..db import DatabaseClient, Subscription
from ..logger import tagged
from .plans import ENDED_STATUSES, SubscriptionStatus, invoice_subscription_id
from .providers import BillingProvider, BillingProviderError, resource_id


logger = logging.getLogger(__name__)


class WebhookEventError(Exception):
    """Raised when a webhook event cannot be applied."""


_billing_log = tagged("billing")


class SubscriptionManager:
    """Facade that keeps the mirrored subscription on each user in sync."""

    def __init__(self, db: DatabaseClient, provider: BillingProvider):
        self._db = db
        self._provider = provider

    # ------------------------------------------------------------------
    # Direct updates from user actions
    # ------------------------------------------------------------------
    def activate(self, user_id: Any, subscription_id: str) -> None:
        self._db.set_user_subscription(
            user_id,
            Subscription(status=SubscriptionStatus.ACTIVE.value, subscription_id=subscription_id),
        )

    def clear(self, user_id: Any) -> None:
        self._db.set_user_subscription(user_id, Subscription())

    # ------------------------------------------------------------------
    # Webhook events
    # ------------------------------------------------------------------
    def handle_event(self, event: Dict[str, Any]) -> bool:
        """
        Apply a verified provider event.

        Returns True when the event changed a user's mirrored subscription and
        raises ``WebhookEventError`` when an invoice event cannot be resolved.
        """

        event_type = event.get("type") or "unknown"
        payload = (event.get("data") or {}).get("object") or {}

        if event_type == "invoice.paid":
            return self._apply_invoice(payload, SubscriptionStatus.ACTIVE)
        if event_type == "invoice.payment_failed":
            return self._apply_invoice(payload, SubscriptionStatus.PAST_DUE)
        if event_type == "customer.subscription.deleted":
            return self._apply_deleted(payload)

        logger.info("Unhandled billing event type: %s", event_type)
        return False

    def _apply_invoice(self, invoice: Dict[str, Any], expected: SubscriptionStatus) -> bool:
        subscription_id = invoice_subscription_id(invoice)
        if not subscription_id:
            raise WebhookEventError("No subscription id in the invoice.")

        try:
            subscription = self._provider.retrieve_subscription(subscription_id)
        except BillingProviderError as exc:
            raise WebhookEventError("No subscription with the id from the invoice.") from exc

        status = SubscriptionStatus.from_raw(subscription.get("status"))
        if status != expected:
            return False

        customer_id = resource_id(invoice.get("customer"))
        updated = self._db.set_customer_subscription(
            customer_id,
            Subscription(status=expected.value, subscription_id=subscription.get("id")),
        )
        _billing_log(
            "mirrored subscription",
            status=expected.value,
            customer_id=customer_id,
            subscription_id=subscription.get("id"),
            matched=updated,
        )
        return updated

    def _apply_deleted(self, subscription: Dict[str, Any]) -> bool:
        status = SubscriptionStatus.from_raw(subscription.get("status"))
        if status not in ENDED_STATUSES:
            return False
        customer_id: Optional[str] = resource_id(subscription.get("customer"))
        updated = self._db.set_customer_subscription(customer_id, Subscription())
        _billing_log("cleared subscription", customer_id=customer_id, status=status.value, matched=updated)
        return updated


__all__ = ["SubscriptionManager", "WebhookEventError"]
