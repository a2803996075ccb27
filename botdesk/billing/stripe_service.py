"""Thin wrapper around the Stripe SDK used for subscription management."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import stripe

from .providers.base import BillingProviderError, BillingResourceNotFound, InvalidWebhookError


def _translate(exc: stripe.StripeError) -> BillingProviderError:
    message = getattr(exc, "user_message", None) or str(exc) or "Stripe request failed"
    if isinstance(exc, stripe.InvalidRequestError) and getattr(exc, "code", None) == "resource_missing":
        return BillingResourceNotFound(message)
    return BillingProviderError(message)


class StripeBillingService:
    """Handles the Stripe interactions required for subscription billing."""

    def __init__(self, secret_key: str, *, webhook_secret: Optional[str] = None):
        if not secret_key:
            raise ValueError("Stripe secret key is required")
        stripe.api_key = secret_key
        self._webhook_secret = webhook_secret

    # ------------------------------------------------------------------
    # Customers & products
    # ------------------------------------------------------------------
    def create_customer(self, *, name: str, email: str) -> str:
        try:
            customer = stripe.Customer.create(name=name, email=email)
        except stripe.StripeError as exc:
            raise _translate(exc) from exc
        return customer["id"]

    def list_products(self) -> List[Any]:
        try:
            result = stripe.Product.list(active=True, limit=100, expand=["data.default_price"])
        except stripe.StripeError as exc:
            raise _translate(exc) from exc
        return list(getattr(result, "data", None) or [])

    def retrieve_product(self, product_id: str) -> Any:
        try:
            return stripe.Product.retrieve(product_id, expand=["default_price"])
        except stripe.StripeError as exc:
            raise _translate(exc) from exc

    # ------------------------------------------------------------------
    # Subscriptions & invoices
    # ------------------------------------------------------------------
    def list_subscriptions(self, customer_id: str) -> List[Any]:
        if not customer_id:
            return []
        try:
            result = stripe.Subscription.list(
                customer=customer_id,
                status="all",
                limit=100,
                expand=["data.latest_invoice.payment_intent"],
            )
        except stripe.StripeError as exc:
            raise _translate(exc) from exc
        return list(getattr(result, "data", None) or [])

    def create_subscription(self, *, customer_id: str, price_id: str) -> Any:
        """Create a subscription that waits for the first payment on the client."""

        try:
            return stripe.Subscription.create(
                customer=customer_id,
                items=[{"price": price_id}],
                payment_behavior="default_incomplete",
                payment_settings={"save_default_payment_method": "on_subscription"},
                expand=["latest_invoice.payment_intent"],
            )
        except stripe.StripeError as exc:
            raise _translate(exc) from exc

    def retrieve_subscription(self, subscription_id: str) -> Any:
        try:
            return stripe.Subscription.retrieve(subscription_id)
        except stripe.StripeError as exc:
            raise _translate(exc) from exc

    def cancel_subscription(self, subscription_id: str) -> Any:
        try:
            return stripe.Subscription.cancel(subscription_id)
        except stripe.StripeError as exc:
            raise _translate(exc) from exc

    def pay_invoice(self, invoice_id: str) -> Any:
        try:
            return stripe.Invoice.pay(invoice_id)
        except stripe.StripeError as exc:
            raise _translate(exc) from exc

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------
    def parse_event(self, payload: bytes, signature: str) -> Any:
        """Validate and parse a Stripe webhook event."""

        if not self._webhook_secret:
            raise InvalidWebhookError("Stripe webhook secret is not configured; cannot verify signatures")
        try:
            return stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise InvalidWebhookError(str(exc) or "Invalid webhook signature") from exc


__all__ = ["StripeBillingService"]
