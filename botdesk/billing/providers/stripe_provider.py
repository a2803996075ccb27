"""Stripe implementation of the billing provider interface."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ...config import CONFIG
from ..stripe_service import StripeBillingService
from .base import BillingProvider, ProviderNotConfiguredError


class StripeBillingProvider(BillingProvider):
    key = "stripe"

    def __init__(self) -> None:
        self._service: Optional[StripeBillingService] = None

    def is_configured(self) -> bool:
        return bool(getattr(CONFIG, "stripe_secret_key", None))

    def _ensure_service(self) -> StripeBillingService:
        if not self.is_configured():
            raise ProviderNotConfiguredError("Stripe billing is not configured")
        if self._service is None:
            secret_key = getattr(CONFIG, "stripe_secret_key", None)
            webhook_secret = getattr(CONFIG, "stripe_webhook_secret", None)
            self._service = StripeBillingService(secret_key, webhook_secret=webhook_secret)
        return self._service

    def create_customer(self, *, name: str, email: str) -> str:
        return self._ensure_service().create_customer(name=name, email=email)

    def list_products(self) -> List[Dict[str, Any]]:
        return self._ensure_service().list_products()

    def retrieve_product(self, product_id: str) -> Dict[str, Any]:
        return self._ensure_service().retrieve_product(product_id)

    def list_subscriptions(self, customer_id: str) -> List[Dict[str, Any]]:
        return self._ensure_service().list_subscriptions(customer_id)

    def create_subscription(self, *, customer_id: str, price_id: str) -> Dict[str, Any]:
        return self._ensure_service().create_subscription(customer_id=customer_id, price_id=price_id)

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._ensure_service().retrieve_subscription(subscription_id)

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._ensure_service().cancel_subscription(subscription_id)

    def pay_invoice(self, invoice_id: str) -> Dict[str, Any]:
        return self._ensure_service().pay_invoice(invoice_id)

    def parse_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        return self._ensure_service().parse_event(payload, signature)


__all__ = ["StripeBillingProvider"]
