"""Provider abstraction for handling billing operations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class ProviderNotConfiguredError(RuntimeError):
    """Raised when a billing provider is missing required configuration."""


class BillingProviderError(RuntimeError):
    """Raised when the payment provider rejects or fails a request."""


class BillingResourceNotFound(BillingProviderError):
    """Raised when the provider has no object with the requested id."""


class InvalidWebhookError(BillingProviderError):
    """Raised when a webhook payload or its signature cannot be verified."""


class BillingProvider(ABC):
    """Interface for payment providers."""

    key: str

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True when the provider has the secrets it needs."""

    @abstractmethod
    def create_customer(self, *, name: str, email: str) -> str:
        """Register a customer and return its provider id."""

    @abstractmethod
    def list_products(self) -> List[Dict[str, Any]]:
        """Return active products with their default price expanded."""

    @abstractmethod
    def retrieve_product(self, product_id: str) -> Dict[str, Any]:
        """Fetch a single product with its default price expanded."""

    @abstractmethod
    def list_subscriptions(self, customer_id: str) -> List[Dict[str, Any]]:
        """List a customer's subscriptions with the latest invoice expanded."""

    @abstractmethod
    def create_subscription(self, *, customer_id: str, price_id: str) -> Dict[str, Any]:
        """Start an incomplete subscription awaiting its first payment."""

    @abstractmethod
    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """Fetch the latest subscription object from the provider."""

    @abstractmethod
    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """Cancel a subscription immediately."""

    @abstractmethod
    def pay_invoice(self, invoice_id: str) -> Dict[str, Any]:
        """Attempt to collect payment for an open invoice."""

    @abstractmethod
    def parse_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Validate and decode webhook payloads for the provider."""


def resource_id(value: Any) -> Optional[str]:
    """Return the id of an expandable field whether or not it was expanded."""

    if value is None:
        return None
    if isinstance(value, str):
        return value
    getter = getattr(value, "get", None)
    if callable(getter):
        identifier = getter("id")
        return str(identifier) if identifier else None
    return None
