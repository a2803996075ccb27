"""Subscription billing module."""

from .manager import SubscriptionManager, WebhookEventError
from .plans import SubscriptionStatus
from .stripe_service import StripeBillingService
from .providers import (
    BillingProvider,
    BillingProviderError,
    BillingResourceNotFound,
    InvalidWebhookError,
    ProviderNotConfiguredError,
    get_billing_provider,
)

__all__ = [
    "SubscriptionManager",
    "WebhookEventError",
    "SubscriptionStatus",
    "StripeBillingService",
    "BillingProvider",
    "BillingProviderError",
    "BillingResourceNotFound",
    "InvalidWebhookError",
    "ProviderNotConfiguredError",
    "get_billing_provider",
]
