"""Billing provider webhook endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ...billing import (
    BillingProvider,
    InvalidWebhookError,
    ProviderNotConfiguredError,
    SubscriptionManager,
    WebhookEventError,
    get_billing_provider,
)
from ...billing.providers import resource_id
from ...db import DatabaseClient
from ..dependencies import get_database
from ..schemas import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter()


def require_billing_provider() -> BillingProvider:
    try:
        provider = get_billing_provider()
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Billing provider is not available") from exc
    if not provider.is_configured():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Billing provider is not configured")
    return provider


@router.post("/billing/webhook", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def stripe_webhook(request: Request, db: DatabaseClient = Depends(get_database)) -> WebhookAck:
    """Apply subscription status changes pushed by the billing provider."""

    provider = require_billing_provider()
    signature = request.headers.get("Stripe-Signature")
    if not signature:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Webhook Error: signature missing")

    payload = await request.body()
    try:
        event = provider.parse_event(payload, signature)
    except InvalidWebhookError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Webhook Error: {exc}") from exc
    except ProviderNotConfiguredError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    event_id = event.get("id")
    if event_id and db.has_subscription_event(event_id):
        return WebhookAck(received=True, handled=False)

    event_type = event.get("type") or "unknown"
    try:
        handled = SubscriptionManager(db, provider).handle_event(event)
    except WebhookEventError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Webhook Error: {exc}") from exc

    if handled and event_id:
        payload_object = (event.get("data") or {}).get("object") or {}
        db.record_subscription_event(
            event_id=event_id,
            event_type=event_type,
            customer_id=resource_id(payload_object.get("customer")),
        )

    return WebhookAck(received=True, handled=handled)
