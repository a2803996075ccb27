"""Subscription lifecycle endpoints driven by the authenticated user."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ...billing import (
    BillingProvider,
    BillingProviderError,
    BillingResourceNotFound,
    SubscriptionManager,
    SubscriptionStatus,
)
from ...billing.plans import (
    OPEN_STATUSES,
    active_subscription_item,
    price_amount,
    subscription_client_secret,
    subscription_has_price,
    subscription_period,
)
from ...billing.providers import resource_id
from ...db import DatabaseClient
from ..dependencies import get_current_user_record, get_database
from ..schemas import PaymentIntentRequest, PaymentIntentResponse, SubscriptionSummary
from .billing import require_billing_provider

logger = logging.getLogger(__name__)

router = APIRouter()


def _provider_failure(exc: BillingProviderError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


def _no_subscription() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="There is no subscription with that id.")


def _require_customer(user: Dict[str, Any]) -> str:
    customer_id = user.get("customer_id")
    if not customer_id:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User has no billing customer.")
    return customer_id


def _owned_subscription(provider: BillingProvider, subscription_id: str, customer_id: str) -> Any:
    """Fetch a subscription, hiding any that belong to another customer."""

    try:
        subscription = provider.retrieve_subscription(subscription_id)
    except BillingResourceNotFound as exc:
        raise _no_subscription() from exc
    except BillingProviderError as exc:
        raise _provider_failure(exc) from exc

    if resource_id(subscription.get("customer")) != customer_id:
        raise _no_subscription()
    return subscription


@router.post("/subscriptions/payment-intent", response_model=PaymentIntentResponse, status_code=status.HTTP_200_OK)
def create_payment_intent(
    payload: PaymentIntentRequest,
    user: Dict[str, Any] = Depends(get_current_user_record),
) -> PaymentIntentResponse:
    """Start (or resume) a subscription and return the client secret to pay it."""

    provider = require_billing_provider()
    customer_id = _require_customer(user)

    try:
        subscriptions = provider.list_subscriptions(customer_id)
    except BillingProviderError as exc:
        raise _provider_failure(exc) from exc

    if any(SubscriptionStatus.from_raw(item.get("status")) in OPEN_STATUSES for item in subscriptions):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already has a subscription.")

    try:
        product = provider.retrieve_product(payload.product_id)
    except BillingResourceNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="There is no product with that id.") from exc
    except BillingProviderError as exc:
        raise _provider_failure(exc) from exc

    price_id = resource_id(product.get("default_price"))
    if not price_id:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Product is missing a price.")

    for subscription in subscriptions:
        if SubscriptionStatus.from_raw(subscription.get("status")) != SubscriptionStatus.INCOMPLETE:
            continue
        if not subscription_has_price(subscription, price_id):
            continue
        client_secret = subscription_client_secret(subscription)
        if client_secret:
            return PaymentIntentResponse(product_id=payload.product_id, client_secret=client_secret)

    try:
        subscription = provider.create_subscription(customer_id=customer_id, price_id=price_id)
    except BillingProviderError as exc:
        raise _provider_failure(exc) from exc

    client_secret = subscription_client_secret(subscription)
    if not client_secret:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Subscription has no pending payment.")
    logger.info("Created subscription %s for customer %s", subscription.get("id"), customer_id)
    return PaymentIntentResponse(product_id=payload.product_id, client_secret=client_secret)


@router.post("/subscriptions/confirm", status_code=status.HTTP_204_NO_CONTENT)
def confirm_subscription(
    user: Dict[str, Any] = Depends(get_current_user_record),
    db: DatabaseClient = Depends(get_database),
) -> Response:
    """Mirror the customer's active subscription onto the user after payment."""

    provider = require_billing_provider()
    customer_id = _require_customer(user)
    try:
        subscriptions = provider.list_subscriptions(customer_id)
    except BillingProviderError as exc:
        raise _provider_failure(exc) from exc

    active = next(
        (item for item in subscriptions if SubscriptionStatus.from_raw(item.get("status")) == SubscriptionStatus.ACTIVE),
        None,
    )
    if active is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="There is no active subscription.")

    SubscriptionManager(db, provider).activate(user["_id"], active["id"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/subscriptions/{subscription_id}", response_model=SubscriptionSummary, status_code=status.HTTP_200_OK)
def get_subscription(
    subscription_id: str,
    user: Dict[str, Any] = Depends(get_current_user_record),
) -> SubscriptionSummary:
    provider = require_billing_provider()
    subscription = _owned_subscription(provider, subscription_id, _require_customer(user))

    status_value = SubscriptionStatus.from_raw(subscription.get("status"))
    if status_value not in OPEN_STATUSES:
        raise _no_subscription()

    item = active_subscription_item(subscription)
    price = item.get("price") if item else None
    amount = price_amount(price)
    if amount is None:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Subscription has no priced item.")

    try:
        product = provider.retrieve_product(resource_id(price.get("product")))
    except BillingProviderError as exc:
        raise _provider_failure(exc) from exc

    period_start, period_end = subscription_period(subscription)
    return SubscriptionSummary(
        id=subscription["id"],
        name=product.get("name") or "",
        price=amount,
        status=status_value.value,
        latest_invoice=resource_id(subscription.get("latest_invoice")),
        current_period_start=period_start,
        current_period_end=period_end,
        days_until_due=subscription.get("days_until_due"),
        default_payment_method=resource_id(subscription.get("default_payment_method")),
        created=subscription.get("created"),
    )


@router.post("/subscriptions/{subscription_id}/cancel", status_code=status.HTTP_204_NO_CONTENT)
def cancel_subscription(
    subscription_id: str,
    user: Dict[str, Any] = Depends(get_current_user_record),
    db: DatabaseClient = Depends(get_database),
) -> Response:
    provider = require_billing_provider()
    _owned_subscription(provider, subscription_id, _require_customer(user))

    try:
        canceled = provider.cancel_subscription(subscription_id)
    except BillingProviderError as exc:
        raise _provider_failure(exc) from exc

    if SubscriptionStatus.from_raw(canceled.get("status")) != SubscriptionStatus.CANCELED:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Subscription was not canceled.")

    SubscriptionManager(db, provider).clear(user["_id"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/subscriptions/{subscription_id}/pay", status_code=status.HTTP_204_NO_CONTENT)
def pay_subscription(
    subscription_id: str,
    user: Dict[str, Any] = Depends(get_current_user_record),
    db: DatabaseClient = Depends(get_database),
) -> Response:
    """Retry payment of the latest invoice on a past due subscription."""

    provider = require_billing_provider()
    subscription = _owned_subscription(provider, subscription_id, _require_customer(user))

    if SubscriptionStatus.from_raw(subscription.get("status")) != SubscriptionStatus.PAST_DUE:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Subscription is not past due.")

    invoice_id = resource_id(subscription.get("latest_invoice"))
    if not invoice_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription has no invoice to pay.")

    try:
        invoice = provider.pay_invoice(invoice_id)
    except BillingProviderError as exc:
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(exc)) from exc

    if invoice.get("status") != "paid":
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail="The invoice could not be paid.")

    SubscriptionManager(db, provider).activate(user["_id"], subscription["id"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)
