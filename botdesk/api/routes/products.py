"""Subscription product catalog backed by the billing provider."""

from __future__ import annotations

from typing import Any, List

from fastapi import APIRouter, HTTPException, status

from ...billing import BillingProviderError, BillingResourceNotFound
from ...billing.plans import product_price
from ..schemas import Product
from .billing import require_billing_provider

router = APIRouter()


def _to_product(product: Any) -> Product:
    price = product_price(product)
    if price is None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Product is missing a price.",
        )
    return Product(id=product["id"], name=product.get("name") or "", price=price)


@router.get("/products", response_model=List[Product], status_code=status.HTTP_200_OK)
def list_products() -> List[Product]:
    """List active products with their default price."""

    provider = require_billing_provider()
    try:
        products = provider.list_products()
    except BillingProviderError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return [_to_product(product) for product in products]


@router.get("/products/{product_id}", response_model=Product, status_code=status.HTTP_200_OK)
def get_product(product_id: str) -> Product:
    provider = require_billing_provider()
    try:
        product = provider.retrieve_product(product_id)
    except BillingResourceNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="There is no product with that id.") from exc
    except BillingProviderError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    if product.get("active") is not True:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="There is no product with that id.")
    return _to_product(product)
