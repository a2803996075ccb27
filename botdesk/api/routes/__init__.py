"""Route modules for the public API."""

from . import billing, bots, models, products, subscriptions, users

__all__ = [
    "billing",
    "bots",
    "models",
    "products",
    "subscriptions",
    "users",
]
