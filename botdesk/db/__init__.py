"""
Database module for the botdesk API.

This module provides database functionality including:
- MongoDB client and collection operations
- Document models shared across routes and services
"""

from .client import (
    DatabaseClient,
    REFERENCE_COLLECTIONS,
    get_database_client,
    initialize_database,
    is_valid_object_id,
    to_object_id,
    utcnow,
)
from .models import BotFile, GenerationParameters, Subscription, VerificationPurpose

__all__ = [
    "DatabaseClient",
    "REFERENCE_COLLECTIONS",
    "get_database_client",
    "initialize_database",
    "is_valid_object_id",
    "to_object_id",
    "utcnow",
    "BotFile",
    "GenerationParameters",
    "Subscription",
    "VerificationPurpose",
]
