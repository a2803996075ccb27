"""Shared service exports."""

from .llm import InferenceError, InferenceNotConfiguredError, llm_client, stream_chat_completion
from .mail import GmailMailService, MailDeliveryError, MailNotConfiguredError, get_mail_service
from .storage import (
    S3StorageService,
    StorageError,
    StorageFileNotFound,
    StorageNotConfiguredError,
    get_storage_service,
)

__all__ = [
    "InferenceError",
    "InferenceNotConfiguredError",
    "llm_client",
    "stream_chat_completion",
    "GmailMailService",
    "MailDeliveryError",
    "MailNotConfiguredError",
    "get_mail_service",
    "S3StorageService",
    "StorageError",
    "StorageFileNotFound",
    "StorageNotConfiguredError",
    "get_storage_service",
]
