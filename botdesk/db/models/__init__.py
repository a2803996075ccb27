"""
Document models for the botdesk collections.

The database client reads and writes plain dictionaries; these dataclasses
give the shared nested shapes a name and hold the small amount of logic that
belongs to them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class VerificationPurpose(str, Enum):
    """What a one-time verification code unlocks."""

    SIGNUP = "signup"
    FORGOT_PASSWORD = "forgot_password"


class ConfigurationName(str, Enum):
    DEFAULT = "default"
    ADVANCED = "advanced"
    CUSTOM = "custom"


@dataclass
class Subscription:
    """Mirror of the billing provider subscription stored on each user."""

    status: Optional[str] = None
    subscription_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status is not None and self.subscription_id is not None

    @classmethod
    def from_document(cls, payload: Optional[Dict[str, Any]]) -> "Subscription":
        if not isinstance(payload, dict):
            return cls()
        return cls(
            status=payload.get("status"),
            subscription_id=payload.get("subscription_id"),
        )

    def to_document(self) -> Dict[str, Any]:
        return {"status": self.status, "subscription_id": self.subscription_id}


@dataclass
class GenerationParameters:
    """Sampling parameters forwarded to the inference provider."""

    max_tokens: int
    temperature: float
    top_p: float

    @classmethod
    def from_values(
        cls,
        max_tokens: Any,
        temperature: Any,
        top_p: Any,
    ) -> Optional["GenerationParameters"]:
        if max_tokens is None or temperature is None or top_p is None:
            return None
        return cls(max_tokens=int(max_tokens), temperature=float(temperature), top_p=float(top_p))


@dataclass
class BotFile:
    """A knowledge file attached to a bot and stored in object storage."""

    id: str
    key: str
    name: str
    type: str
    size: int

    @classmethod
    def from_document(cls, payload: Dict[str, Any]) -> "BotFile":
        return cls(
            id=str(payload.get("_id")),
            key=str(payload.get("key")),
            name=str(payload.get("name")),
            type=str(payload.get("type")),
            size=int(payload.get("size") or 0),
        )

    @property
    def file_name(self) -> str:
        return f"{self.name}.{self.type}"


DEFAULT_BOT_MAX_TOKENS = 800
DEFAULT_BOT_TEMPERATURE = 0.75
DEFAULT_BOT_TOP_P = 0.9


__all__ = [
    "BotFile",
    "ConfigurationName",
    "DEFAULT_BOT_MAX_TOKENS",
    "DEFAULT_BOT_TEMPERATURE",
    "DEFAULT_BOT_TOP_P",
    "GenerationParameters",
    "Subscription",
    "VerificationPurpose",
]
