"""Pydantic schemas for the public API."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


def _document_id(document: Dict[str, Any]) -> str:
    return str(document.get("_id"))


# ---------------------------------------------------------------------------
# Users & authentication
# ---------------------------------------------------------------------------
class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def normalise_email(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class TokenResponse(BaseModel):
    token: str
    access_token: str


class SignedTokenResponse(BaseModel):
    token: str


class AccessTokenRequest(BaseModel):
    access_token: str = Field(..., min_length=1)


class EmailRequest(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalise_email(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class VerificationCodeRequest(EmailRequest):
    code: int = Field(..., ge=100000, le=999999)


class SignupSubmitRequest(VerificationCodeRequest):
    name: str = Field(..., min_length=1, max_length=120)
    password: str

    @field_validator("name", mode="before")
    @classmethod
    def normalise_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value


class PasswordResetRequest(VerificationCodeRequest):
    password: str


class SubscriptionState(BaseModel):
    status: Optional[str] = None
    subscription_id: Optional[str] = None


class UserProfile(BaseModel):
    id: str
    name: str
    email: str
    customer_id: Optional[str] = None
    subscription: SubscriptionState = Field(default_factory=SubscriptionState)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=_document_id(document),
            name=document.get("name") or "",
            email=document.get("email") or "",
            customer_id=document.get("customer_id"),
            subscription=SubscriptionState(**(document.get("subscription") or {})),
        )


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------
class ModelInfo(BaseModel):
    id: str
    title: str
    name: str
    description: Optional[str] = None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "ModelInfo":
        return cls(
            id=_document_id(document),
            title=document.get("title") or document.get("name") or "",
            name=document.get("name") or "",
            description=document.get("description"),
        )


class LanguageInfo(BaseModel):
    id: str
    title: str
    name: str
    country_code: Optional[str] = None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "LanguageInfo":
        return cls(
            id=_document_id(document),
            title=document.get("title") or "",
            name=document.get("name") or "",
            country_code=document.get("country_code"),
        )


class PromptInfo(BaseModel):
    id: str
    name: str
    subject: Optional[str] = None
    placeholder: Optional[str] = None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "PromptInfo":
        return cls(
            id=_document_id(document),
            name=document.get("name") or "",
            subject=document.get("subject"),
            placeholder=document.get("placeholder"),
        )


class ConfigurationValues(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    max_tokens: Optional[int] = Field(default=None, alias="maxTokens")
    temperature: Optional[float] = None
    top_p: Optional[float] = Field(default=None, alias="topP")


class ConfigurationInfo(BaseModel):
    id: str
    name: str
    title: Optional[str] = None
    description: Optional[str] = None
    data: Optional[ConfigurationValues] = None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "ConfigurationInfo":
        data = document.get("data")
        values = None
        if isinstance(data, dict):
            values = ConfigurationValues(
                max_tokens=data.get("maxTokens"),
                temperature=data.get("temperature"),
                top_p=data.get("topP"),
            )
        return cls(
            id=_document_id(document),
            name=document.get("name") or "",
            title=document.get("title"),
            description=document.get("description"),
            data=values,
        )


# ---------------------------------------------------------------------------
# Products & subscriptions
# ---------------------------------------------------------------------------
class Product(BaseModel):
    id: str
    name: str
    price: float


class PaymentIntentRequest(BaseModel):
    product_id: str = Field(..., min_length=1)


class PaymentIntentResponse(BaseModel):
    product_id: str
    client_secret: str


class SubscriptionSummary(BaseModel):
    id: str
    name: str
    price: float
    status: str
    latest_invoice: Optional[str] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    days_until_due: Optional[int] = None
    default_payment_method: Optional[str] = None
    created: Optional[int] = None


# ---------------------------------------------------------------------------
# Bots
# ---------------------------------------------------------------------------
class BotSummary(BaseModel):
    id: str
    name: str
    photo: Optional[str] = None


class BotCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)

    @field_validator("name", mode="before")
    @classmethod
    def normalise_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value


class BotCreateResponse(BaseModel):
    id: str


class PromptItemInput(BaseModel):
    option: str
    value: str


class BotUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=120)
    photo: Optional[str] = None
    language: str
    prompts: List[PromptItemInput]
    configuration: str
    model: str
    max_tokens: Optional[int] = Field(default=None, ge=1, alias="maxTokens")
    temperature: Optional[float] = Field(default=None, ge=0)
    top_p: Optional[float] = Field(default=None, ge=0, le=1, alias="topP")

    @field_validator("name", mode="before")
    @classmethod
    def normalise_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value


class BotPromptItem(BaseModel):
    option: Optional[PromptInfo] = None
    value: str


class BotFileInfo(BaseModel):
    id: str
    name: str
    type: str
    size: int
    url: str


class BotDetail(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    photo: Optional[str] = None
    language: Optional[LanguageInfo] = None
    prompts: List[BotPromptItem] = Field(default_factory=list)
    model: Optional[ModelInfo] = None
    configuration: Optional[ConfigurationInfo] = None
    max_tokens: int = Field(alias="maxTokens")
    temperature: float
    top_p: float = Field(alias="topP")
    files: List[BotFileInfo] = Field(default_factory=list)
    timestamp: int

    @field_validator("timestamp", mode="before")
    @classmethod
    def unix_timestamp(cls, value: Any) -> int:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return int(value.timestamp())
        if value in (None, ""):
            return 0
        return int(value)


class BotDetailResponse(BaseModel):
    bot: BotDetail
    languages: List[LanguageInfo] = Field(default_factory=list)
    models: List[ModelInfo] = Field(default_factory=list)
    configurations: List[ConfigurationInfo] = Field(default_factory=list)
    prompts: List[PromptInfo] = Field(default_factory=list)


class ChatRequest(BaseModel):
    prompt: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def ensure_prompt(self) -> "ChatRequest":
        if not self.prompt.strip():
            raise ValueError("prompt must not be blank")
        return self


class WebhookAck(BaseModel):
    received: bool = True
    handled: bool = False
