"""Environment-driven runtime settings for the botdesk API."""

from __future__ import annotations

import os
from types import SimpleNamespace
from typing import Optional, Sequence, Tuple
from urllib.parse import quote_plus


def _env_str(
    name: str,
    default: Optional[str] = None,
    *,
    alias: Optional[str] = None,
    empty_to_none: bool = True,
) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None and alias:
        raw = os.getenv(alias)
    if raw is None:
        return default
    value = raw.strip()
    if not value and empty_to_none:
        return None if default is None else default
    return value if value else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float, *, alias: Optional[str] = None) -> float:
    raw = os.getenv(name)
    if raw is None and alias:
        raw = os.getenv(alias)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_tuple(name: str, default: Sequence[str]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return tuple(default)
    items = tuple(part.strip() for part in raw.split(",") if part.strip())
    return items or tuple(default)


def _build_mongodb_uri(
    host: Optional[str],
    username: Optional[str],
    password: Optional[str],
) -> Optional[str]:
    """Compose an Atlas style SRV connection string from its parts."""

    if not host:
        return None
    if username and password:
        return f"mongodb+srv://{quote_plus(username)}:{quote_plus(password)}@{host}/"
    return f"mongodb+srv://{host}/"


class Settings(SimpleNamespace):
    """Simple attribute container used throughout the codebase."""

CONFIG = Settings()


def _compute_values() -> tuple[dict[str, object], dict[str, object]]:
    # -----------------------------------------------------------------------
    # RUNTIME ENVIRONMENT
    # -----------------------------------------------------------------------
    environment = _env_str("ENV", "prod", empty_to_none=False).lower()
    if environment not in {"dev", "test", "prod"}:
        environment = "prod"
    is_development = environment == "dev"

    # -----------------------------------------------------------------------
    # DOCUMENT DATABASE
    # -----------------------------------------------------------------------
    mongodb_uri = _env_str("MONGODB_URI", None) or _build_mongodb_uri(
        _env_str("DATABASE_HOST", None),
        _env_str("DATABASE_USERNAME", None),
        _env_str("DATABASE_PASSWORD", None),
    )
    database_name = _env_str("DATABASE_NAME", "botdesk", empty_to_none=False)

    # -----------------------------------------------------------------------
    # AUTHENTICATION
    # -----------------------------------------------------------------------
    access_token_secret = _env_str("ACCESS_TOKEN_SECRET", None)
    access_token_ttl_minutes = _env_int("ACCESS_TOKEN_TTL_MINUTES", 60)
    session_ttl_days = _env_int("SESSION_TTL_DAYS", 7)
    verification_code_ttl_minutes = _env_int("VERIFICATION_CODE_TTL_MINUTES", 5)
    password_min_length = _env_int("PASSWORD_MIN_LENGTH", 8)

    # -----------------------------------------------------------------------
    # BILLING / STRIPE
    # -----------------------------------------------------------------------
    stripe_secret_key = _env_str("STRIPE_SECRET_KEY", None)
    stripe_webhook_secret = _env_str("STRIPE_WEBHOOK_SECRET", None)
    billing_default_provider = _env_str("BILLING_PROVIDER_DEFAULT", "stripe", empty_to_none=False).lower()
    stripe_configured = bool(stripe_secret_key)

    # -----------------------------------------------------------------------
    # BOT FILE STORAGE (S3)
    # -----------------------------------------------------------------------
    s3_bucket_name = _env_str("S3_BUCKET_NAME", None)
    s3_region = _env_str("S3_REGION", None, alias="AWS_REGION")
    s3_access_key_id = _env_str("S3_ACCESS_KEY_ID", None, alias="AWS_ACCESS_KEY_ID")
    s3_secret_access_key = _env_str("S3_SECRET_ACCESS_KEY", None, alias="AWS_SECRET_ACCESS_KEY")
    s3_endpoint_url = _env_str("S3_ENDPOINT_URL", None)
    s3_key_prefix = _env_str("S3_KEY_PREFIX", "bots", empty_to_none=False).strip("/")

    # -----------------------------------------------------------------------
    # OUTGOING MAIL (GMAIL API)
    # -----------------------------------------------------------------------
    google_client_id = _env_str("GOOGLE_CLIENT_ID", None)
    google_client_secret = _env_str("GOOGLE_CLIENT_SECRET", None)
    google_refresh_token = _env_str("GOOGLE_REFRESH_TOKEN", None)
    mail_sender_address = _env_str("MAIL_SENDER_ADDRESS", None)
    mail_sender_name = _env_str("MAIL_SENDER_NAME", "Botdesk", empty_to_none=False)
    mail_configured = all([google_client_id, google_client_secret, google_refresh_token, mail_sender_address])

    # -----------------------------------------------------------------------
    # INFERENCE PROVIDER
    # -----------------------------------------------------------------------
    llm_api_key = _env_str("OPENAI_API_KEY", None, alias="LLM_API_KEY")
    llm_base_url = _env_str("OPENAI_BASE_URL", None, alias="LLM_BASE_URL")
    llm_request_timeout = _env_float("LLM_REQUEST_TIMEOUT", 120.0)
    default_model = _env_str("DEFAULT_MODEL", "meta/llama-2-70b-chat", empty_to_none=False)

    # -----------------------------------------------------------------------
    # DEFAULTS FOR NEW BOTS
    # -----------------------------------------------------------------------
    default_configuration = _env_str("DEFAULT_CONFIGURATION", "default", empty_to_none=False)
    default_prompt = _env_str("DEFAULT_PROMPT", "who-are-you", empty_to_none=False)
    default_language = _env_str("DEFAULT_LANGUAGE", "english", empty_to_none=False)
    bot_file_types = _env_tuple("BOT_FILE_TYPES", ("json", "txt"))

    # -----------------------------------------------------------------------
    # PUBLIC ADDRESS
    # -----------------------------------------------------------------------
    api_address = (_env_str("API_ADDRESS", "http://localhost:4000", empty_to_none=False) or "").rstrip("/")
    api_title = _env_str("API_TITLE", "Botdesk API", empty_to_none=False)
    api_version = _env_str("API_VERSION", "1.0.0", empty_to_none=False)
    api_cors_origins = _env_tuple("API_CORS_ORIGINS", ())

    globals_map = {
        "ENVIRONMENT": environment,
        "IS_DEVELOPMENT": is_development,
        "MONGODB_URI": mongodb_uri,
        "DATABASE_NAME": database_name,
        "ACCESS_TOKEN_SECRET": access_token_secret,
        "STRIPE_SECRET_KEY": stripe_secret_key,
        "STRIPE_WEBHOOK_SECRET": stripe_webhook_secret,
        "BILLING_PROVIDER_DEFAULT": billing_default_provider,
        "S3_BUCKET_NAME": s3_bucket_name,
        "API_ADDRESS": api_address,
        "DEFAULT_MODEL": default_model,
    }

    config_map = {
        "environment": environment,
        "is_development": is_development,
        "mongodb_uri": mongodb_uri,
        "database_name": database_name,
        "access_token_secret": access_token_secret,
        "access_token_ttl_minutes": access_token_ttl_minutes,
        "session_ttl_days": session_ttl_days,
        "verification_code_ttl_minutes": verification_code_ttl_minutes,
        "password_min_length": password_min_length,
        "stripe_secret_key": stripe_secret_key,
        "stripe_webhook_secret": stripe_webhook_secret,
        "stripe_configured": stripe_configured,
        "billing_default_provider": billing_default_provider,
        "s3_bucket_name": s3_bucket_name,
        "s3_region": s3_region,
        "s3_access_key_id": s3_access_key_id,
        "s3_secret_access_key": s3_secret_access_key,
        "s3_endpoint_url": s3_endpoint_url,
        "s3_key_prefix": s3_key_prefix,
        "google_client_id": google_client_id,
        "google_client_secret": google_client_secret,
        "google_refresh_token": google_refresh_token,
        "mail_sender_address": mail_sender_address,
        "mail_sender_name": mail_sender_name,
        "mail_configured": mail_configured,
        "llm_api_key": llm_api_key,
        "llm_base_url": llm_base_url,
        "llm_request_timeout": llm_request_timeout,
        "default_model": default_model,
        "default_configuration": default_configuration,
        "default_prompt": default_prompt,
        "default_language": default_language,
        "bot_file_types": bot_file_types,
        "api_address": api_address,
        "api_title": api_title,
        "api_version": api_version,
        "api_cors_origins": api_cors_origins,
    }

    return globals_map, config_map


def reload_config() -> None:
    globals_map, config_map = _compute_values()
    globals().update(globals_map)
    CONFIG.__dict__.update(config_map)


def load_envs(global_dir: str) -> None:
    """Load environment variables from the project .env file and refresh settings."""
    from dotenv import load_dotenv

    load_dotenv(os.path.join(global_dir, ".env"))
    reload_config()


# Load once on import so downstream modules can use CONFIG immediately.
reload_config()
