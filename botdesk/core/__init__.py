"""Core helpers shared between the API routes and command line scripts."""

from .bots import (  # noqa: F401
    BROKEN_BOT_MESSAGE,
    BotConfigurationError,
    MissingReferenceData,
    build_chat_messages,
    load_bot_defaults,
    populate_bot,
    resolve_generation_parameters,
)

__all__ = [
    "BROKEN_BOT_MESSAGE",
    "BotConfigurationError",
    "MissingReferenceData",
    "build_chat_messages",
    "load_bot_defaults",
    "populate_bot",
    "resolve_generation_parameters",
]
