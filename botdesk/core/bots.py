"""
Bot configuration helpers shared by the bot routes.

A stored bot only holds references to its language, model, configuration and
prompt options; these helpers resolve those references, work out the sampling
parameters the bot should use, and build the chat messages sent to the
inference provider.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..config import CONFIG
from ..db import DatabaseClient, GenerationParameters
from ..db.models import ConfigurationName


BROKEN_BOT_MESSAGE = "Something is wrong with your bot, try removing it and create a new one."

_LANGUAGE_INSTRUCTION = "Always answer in {language}."


class BotConfigurationError(Exception):
    """Raised when a bot's references or parameters are inconsistent."""

    def __init__(self, message: str = BROKEN_BOT_MESSAGE):
        super().__init__(message)
        self.message = message


class MissingReferenceData(Exception):
    """Raised when a default reference document required for new bots is absent."""

    def __init__(self, kind: str, name: str):
        super().__init__(f"Something went wrong when setting the bot {kind}.")
        self.kind = kind
        self.name = name


def default_prompt_value(name: str) -> str:
    return f"You are a helpful assistant called {name}"


def populate_bot(db: DatabaseClient, bot: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``bot`` with its references replaced by documents."""

    populated = dict(bot)
    populated["language"] = db.get_reference("languages", bot.get("language"))
    populated["model"] = db.get_reference("models", bot.get("model"))
    populated["configuration"] = db.get_reference("configurations", bot.get("configuration"))
    populated["prompts"] = [
        {"option": db.get_reference("prompts", item.get("option")), "value": item.get("value")}
        for item in bot.get("prompts") or []
    ]
    return populated


def resolve_generation_parameters(bot: Dict[str, Any]) -> GenerationParameters:
    """
    Work out the sampling parameters for a populated bot.

    A ``custom`` configuration uses the values stored on the bot itself; every
    other configuration uses the values stored on the configuration document.
    """

    configuration = bot.get("configuration")
    if not isinstance(configuration, dict):
        raise BotConfigurationError()

    if configuration.get("name") == ConfigurationName.CUSTOM.value:
        params = GenerationParameters.from_values(bot.get("maxTokens"), bot.get("temperature"), bot.get("topP"))
    else:
        data = configuration.get("data")
        if not isinstance(data, dict):
            raise BotConfigurationError()
        params = GenerationParameters.from_values(data.get("maxTokens"), data.get("temperature"), data.get("topP"))

    if params is None:
        raise BotConfigurationError()
    return params


def build_system_prompt(bot: Dict[str, Any]) -> str:
    """Join the bot's prompt values and append the language instruction."""

    parts: List[str] = []
    for item in bot.get("prompts") or []:
        value = (item.get("value") or "").strip()
        if value:
            parts.append(value)

    language = bot.get("language")
    if isinstance(language, dict) and language.get("title"):
        parts.append(_LANGUAGE_INSTRUCTION.format(language=language["title"]))

    return "\n".join(parts)


def build_chat_messages(bot: Dict[str, Any], prompt: str) -> List[Dict[str, str]]:
    messages: List[Dict[str, str]] = []
    system_prompt = build_system_prompt(bot)
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


def resolve_model_name(bot: Dict[str, Any]) -> str:
    model = bot.get("model")
    if not isinstance(model, dict) or not model.get("name"):
        raise BotConfigurationError()
    return str(model["name"])


def load_bot_defaults(db: DatabaseClient) -> Dict[str, Dict[str, Any]]:
    """Look up the reference documents every new bot starts from."""

    lookups = (
        ("configuration", "configurations", CONFIG.default_configuration),
        ("model", "models", CONFIG.default_model),
        ("prompt", "prompts", CONFIG.default_prompt),
        ("language", "languages", CONFIG.default_language),
    )
    defaults: Dict[str, Dict[str, Any]] = {}
    for label, collection, name in lookups:
        document: Optional[Dict[str, Any]] = db.find_reference_by_name(collection, name)
        if document is None:
            raise MissingReferenceData(label, name)
        defaults[label] = document
    return defaults


def file_download_url(bot_id: Any, file_id: Any) -> str:
    return f"{CONFIG.api_address}/v1/bots/{bot_id}/files/{file_id}/download"


__all__ = [
    "BROKEN_BOT_MESSAGE",
    "BotConfigurationError",
    "MissingReferenceData",
    "build_chat_messages",
    "build_system_prompt",
    "default_prompt_value",
    "file_download_url",
    "load_bot_defaults",
    "populate_bot",
    "resolve_generation_parameters",
    "resolve_model_name",
]
