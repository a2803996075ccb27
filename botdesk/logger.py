"""Tagged logging helpers for the service integrations."""

from __future__ import annotations

import logging
from typing import Any, Callable

_LOGGER = logging.getLogger("botdesk")


def _render(parts: tuple[object, ...], metadata: dict[str, Any]) -> str:
    message = " ".join(str(part) for part in parts if part is not None).strip()
    if metadata:
        details = " ".join(f"{key}={value}" for key, value in sorted(metadata.items()))
        message = f"{message} | {details}"
    return message


def log(*parts: object, level: int = logging.INFO, **metadata: Any) -> None:
    """
    Emit a message on the ``botdesk`` logger.

    Keyword arguments are appended as sorted ``key=value`` pairs so service
    logs stay greppable. Falls back to ``basicConfig`` when the process has
    not configured logging yet.
    """

    if not _LOGGER.handlers and not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO)

    _LOGGER.log(level, _render(parts, metadata))


def tagged(tag: str) -> Callable[..., None]:
    """Return a ``log`` variant that prefixes every message with ``[tag]``."""

    prefix = f"[{tag}]"

    def _tagged_log(*parts: object, **metadata: Any) -> None:
        log(prefix, *parts, **metadata)

    return _tagged_log


__all__ = ["log", "tagged"]
