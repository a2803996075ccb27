"""Helper utilities for the inference service integration."""

from __future__ import annotations

from typing import Any

from ...logger import log as base_log


def log(*parts: Any, **metadata: Any) -> None:
    """Forward inference service logs through the shared logging sink."""
    base_log(*parts, service="llm", **metadata)
