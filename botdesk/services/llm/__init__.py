"""
Inference service client.

Relays chat completions to an OpenAI-compatible hosted endpoint and streams
the generated text back to callers.
"""

from .client import (
    InferenceError,
    InferenceNotConfiguredError,
    llm_client,
    open_chat_stream,
    relay_chat_stream,
    reset_llm_client,
    stream_chat_completion,
)

__all__ = [
    "InferenceError",
    "InferenceNotConfiguredError",
    "llm_client",
    "open_chat_stream",
    "relay_chat_stream",
    "reset_llm_client",
    "stream_chat_completion",
]
