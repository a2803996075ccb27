import time
from typing import Any, Dict, Iterator, List, Optional

from openai import OpenAI, OpenAIError

from ...config import CONFIG
from ...db import GenerationParameters

_client: Optional[OpenAI] = None


class InferenceNotConfiguredError(RuntimeError):
    """Raised when no inference endpoint credentials are configured."""


class InferenceError(RuntimeError):
    """Raised when the inference provider rejects a completion request."""


def llm_client() -> OpenAI:
    global _client
    if _client is None:
        key = getattr(CONFIG, "llm_api_key", None)
        if not key:
            raise InferenceNotConfiguredError("OPENAI_API_KEY (or LLM_API_KEY) must be set to relay chat completions")
        base_url = getattr(CONFIG, "llm_base_url", None)
        _client = OpenAI(
            api_key=key,
            base_url=base_url,
            timeout=getattr(CONFIG, "llm_request_timeout", 120.0),
        )
        _log("[llm] initialized client", "| base_url:", base_url or "(default)")
    return _client


def reset_llm_client() -> None:
    global _client
    _client = None


def _log(*parts: Any, **metadata: Any) -> None:
    from .utils import log as _base_log

    _base_log(*parts, **metadata)


def _chunk_text(chunk: Any) -> str:
    choices = getattr(chunk, "choices", None) or []
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    return getattr(delta, "content", None) or ""


def open_chat_stream(
    *,
    model: str,
    messages: List[Dict[str, str]],
    parameters: GenerationParameters,
) -> Any:
    """Start a streamed completion; provider errors surface before any output."""

    client = llm_client()
    _log(
        "[llm] stream model:",
        model,
        "| messages:",
        len(messages),
        "| max_tokens:",
        parameters.max_tokens,
    )
    try:
        return client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=parameters.max_tokens,
            temperature=parameters.temperature,
            top_p=parameters.top_p,
            stream=True,
        )
    except OpenAIError as exc:
        raise InferenceError(str(exc) or "Inference request failed") from exc


def relay_chat_stream(stream: Any, *, model: str) -> Iterator[str]:
    """Yield text deltas from an open stream as they arrive."""

    start_time = time.time()
    chunks = 0
    characters = 0
    try:
        for chunk in stream:
            text = _chunk_text(chunk)
            if not text:
                continue
            chunks += 1
            characters += len(text)
            yield text
    finally:
        close = getattr(stream, "close", None)
        if callable(close):
            close()
        duration_ms = int((time.time() - start_time) * 1000)
        _log(
            "[llm] stream finished model:",
            model,
            "| chunks:",
            chunks,
            "| output_len:",
            characters,
            "| duration:",
            f"{duration_ms}ms",
        )


def stream_chat_completion(
    *,
    model: str,
    messages: List[Dict[str, str]],
    parameters: GenerationParameters,
) -> Iterator[str]:
    stream = open_chat_stream(model=model, messages=messages, parameters=parameters)
    return relay_chat_stream(stream, model=model)
