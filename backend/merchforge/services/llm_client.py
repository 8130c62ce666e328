"""
Gemini chat transport shared by the conversation, discovery and design engines.

Wraps the async ``google-genai`` client with bounded retries and linear
backoff, and provides the tolerant JSON extraction used on every model reply.
Callers catch ``LlmUnavailableError`` and degrade to their deterministic path.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from langfuse import Langfuse

from merchforge.config import (
    GEMINI_API_KEY,
    GEMINI_CHAT_MODEL,
    LANGFUSE_HOST,
    LANGFUSE_PUBLIC_KEY,
    LANGFUSE_SECRET_KEY,
    LLM_MAX_RETRIES,
    LLM_RETRY_DELAY_MS,
    LLM_TEMPERATURE,
    LLM_TIMEOUT_MS,
)

logger = logging.getLogger(__name__)


class LlmUnavailableError(RuntimeError):
    """The model backend could not produce a reply (no key, exhausted retries, hard error)."""


# ---------------------------------------------------------------------------
# Gemini client (created on first use so a missing key does not break import)
# ---------------------------------------------------------------------------
_client: genai.Client | None = None


def _get_client() -> genai.Client:
    global _client
    if not GEMINI_API_KEY:
        raise LlmUnavailableError("GEMINI_API_KEY is not configured")
    if _client is None:
        _client = genai.Client(
            api_key=GEMINI_API_KEY,
            http_options=genai_types.HttpOptions(timeout=LLM_TIMEOUT_MS),
        )
    return _client


# ---------------------------------------------------------------------------
# Langfuse tracing (no-op unless both keys are configured)
# ---------------------------------------------------------------------------
_langfuse: Langfuse | None = None


def _get_tracer() -> Langfuse | None:
    global _langfuse
    if not (LANGFUSE_PUBLIC_KEY and LANGFUSE_SECRET_KEY):
        return None
    if _langfuse is None:
        _langfuse = Langfuse(
            public_key=LANGFUSE_PUBLIC_KEY,
            secret_key=LANGFUSE_SECRET_KEY,
            host=LANGFUSE_HOST,
        )
    return _langfuse


def _trace_generation(
    messages: list[dict[str, str]],
    json_mode: bool,
    output: str | None = None,
    error: Exception | None = None,
) -> None:
    """Record one model call as a Langfuse generation.

    Tracing failures are logged and never reach the caller.
    """
    tracer = _get_tracer()
    if tracer is None:
        return
    try:
        generation = tracer.start_generation(
            name="chatCompletion",
            model=GEMINI_CHAT_MODEL,
            input=messages,
            output=output,
            metadata={"provider": "gemini", "responseFormat": "json" if json_mode else "text"},
            level="ERROR" if error is not None else None,
            status_message=str(error) if error is not None else None,
        )
        generation.end()
    except Exception as exc:
        logger.warning("[llm] langfuse trace failed: %s", exc)


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, genai_errors.APIError):
        code = exc.code or 0
        return code == 429 or code >= 500
    return isinstance(exc, (httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError))


def _to_contents(messages: list[dict[str, str]]) -> tuple[str | None, list[genai_types.Content]]:
    """Split chat-style messages into a system instruction and Gemini contents.

    The first system message becomes the system instruction.  Later system
    messages (self-correction prompts) are sent as user turns.
    """
    system_instruction: str | None = None
    contents: list[genai_types.Content] = []
    for message in messages:
        role = message.get("role", "user")
        text = message.get("content", "")
        if role == "system":
            if system_instruction is None and not contents:
                system_instruction = text
                continue
            role, text = "user", f"SYSTEM: {text}"
        contents.append(
            genai_types.Content(
                role="model" if role == "assistant" else "user",
                parts=[genai_types.Part.from_text(text=text)],
            )
        )
    if not contents:
        # Gemini rejects a request with only a system instruction
        contents.append(genai_types.Content(role="user", parts=[genai_types.Part.from_text(text=system_instruction or "")]))
        system_instruction = None
    return system_instruction, contents


async def chat_completion(messages: list[dict[str, str]], json_mode: bool = False) -> str:
    """Send a chat transcript to Gemini and return the reply text.

    Parameters
    ----------
    messages:
        ``[{"role": "system" | "user" | "assistant", "content": str}, ...]``
    json_mode:
        Ask the model for an ``application/json`` response.

    Raises
    ------
    LlmUnavailableError
        When no key is configured, a non-retryable error occurs, or all
        retries are exhausted.
    """
    client = _get_client()
    system_instruction, contents = _to_contents(messages)
    config = genai_types.GenerateContentConfig(
        system_instruction=system_instruction,
        temperature=LLM_TEMPERATURE,
        response_mime_type="application/json" if json_mode else None,
    )

    last_error: Exception | None = None
    for attempt in range(LLM_MAX_RETRIES + 1):
        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=GEMINI_CHAT_MODEL,
                    contents=contents,
                    config=config,
                ),
                timeout=LLM_TIMEOUT_MS / 1000,
            )
            text = response.text or ""
            _trace_generation(messages, json_mode, output=text)
            return text
        except Exception as exc:
            last_error = exc
            if not _is_retryable(exc) or attempt >= LLM_MAX_RETRIES:
                break
            delay = LLM_RETRY_DELAY_MS * (attempt + 1) / 1000
            logger.warning(
                "[llm] attempt %d failed (%s); retrying in %.1fs",
                attempt + 1, type(exc).__name__, delay,
            )
            await asyncio.sleep(delay)

    logger.error("[llm] giving up after %d attempt(s): %s", attempt + 1, last_error)
    _trace_generation(messages, json_mode, error=last_error)
    raise LlmUnavailableError(str(last_error)) from last_error


# ---------------------------------------------------------------------------
# Tolerant JSON extraction
# ---------------------------------------------------------------------------
_FENCED_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
# String literals are matched first so their contents are never rewritten
_BARE_KEY_RE = re.compile(r'("(?:\\.|[^"\\])*")|([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)')


def _quote_bare_keys(text: str) -> str:
    def replace(match: re.Match) -> str:
        if match.group(1) is not None:
            return match.group(1)
        return f'{match.group(2)}"{match.group(3)}"{match.group(4)}'

    return _BARE_KEY_RE.sub(replace, text)


def _try_json(text: str) -> Any | None:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None


def _outer_slice(text: str, open_char: str, close_char: str) -> str | None:
    start = text.find(open_char)
    end = text.rfind(close_char)
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def parse_json_payload(text: str | None) -> Any | None:
    """Best-effort JSON decode of a model reply.

    Tries, in order: the whole text, a fenced code block, the span from the
    first ``{`` to the last ``}`` (then ``[``/``]``), and finally the object
    span with unquoted keys quoted.  Returns ``None`` when nothing parses.
    """
    if not text or not text.strip():
        return None
    stripped = text.strip()

    parsed = _try_json(stripped)
    if parsed is not None:
        return parsed

    fenced = _FENCED_RE.search(stripped)
    if fenced:
        parsed = _try_json(fenced.group(1).strip())
        if parsed is not None:
            return parsed

    candidates = [s for s in (_outer_slice(stripped, "{", "}"), _outer_slice(stripped, "[", "]")) if s]
    for candidate in candidates:
        parsed = _try_json(candidate)
        if parsed is not None:
            return parsed

    for candidate in candidates:
        parsed = _try_json(_quote_bare_keys(candidate))
        if parsed is not None:
            return parsed

    return None
