from __future__ import annotations

"""
LLM completion capability and lenient JSON extraction.

Stages that talk to a language model depend only on the
:class:`CompletionClient` protocol so tests can substitute canned
responses.  :class:`OpenAICompletionClient` is the production
implementation; it enforces its own request timeout and surfaces every
transport problem as :class:`CompletionError`.

Model replies often wrap JSON in prose or code fences.
:func:`extract_json_block` scans for the first balanced ``{...}`` or
``[...]`` block, honouring string literals, and returns a tagged
:class:`JsonBlock` instead of raising.
"""

import json
from dataclasses import dataclass
from typing import Any, List, Literal, Optional, Protocol, Sequence

from loguru import logger
from pydantic import BaseModel, Field

from .config import LLM_MAX_TOKENS, LLM_MODEL, LLM_TIMEOUT, OPENAI_API_KEY


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class CompletionOptions(BaseModel):
    model: str = LLM_MODEL
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=LLM_MAX_TOKENS, ge=1)


class CompletionError(RuntimeError):
    """The completion capability could not produce a reply."""


class CompletionClient(Protocol):
    async def complete(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> str:
        ...


def chat(system: str, user: str) -> List[ChatMessage]:
    return [ChatMessage(role="system", content=system), ChatMessage(role="user", content=user)]


class OpenAICompletionClient:
    """Chat completions through the OpenAI async SDK."""

    def __init__(self, api_key: Optional[str] = None, timeout: float = LLM_TIMEOUT, client=None):
        if client is None:
            from openai import AsyncOpenAI

            client = AsyncOpenAI(api_key=api_key or OPENAI_API_KEY or None, timeout=timeout)
        self._client = client

    async def complete(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=options.model,
                messages=[m.model_dump() for m in messages],
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            )
        except Exception as e:
            raise CompletionError(f"{type(e).__name__}: {e}") from e
        if not response.choices:
            raise CompletionError("completion returned no choices")
        return response.choices[0].message.content or ""


# -----------------------------------------------------------------------------
# JSON-in-text parsing
# -----------------------------------------------------------------------------

_CLOSERS = {"{": "}", "[": "]"}


@dataclass(frozen=True)
class JsonBlock:
    """Outcome of a lenient parse: ``ok`` with ``value`` or a fallback with ``error``."""

    ok: bool
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def parsed(cls, value: Any) -> "JsonBlock":
        return cls(ok=True, value=value)

    @classmethod
    def fallback(cls, error: str) -> "JsonBlock":
        return cls(ok=False, error=error)


def _balanced_span(text: str, start: int) -> Optional[int]:
    """End index (exclusive) of the bracket block opening at ``start``."""
    stack = [_CLOSERS[text[start]]]
    in_string = False
    escaped = False
    for i in range(start + 1, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ("}", "]"):
            if ch != stack[-1]:
                return None
            stack.pop()
            if not stack:
                return i + 1
    return None


def extract_json_block(text: Optional[str], opener: str = "{") -> JsonBlock:
    """
    Parse the first balanced block starting with ``opener`` in ``text``.

    Unbalanced or undecodable candidates are skipped and the scan moves
    on to the next opener, so stray brackets in leading prose are
    tolerated.
    """
    if opener not in _CLOSERS:
        raise ValueError(f"Unsupported opener {opener!r}")
    if not text:
        return JsonBlock.fallback("empty response")
    last_error = "no JSON block found"
    pos = text.find(opener)
    while pos != -1:
        end = _balanced_span(text, pos)
        if end is not None:
            try:
                return JsonBlock.parsed(json.loads(text[pos:end]))
            except json.JSONDecodeError as e:
                last_error = f"invalid JSON: {e}"
        pos = text.find(opener, pos + 1)
    logger.debug("JSON extraction failed: {}", last_error)
    return JsonBlock.fallback(last_error)
