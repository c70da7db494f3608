"""Fake collaborators for pipeline tests.

The pipeline only talks to a completion client, an embedder, a catalog
store, an embedding store and a package sink.  The catalog, embedding
and sink fakes are the bundled in-memory implementations; this module
adds scripted stand-ins for the two model-backed capabilities.

Usage:
    from tests.fakes import FakeCompletionClient, FakeEmbedder
    from vmsrp.prompts import INTENT_SYSTEM

    completion = FakeCompletionClient({INTENT_SYSTEM: '{"primaryKeywords": ["파이썬"]}'})
"""

import asyncio
import json
import re
from typing import Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from vmsrp.llm import ChatMessage, CompletionOptions
from vmsrp.prompts import INTENT_SYSTEM, REASON_SYSTEM, RELEVANCE_SYSTEM

Script = Union[str, Exception, Callable[[str], str]]

ITEM_ID_RE = re.compile(r"ID: (\d+)")


class FakeCompletionClient:
    """Scripted completion client routed by system prompt.

    Each script entry is a fixed reply, an exception to raise, or a
    callable receiving the user prompt.  Every call is recorded in
    ``calls`` as ``(system, user, options)`` for assertions.

    Attributes:
        scripts: system prompt -> script
        calls: recorded calls in arrival order
        delay: optional await before replying, to exercise concurrency
    """

    def __init__(self, scripts: Optional[Dict[str, Script]] = None, delay: float = 0.0):
        self.scripts: Dict[str, Script] = dict(scripts or {})
        self.calls: List[tuple] = []
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    def calls_for(self, system: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == system]

    async def complete(
        self, messages: Sequence[ChatMessage], options: CompletionOptions
    ) -> str:
        system = next((m.content for m in messages if m.role == "system"), "")
        user = next((m.content for m in messages if m.role == "user"), "")
        self.calls.append((system, user, options))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            script = self.scripts.get(system)
            if script is None:
                raise RuntimeError(f"no script for system prompt {system!r}")
            if isinstance(script, Exception):
                raise script
            if callable(script):
                return script(user)
            return script
        finally:
            self.in_flight -= 1


def intent_reply(**fields) -> str:
    """JSON intent reply wrapped in prose, as models tend to answer."""
    return "분석 결과입니다:\n```json\n" + json.dumps(fields, ensure_ascii=False) + "\n```"


def relevance_scorer(scores: Dict[int, int], default: Optional[int] = None, key: str = "itemId"):
    """Relevance script rating every item id found in the prompt.

    Ids missing from ``scores`` get ``default``; with ``default=None``
    they are left out of the reply.
    """

    def _reply(user: str) -> str:
        out = []
        for raw in ITEM_ID_RE.findall(user):
            iid = int(raw)
            score = scores.get(iid, default)
            if score is not None:
                out.append({key: iid, "relevanceScore": score, "reason": "테스트"})
        return json.dumps(out, ensure_ascii=False)

    return _reply


def quoting_reason(field: str = "과정소개") -> Callable[[str], str]:
    """Reason script quoting the given field of the prompt verbatim."""
    field_re = re.compile(rf"{field}: (.+)")

    def _reply(user: str) -> str:
        m = field_re.search(user)
        quote = m.group(1).strip() if m else ""
        return f"이 과정은 '{quote}' 내용을 다루므로 학습 목표에 적합합니다."

    return _reply


class FakeEmbedder:
    """Deterministic encoder: a fixed query vector, optional failure."""

    def __init__(self, vector: Sequence[float] = (1.0, 0.0, 0.0), fail: bool = False):
        self.vector = np.asarray(vector, dtype="float32")
        self.fail = fail
        self.texts: List[str] = []

    def embed(self, text: str) -> np.ndarray:
        self.texts.append(text)
        if self.fail:
            raise RuntimeError("encoder unavailable")
        return self.vector

    def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]:
        return [self.embed(t) for t in texts]


DEFAULT_SCRIPTS = {
    INTENT_SYSTEM: RuntimeError("intent model offline"),
    RELEVANCE_SYSTEM: relevance_scorer({}, default=8),
    REASON_SYSTEM: quoting_reason(),
}
