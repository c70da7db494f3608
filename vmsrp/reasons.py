from __future__ import annotations

"""
Stage 5: grounded recommendation reasons.

For every validated item the model writes a short reason that must
quote the item's own catalog text.  Calls inside a batch run
concurrently with :func:`asyncio.gather`; batches are awaited one after
another, which bounds in-flight requests to the batch size.  Quoted
spans are pulled out of the reply as citations for the fact verifier.
A failed call yields a plain template reason with no citations.
"""

import asyncio
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from loguru import logger

from .config import DEFAULT_CONFIG, PipelineConfig
from .llm import CompletionClient, CompletionOptions, chat
from .models import CatalogItem, RequirementProfile
from .prompts import REASON_SYSTEM, build_reason_prompt
from .rerank import RelevanceJudgment

_QUOTES = "'\"‘’“”"
CITATION_RE = re.compile(f"[{_QUOTES}]([^{_QUOTES}]+)[{_QUOTES}]")


@dataclass
class GroundedRecommendation:
    item_id: int
    reason: str
    citations: List[str] = field(default_factory=list)


def extract_citations(text: str) -> List[str]:
    """Spans enclosed in straight or typographic quote marks, in order."""
    return [m.group(1) for m in CITATION_RE.finditer(text or "")]


def fallback_reason(item: CatalogItem, skill_level: Optional[str]) -> str:
    return f"{item.title}은(는) {skill_level or '해당'} 수준에 적합한 교육 콘텐츠입니다."


async def _reason_for(
    judgment: RelevanceJudgment,
    profile: RequirementProfile,
    completion: CompletionClient,
    options: CompletionOptions,
) -> GroundedRecommendation:
    item = judgment.scored.item
    try:
        reply = await completion.complete(chat(REASON_SYSTEM, build_reason_prompt(profile, item)), options)
    except Exception as e:
        logger.warning("Reason generation failed for item {}: {}", item.id, e)
        return GroundedRecommendation(item.id, fallback_reason(item, profile.skill_level))
    reason = (reply or "").strip()
    if not reason:
        logger.warning("Empty reason for item {}; using template", item.id)
        return GroundedRecommendation(item.id, fallback_reason(item, profile.skill_level))
    return GroundedRecommendation(item.id, reason, extract_citations(reason))


async def generate_reasons(
    judgments: Sequence[RelevanceJudgment],
    profile: RequirementProfile,
    completion: CompletionClient,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> List[GroundedRecommendation]:
    options = CompletionOptions(model=config.models.reason_generation, temperature=0.3)
    size = config.batch.reason_generation
    results: List[GroundedRecommendation] = []
    for start in range(0, len(judgments), size):
        batch = judgments[start:start + size]
        results.extend(
            await asyncio.gather(*(_reason_for(j, profile, completion, options) for j in batch))
        )
    logger.info("Generated {} recommendation reasons", len(results))
    return results
