from __future__ import annotations

"""
Stage 4: LLM relevance validation of hybrid-scored candidates.

Candidates are sent to the model in fixed-size batches, one call per
batch, and rated 1-10.  Only items the model rated at or above the
configured minimum survive; items it left out of its reply are
dropped.  When a whole batch fails (the call raises or the reply holds
no JSON array) the batch degrades to a score-based rule: items whose
hybrid total is at least ``fallback_hybrid_min`` are kept with a
synthetic rating.  Batches run one after another and the output keeps
the hybrid order.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from loguru import logger

from .config import DEFAULT_CONFIG, FALLBACK_RELEVANCE_SCORE, PipelineConfig
from .llm import CompletionClient, CompletionOptions, chat, extract_json_block
from .models import RequirementProfile
from .prompts import RELEVANCE_SYSTEM, build_relevance_prompt
from .scoring import ScoredItem

FALLBACK_VALIDATION_REASON = "하이브리드 점수 기반 자동 선정 (LLM 검증 실패)"

MIN_RELEVANCE_SCORE = 1
MAX_RELEVANCE_SCORE = 10

# Reply keys accepted for the item id, in lookup order
_ID_KEYS = ("itemId", "contentId", "id")


@dataclass
class RelevanceJudgment:
    scored: ScoredItem
    relevance_score: int
    reason: str
    passed: bool = True

    @property
    def item_id(self) -> int:
        return self.scored.item_id


def _coerce_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return None


def parse_judgments(payload) -> Dict[int, tuple]:
    """Map item id -> (score, reason) from a reply array; malformed entries are skipped."""
    ratings: Dict[int, tuple] = {}
    if not isinstance(payload, list):
        return ratings
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        item_id = None
        for key in _ID_KEYS:
            if entry.get(key) is not None:
                item_id = _coerce_int(entry[key])
                break
        score = _coerce_int(entry.get("relevanceScore", entry.get("score")))
        if item_id is None or score is None:
            continue
        if not MIN_RELEVANCE_SCORE <= score <= MAX_RELEVANCE_SCORE:
            logger.debug("Ignoring out-of-range relevance score {} for item {}", score, item_id)
            continue
        ratings[item_id] = (score, str(entry.get("reason") or ""))
    return ratings


def fallback_judgments(batch: Sequence[ScoredItem], min_total: float) -> List[RelevanceJudgment]:
    return [
        RelevanceJudgment(s, FALLBACK_RELEVANCE_SCORE, FALLBACK_VALIDATION_REASON)
        for s in batch
        if s.total >= min_total
    ]


async def _validate_batch(
    batch: Sequence[ScoredItem],
    profile: RequirementProfile,
    completion: CompletionClient,
    config: PipelineConfig,
) -> List[RelevanceJudgment]:
    options = CompletionOptions(model=config.models.relevance_validation, temperature=0.1)
    prompt = build_relevance_prompt(profile, [s.item for s in batch])
    try:
        reply = await completion.complete(chat(RELEVANCE_SYSTEM, prompt), options)
    except Exception as e:
        logger.warning("Relevance batch call failed: {}; using hybrid-score fallback", e)
        return fallback_judgments(batch, config.thresholds.fallback_hybrid_min)

    block = extract_json_block(reply, "[")
    if not block.ok:
        logger.warning("Relevance reply not parseable ({}); using hybrid-score fallback", block.error)
        return fallback_judgments(batch, config.thresholds.fallback_hybrid_min)

    ratings = parse_judgments(block.value)
    minimum = config.thresholds.relevance_score_min
    kept: List[RelevanceJudgment] = []
    for s in batch:
        rating = ratings.get(s.item_id)
        if rating is None:
            continue
        score, reason = rating
        judgment = RelevanceJudgment(s, score, reason, passed=score >= minimum)
        if judgment.passed:
            kept.append(judgment)
    return kept


async def validate_relevance(
    scored: Sequence[ScoredItem],
    profile: RequirementProfile,
    completion: CompletionClient,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> List[RelevanceJudgment]:
    size = config.batch.relevance_validation
    validated: List[RelevanceJudgment] = []
    for start in range(0, len(scored), size):
        batch = scored[start:start + size]
        validated.extend(await _validate_batch(batch, profile, completion, config))
    logger.info(
        "Relevance validation kept {}/{} items (min score {})",
        len(validated),
        len(scored),
        config.thresholds.relevance_score_min,
    )
    return validated
