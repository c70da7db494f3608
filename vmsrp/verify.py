from __future__ import annotations

"""
Stage 6: fact verification of generated reasons.

A reason passes when every citation longer than five characters can be
found in the item's own text, either verbatim or with a word-level
Jaccard similarity of at least ``citation_similarity_min``, and when it
names no technology from the fixed vocabulary that the item text does
not mention.  Verification is pure string work; no model is consulted.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from loguru import logger

from .config import DEFAULT_CONFIG, MIN_CITATION_LEN, TECH_KEYWORDS, PipelineConfig
from .models import CatalogItem
from .normalize import format_curriculum, jaccard, join_fields
from .reasons import GroundedRecommendation

CONTENT_NOT_FOUND = "콘텐츠를 찾을 수 없음"


@dataclass
class VerificationOutcome:
    item_id: int
    reason: str
    verified: bool
    failed_citations: List[str] = field(default_factory=list)


def item_corpus(item: CatalogItem) -> str:
    """Lowercased title, intro, objective, audience and curriculum."""
    return join_fields([
        item.title,
        item.intro,
        item.objective,
        item.target_audience,
        format_curriculum(item.curriculum),
    ]).lower()


def unsupported_citations(citations: Iterable[str], corpus: str, min_similarity: float) -> List[str]:
    failed = []
    for citation in citations:
        if len(citation) <= MIN_CITATION_LEN:
            continue
        needle = citation.lower()
        if needle in corpus:
            continue
        if jaccard(needle, corpus) < min_similarity:
            failed.append(citation)
    return failed


def hallucinated_tech(reason: str, corpus: str) -> List[str]:
    """Technology names present in ``reason`` but absent from ``corpus``."""
    reason_lower = (reason or "").lower()
    return [
        f"{tech}가 추천 이유에 있지만 콘텐츠에 없음"
        for tech in TECH_KEYWORDS
        if tech.lower() in reason_lower and tech.lower() not in corpus
    ]


def verify_recommendation(
    rec: GroundedRecommendation,
    item: CatalogItem,
    min_similarity: float,
) -> VerificationOutcome:
    corpus = item_corpus(item)
    failed = unsupported_citations(rec.citations, corpus, min_similarity)
    failed.extend(hallucinated_tech(rec.reason, corpus))
    return VerificationOutcome(rec.item_id, rec.reason, verified=not failed, failed_citations=failed)


def verify_facts(
    recommendations: Sequence[GroundedRecommendation],
    items: Dict[int, CatalogItem],
    config: PipelineConfig = DEFAULT_CONFIG,
) -> List[VerificationOutcome]:
    min_similarity = config.thresholds.citation_similarity_min
    outcomes: List[VerificationOutcome] = []
    for rec in recommendations:
        item = items.get(rec.item_id)
        if item is None:
            outcomes.append(VerificationOutcome(rec.item_id, rec.reason, False, [CONTENT_NOT_FOUND]))
            continue
        outcome = verify_recommendation(rec, item, min_similarity)
        if not outcome.verified:
            logger.debug("Item {} failed verification: {}", rec.item_id, outcome.failed_citations)
        outcomes.append(outcome)
    logger.info(
        "Fact verification: {}/{} reasons verified",
        sum(1 for o in outcomes if o.verified),
        len(outcomes),
    )
    return outcomes
