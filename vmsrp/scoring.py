from __future__ import annotations

"""
Stage 3: hybrid relevance scoring.

Each hard-filtered candidate receives four component scores in
``[0, 1]``:

* keyword match   - share of distinct intent keywords found in the
  item's title, intro, objective and major category;
* vector          - cosine similarity between the query embedding and
  the stored item embedding (``0.3`` for items without one);
* category        - domain keywords found in the three category
  fields, saturating at three hits;
* recency         - ``1 - 0.1 * age`` in years (``0.5`` when unknown).

The weighted sum is the item's total.  Items under the threshold are
dropped and the rest are sorted by total descending with the catalog
id as tie-break, so identical inputs always produce identical rankings.
"""

import datetime as _dt
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from .config import (
    CATEGORY_MATCH_SATURATION,
    DEFAULT_CONFIG,
    MISSING_EMBEDDING_SCORE,
    MISSING_YEAR_SCORE,
    RECENCY_DECAY_PER_YEAR,
    PipelineConfig,
    ScoringWeights,
    domain_keywords,
)
from .embed_index import Embedder, EmbeddingStore, cosine_similarity
from .models import CatalogItem, RequirementProfile, SearchIntent
from .normalize import join_fields, parse_year


@dataclass
class ScoredItem:
    item: CatalogItem
    keyword_match: float
    vector_similarity: float
    category_relevance: float
    recency: float
    total: float
    matched_keywords: List[str] = field(default_factory=list)

    @property
    def item_id(self) -> int:
        return self.item.id

    def percent(self) -> int:
        """Total as an integer 0-100 for package items."""
        return max(0, min(100, int(round(self.total * 100))))


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, float(x)))


def keyword_text(item: CatalogItem) -> str:
    return join_fields([item.title, item.intro, item.objective, item.major_category]).lower()


def keyword_match(item: CatalogItem, keywords: Sequence[str]) -> Tuple[float, List[str]]:
    if not keywords:
        return 0.0, []
    text = keyword_text(item)
    matched = [kw for kw in keywords if kw.lower() in text]
    return len(matched) / len(keywords), matched


def vector_score(query_vec: Optional[np.ndarray], item_vec: Optional[np.ndarray]) -> float:
    if query_vec is None or item_vec is None:
        return MISSING_EMBEDDING_SCORE
    return _clamp01(cosine_similarity(query_vec, item_vec))


def category_relevance(item: CatalogItem, domain: str) -> float:
    text = join_fields([item.major_category, item.middle_category, item.minor_category]).lower()
    hits = sum(1 for kw in domain_keywords(domain) if kw.lower() in text)
    return min(1.0, hits / CATEGORY_MATCH_SATURATION)


def recency_score(development_year: Optional[str], current_year: int) -> float:
    year = parse_year(development_year)
    if year is None:
        return MISSING_YEAR_SCORE
    return _clamp01(1.0 - RECENCY_DECAY_PER_YEAR * (current_year - year))


def weighted_total(
    weights: ScoringWeights, keyword: float, vector: float, category: float, recency: float
) -> float:
    return (
        weights.keyword * keyword
        + weights.vector * vector
        + weights.category * category
        + weights.recency * recency
    )


def build_query_text(intent: SearchIntent, profile: RequirementProfile) -> str:
    parts = intent.primary_keywords + intent.secondary_keywords + [profile.learning_goal or ""]
    return " ".join(parts).strip()


def embed_query(embedder: Embedder, text: str) -> Optional[np.ndarray]:
    """Query embedding, or ``None`` when the encoder is unavailable."""
    if not text:
        return None
    try:
        return np.asarray(embedder.embed(text), dtype="float32")
    except Exception as e:
        logger.warning("Query embedding failed: {}; vector scores use the default", e)
        return None


def rank_items(
    items: Sequence[CatalogItem],
    intent: SearchIntent,
    profile: RequirementProfile,
    embedder: Embedder,
    embedding_store: EmbeddingStore,
    config: PipelineConfig = DEFAULT_CONFIG,
    current_year: Optional[int] = None,
) -> List[ScoredItem]:
    """Score every candidate and sort by (total desc, id asc) without thresholding."""
    if not items:
        return []
    if current_year is None:
        current_year = _dt.date.today().year
    keywords = intent.all_keywords()
    query_vec = embed_query(embedder, build_query_text(intent, profile))
    item_vecs: Dict[int, np.ndarray] = {}
    if query_vec is not None:
        item_vecs = embedding_store.get_embeddings([it.id for it in items])
        logger.info("Found stored embeddings for {}/{} candidates", len(item_vecs), len(items))

    weights = config.weights
    scored: List[ScoredItem] = []
    for item in items:
        kw, matched = keyword_match(item, keywords)
        vec = vector_score(query_vec, item_vecs.get(item.id))
        cat = category_relevance(item, intent.domain)
        rec = recency_score(item.development_year, current_year)
        scored.append(
            ScoredItem(
                item=item,
                keyword_match=kw,
                vector_similarity=vec,
                category_relevance=cat,
                recency=rec,
                total=weighted_total(weights, kw, vec, cat, rec),
                matched_keywords=matched,
            )
        )
    scored.sort(key=lambda s: (-s.total, s.item_id))
    return scored


def apply_threshold(scored: Sequence[ScoredItem], threshold: float) -> List[ScoredItem]:
    return [s for s in scored if s.total >= threshold]


def hybrid_score(
    items: Sequence[CatalogItem],
    intent: SearchIntent,
    profile: RequirementProfile,
    embedder: Embedder,
    embedding_store: EmbeddingStore,
    config: PipelineConfig = DEFAULT_CONFIG,
    current_year: Optional[int] = None,
) -> List[ScoredItem]:
    ranked = rank_items(items, intent, profile, embedder, embedding_store, config, current_year)
    passed = apply_threshold(ranked, config.thresholds.hybrid_score_min)
    logger.info(
        "Hybrid scoring: {}/{} items at or above {:.2f}",
        len(passed),
        len(ranked),
        config.thresholds.hybrid_score_min,
    )
    return passed
