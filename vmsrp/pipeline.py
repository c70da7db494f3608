from __future__ import annotations

"""
End-to-end recommendation pipeline.

:func:`run_pipeline` chains the seven stages:

1. intent extraction (LLM with deterministic fallback)
2. hard filter against the catalog store
3. hybrid scoring
4. LLM relevance validation
5. grounded reason generation
6. fact verification
7. package assembly and persistence

An empty candidate set after stage 2, 3 or 4 ends the run with a
:class:`RecommendationError` describing where it stopped.  Any other
failure is logged with its traceback and returned as a generic error;
nothing is persisted unless stage 7 is reached.  Collaborators (catalog,
embeddings, completion, encoder, sink) are passed in so a run shares no
state with any other run.
"""

import asyncio
from typing import List, Optional, Sequence, Union

from loguru import logger

from .assemble import PackageSink, assemble_package
from .catalog import CatalogStore
from .config import DEFAULT_CONFIG, PipelineConfig
from .embed_index import Embedder, EmbeddingStore
from .intent import extract_intent
from .llm import CompletionClient
from .models import (
    CatalogItem,
    PipelineMetrics,
    RecommendationError,
    RecommendationResult,
    RequirementProfile,
    SearchIntent,
    preview,
)
from .reasons import generate_reasons
from .rerank import validate_relevance
from .retrieval import hard_filter
from .scoring import apply_threshold, rank_items
from .verify import verify_facts

PipelineOutcome = Union[RecommendationResult, RecommendationError]

MSG_NO_CANDIDATES = "Hard Filter 단계에서 관련 콘텐츠를 찾지 못했습니다."
MSG_BELOW_THRESHOLD = "Hybrid Scoring 단계에서 임계값을 통과한 콘텐츠가 없습니다."
MSG_NOT_RELEVANT = "LLM 관련성 검증을 통과한 콘텐츠가 없습니다."
MSG_UNEXPECTED = "추천 생성 중 오류가 발생했습니다."


def no_results(
    message: str,
    intent: SearchIntent,
    metrics: PipelineMetrics,
    candidates: Optional[Sequence[CatalogItem]] = None,
) -> RecommendationError:
    previews = [preview(c) for c in (candidates or [])]
    alternatives: List[str] = []
    if intent.primary_keywords:
        alternatives.append(f"다음 키워드로 재시도: {', '.join(intent.primary_keywords[:3])}")
    alternatives += ["학습 목표를 더 구체적으로 입력해주세요", "기술 스택을 명시해주세요"]
    return RecommendationError(
        requires_manual_review=bool(previews),
        message=message,
        suggestion="검색 조건을 조정하거나 다른 키워드로 시도해주세요.",
        alternatives=alternatives,
        candidates=previews,
        pipeline_metrics=metrics,
    )


def unexpected_error(metrics: PipelineMetrics) -> RecommendationError:
    return RecommendationError(
        message=MSG_UNEXPECTED,
        suggestion="잠시 후 다시 시도해주세요.",
        alternatives=["검색 조건을 더 구체적으로 입력해보세요", "다른 키워드로 시도해보세요"],
        pipeline_metrics=metrics,
    )


async def _run(
    profile: RequirementProfile,
    metrics: PipelineMetrics,
    catalog: CatalogStore,
    embedding_store: EmbeddingStore,
    completion: CompletionClient,
    embedder: Embedder,
    sink: PackageSink,
    config: PipelineConfig,
    current_year: Optional[int],
) -> PipelineOutcome:
    logger.info("Stage 1: intent extraction")
    intent = await extract_intent(profile, completion, config)
    metrics.stage1_intent_extraction = len(intent.primary_keywords) + len(intent.secondary_keywords)

    logger.info("Stage 2: hard filter")
    candidates = hard_filter(intent, catalog, config)
    metrics.stage2_hard_filter = len(candidates)
    if not candidates:
        return no_results(MSG_NO_CANDIDATES, intent, metrics)

    logger.info("Stage 3: hybrid scoring of {} candidates", len(candidates))
    ranked = rank_items(candidates, intent, profile, embedder, embedding_store, config, current_year)
    scored = apply_threshold(ranked, config.thresholds.hybrid_score_min)
    metrics.stage3_hybrid_scoring = len(scored)
    if not scored:
        near = [s.item for s in ranked[:config.near_miss_limit]]
        return no_results(MSG_BELOW_THRESHOLD, intent, metrics, near)

    logger.info("Stage 4: relevance validation of {} items", len(scored))
    judgments = await validate_relevance(scored, profile, completion, config)
    metrics.stage4_relevance_validation = len(judgments)
    if not judgments:
        near = [s.item for s in scored[:config.near_miss_limit]]
        return no_results(MSG_NOT_RELEVANT, intent, metrics, near)

    logger.info("Stage 5: grounded reason generation")
    recommendations = await generate_reasons(judgments, profile, completion, config)
    metrics.stage5_reason_generation = len(recommendations)

    logger.info("Stage 6: fact verification")
    items = {j.item_id: j.scored.item for j in judgments}
    outcomes = verify_facts(recommendations, items, config)
    metrics.stage6_fact_verification = sum(1 for o in outcomes if o.verified)

    logger.info("Stage 7: package assembly")
    return assemble_package(outcomes, judgments, profile, metrics, sink, current_year)


async def run_pipeline(
    profile: RequirementProfile,
    *,
    catalog: CatalogStore,
    embedding_store: EmbeddingStore,
    completion: CompletionClient,
    embedder: Embedder,
    sink: PackageSink,
    config: PipelineConfig = DEFAULT_CONFIG,
    current_year: Optional[int] = None,
) -> PipelineOutcome:
    """Run all stages for one requirement profile.  Never raises."""
    metrics = PipelineMetrics()
    logger.info("Recommendation pipeline start: {!r}", profile.learning_goal)
    try:
        return await _run(
            profile, metrics, catalog, embedding_store, completion, embedder, sink, config, current_year
        )
    except Exception:
        logger.exception("Recommendation pipeline failed")
        return unexpected_error(metrics)


def recommend(profile: RequirementProfile, **collaborators) -> PipelineOutcome:
    """Blocking wrapper around :func:`run_pipeline` for scripts and the CLI."""
    return asyncio.run(run_pipeline(profile, **collaborators))
